from typing import Any, Dict, List, Optional


class AssessmentError(Exception):
    """Base class for ingestion and analytics failures."""


class FormatError(AssessmentError):
    """The uploaded text does not have the shape of a header plus data rows."""


class ValidationError(AssessmentError):
    """A single row failed validation.

    Rows are never rejected by raising this; the validator collects one per
    invalid row so callers can report every reason at once.
    """

    def __init__(self, row: int, data: Dict[str, str], errors: List[str]):
        self.row = row
        self.data = data
        self.errors = errors
        super().__init__(f"Row {row}: " + "; ".join(errors))


class BackendWriteError(AssessmentError):
    """The store refused a write for one row of a batch."""

    def __init__(self, collection: str, message: str, cause: Optional[BaseException] = None):
        self.collection = collection
        self.cause = cause
        super().__init__(f"{collection}: {message}")


class ReferentialGap(AssessmentError):
    """A result points at a student or test that no longer resolves."""

    def __init__(self, kind: str, key: Any):
        self.kind = kind
        self.key = key
        super().__init__(f"Unresolved {kind} reference: {key}")
