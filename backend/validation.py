"""Required-field, score and date checks for parsed rows."""
from datetime import date
import math
import re
from typing import Any, List, Optional, Union

from models import (
    Column,
    InvalidRow,
    REQUIRED_COLUMNS,
    RawRow,
    ValidRow,
    ValidationReport,
)

MIN_SCORE = 0.0
MAX_SCORE = 100.0

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_US_DATE = re.compile(r"^(\d{1,2})([/-])(\d{1,2})\2(\d{4})$")
_DECIMAL = re.compile(r"^[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?$")


def round_score(value: float) -> float:
    return round(float(value), 1)


def parse_number(value: Any) -> Optional[float]:
    """Return the cell as a finite float, or None when it is not numeric."""
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not _DECIMAL.match(value):
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def parse_score(value: Any) -> Optional[float]:
    number = parse_number(value)
    if number is None or number < MIN_SCORE or number > MAX_SCORE:
        return None
    return round_score(number)


def normalize_date(value: Optional[str]) -> Optional[str]:
    """Normalize YYYY-MM-DD, MM/DD/YYYY or MM-DD-YYYY to YYYY-MM-DD.

    Returns None for any other shape, and for dates that do not exist on
    the calendar (e.g. month 13).
    """
    if not value:
        return None
    value = value.strip()
    match = _ISO_DATE.match(value)
    if match:
        year, month, day = match.group(1), match.group(2), match.group(3)
    else:
        match = _US_DATE.match(value)
        if not match:
            return None
        month, day, year = match.group(1), match.group(3), match.group(4)
    try:
        return date(int(year), int(month), int(day)).isoformat()
    except ValueError:
        return None


def validate_row(row: RawRow, position: int) -> Union[ValidRow, InvalidRow]:
    errors: List[str] = []

    for field in REQUIRED_COLUMNS:
        if not (row.get(field) or "").strip():
            errors.append(f"Missing required field: {field}")

    raw_score = row.get(Column.OVERALL_SCORE.value, "")
    score = parse_score(raw_score)
    if score is None:
        errors.append(f'overall_score must be 0–100 (got "{raw_score}")')

    raw_date = row.get(Column.TEST_DATE.value, "")
    test_date = normalize_date(raw_date)
    if test_date is None:
        errors.append(f'Invalid date format: "{raw_date}" (use YYYY-MM-DD, MM/DD/YYYY or MM-DD-YYYY)')

    if errors:
        return InvalidRow(row=position, data=dict(row), errors=errors)
    return ValidRow(
        row=position,
        student_id=row[Column.STUDENT_ID.value].strip(),
        student_name=row[Column.STUDENT_NAME.value].strip(),
        grade=(row.get(Column.GRADE.value) or "").strip(),
        test_name=row[Column.TEST_NAME.value].strip(),
        test_date=test_date,
        overall_score=score,
        data=dict(row),
    )


def validate_rows(rows: List[RawRow]) -> ValidationReport:
    """Partition parsed rows into valid and invalid.

    Positions count the header as row 1, so the first data row is row 2.
    """
    report = ValidationReport()
    for index, row in enumerate(rows):
        outcome = validate_row(row, index + 2)
        if isinstance(outcome, InvalidRow):
            report.invalid.append(outcome)
        else:
            report.valid.append(outcome)
    return report
