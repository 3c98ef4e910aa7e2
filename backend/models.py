from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return str(uuid.uuid4())


class Column(str, Enum):
    STUDENT_ID = "student_id"
    STUDENT_NAME = "student_name"
    GRADE = "grade"
    TEST_NAME = "test_name"
    TEST_DATE = "test_date"
    OVERALL_SCORE = "overall_score"


STANDARD_COLUMNS = [column.value for column in Column]
REQUIRED_COLUMNS = [
    Column.STUDENT_ID.value,
    Column.STUDENT_NAME.value,
    Column.TEST_NAME.value,
    Column.TEST_DATE.value,
    Column.OVERALL_SCORE.value,
]

# A parsed row before validation: column identifier -> raw cell text.
RawRow = Dict[str, str]


class StudentRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=new_id)
    tenant_id: str
    external_id: str
    name: str
    grade: str = ""
    created_at: str = Field(default_factory=iso_now)
    updated_at: str = Field(default_factory=iso_now)


class TestRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=new_id)
    tenant_id: str
    name: str
    date: str
    created_at: str = Field(default_factory=iso_now)


class ResultRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=new_id)
    tenant_id: str
    student_id: str
    test_id: str
    test_date: str
    overall_score: float
    domain_scores: Dict[str, float] = {}
    created_at: str = Field(default_factory=iso_now)


class UnresolvedStudent(BaseModel):
    """Stand-in for a student a result points at but the store no longer has."""
    id: str
    external_id: str = "?"
    name: str = "Unknown"
    grade: str = ""
    unresolved: bool = True


class UnresolvedTest(BaseModel):
    id: str
    name: str = "Unknown"
    date: str = ""
    unresolved: bool = True


class ParsedTable(BaseModel):
    headers: List[str]
    rows: List[RawRow]


class ValidRow(BaseModel):
    row: int
    student_id: str
    student_name: str
    grade: str = ""
    test_name: str
    test_date: str
    overall_score: float
    data: RawRow


class InvalidRow(BaseModel):
    row: int
    data: RawRow
    errors: List[str]


class ValidationReport(BaseModel):
    valid: List[ValidRow] = []
    invalid: List[InvalidRow] = []


class InsertOutcome(BaseModel):
    inserted: bool
    duplicate: bool = False
    id: Optional[str] = None


class ImportErrorEntry(BaseModel):
    row: RawRow
    error: str


class ImportSummary(BaseModel):
    inserted: int = 0
    duplicates: int = 0
    errors: int = 0
    error_log: List[ImportErrorEntry] = []
