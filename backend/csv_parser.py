"""Turn uploaded delimited text into header names and row mappings."""
import io
import logging
import re
from typing import Any, Dict, List

import pandas as pd

from errors import FormatError
from models import Column, ParsedTable, RawRow

logger = logging.getLogger(__name__)

HEADER_ALIASES: Dict[str, List[str]] = {
    Column.STUDENT_ID.value: ["id", "studentid", "student_number", "studentnumber"],
    Column.STUDENT_NAME.value: ["name", "student", "studentname", "full_name", "fullname"],
    Column.GRADE.value: ["grade_level", "gradelevel"],
    Column.TEST_NAME.value: ["test", "testname", "assessment", "assessment_name"],
    Column.TEST_DATE.value: ["date", "testdate", "assessment_date"],
    Column.OVERALL_SCORE.value: ["score", "overall", "overallscore", "total_score", "totalscore"],
}

_ALIAS_LOOKUP = {
    alias: column for column, aliases in HEADER_ALIASES.items() for alias in aliases
}


def normalize_header(value: Any) -> str:
    cleaned = re.sub(r"\s+", "_", str(value).strip().lower())
    cleaned = re.sub(r"[^a-z0-9_]", "", cleaned)
    return _ALIAS_LOOKUP.get(cleaned, cleaned)


def parse_text(text: str, delimiter: str = ",") -> ParsedTable:
    """Parse delimited text whose first line is the header.

    Quoted fields may hold the delimiter, and ``""`` inside quotes is a
    literal quote. Blank lines are dropped before parsing.
    """
    lines = [line.strip() for line in text.lstrip("\ufeff").splitlines()]
    lines = [line for line in lines if line]
    if len(lines) < 2:
        raise FormatError("CSV must have a header row and at least one data row.")

    try:
        width = _read_frame(lines[0], delimiter).shape[1]
        # Cells past the header width are dropped rather than failing the file.
        df = _read_frame("\n".join(lines), delimiter, on_bad_lines=lambda fields: fields[:width])
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise FormatError(f"Could not parse CSV: {exc}") from exc
    if len(df) != len(lines):
        # An unclosed quote swallows the lines after it into one record.
        raise FormatError("Could not parse CSV: unbalanced quote in a data row.")

    df = df.fillna("")
    headers = [normalize_header(value) for value in df.iloc[0].tolist()]
    rows: List[RawRow] = []
    for values in df.iloc[1:].itertuples(index=False, name=None):
        rows.append({header: str(value).strip() for header, value in zip(headers, values)})
    logger.debug("Parsed %d rows with columns %s", len(rows), headers)
    return ParsedTable(headers=headers, rows=rows)


def _read_frame(text: str, delimiter: str, **kwargs: Any) -> pd.DataFrame:
    return pd.read_csv(
        io.StringIO(text),
        sep=delimiter,
        header=None,
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
        quotechar='"',
        doublequote=True,
        engine="python",
        **kwargs,
    )
