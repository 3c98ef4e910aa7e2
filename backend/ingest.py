"""Entity resolution and result insertion for validated rows.

Rows are processed strictly one after another: resolving a student or test
is a read followed by a conditional write, and a later row must see what an
earlier row created. The duplicate check on results is the same
read-then-write pattern and is not safe against two imports running for the
same tenant at once.
"""
import logging
from typing import Dict, Iterable, List, Optional

from csv_parser import parse_text
from domains import extract_domains
from models import ImportErrorEntry, ImportSummary, InsertOutcome, ValidRow
from store import TenantStore
from validation import validate_rows

logger = logging.getLogger(__name__)


async def upsert_student(store: TenantStore, external_id: str, name: str, grade: str = "") -> str:
    existing = await store.find_student(external_id)
    if existing:
        changes = {"name": name, "grade": grade or existing.grade}
        await store.update_student(existing.id, changes)
        return existing.id
    created = await store.insert_student(external_id, name, grade or "")
    logger.debug("Created student %s (%s)", created.id, external_id)
    return created.id


async def upsert_test(store: TenantStore, name: str, date: str) -> str:
    existing = await store.find_test(name, date)
    if existing:
        return existing.id
    created = await store.insert_test(name, date)
    logger.debug("Created test %s (%s @ %s)", created.id, name, date)
    return created.id


async def insert_result(
    store: TenantStore,
    student_id: str,
    test_id: str,
    test_date: str,
    overall_score: float,
    domain_scores: Optional[Dict[str, float]] = None,
) -> InsertOutcome:
    """Insert a result unless this student already has one for this test."""
    existing = await store.find_result(student_id, test_id)
    if existing:
        return InsertOutcome(inserted=False, duplicate=True, id=existing.id)
    created = await store.insert_result(student_id, test_id, test_date, overall_score, domain_scores)
    return InsertOutcome(inserted=True, id=created.id)


async def import_row(store: TenantStore, row: ValidRow, headers: Iterable[str]) -> InsertOutcome:
    student_id = await upsert_student(store, row.student_id, row.student_name, row.grade)
    test_id = await upsert_test(store, row.test_name, row.test_date)
    domain_scores = extract_domains(row.data, headers)
    return await insert_result(store, student_id, test_id, row.test_date, row.overall_score, domain_scores)


async def import_rows(store: TenantStore, rows: List[ValidRow], headers: List[str]) -> ImportSummary:
    """Best-effort batch import; a failing row is logged and skipped."""
    summary = ImportSummary()
    for row in rows:
        try:
            outcome = await import_row(store, row, headers)
        except Exception as exc:
            summary.errors += 1
            summary.error_log.append(ImportErrorEntry(row=row.data, error=str(exc)))
            logger.error("[CSV Import Error] row %s: %s", row.row, exc)
            continue
        if outcome.duplicate:
            summary.duplicates += 1
        else:
            summary.inserted += 1
    logger.info(
        "Import for tenant %s: %d inserted, %d duplicates, %d errors",
        store.tenant_id,
        summary.inserted,
        summary.duplicates,
        summary.errors,
    )
    return summary


def preview_text(text: str, delimiter: str = ","):
    """Parse and validate without writing; returns (headers, report)."""
    table = parse_text(text, delimiter)
    return table.headers, validate_rows(table.rows)


async def import_text(store: TenantStore, text: str, delimiter: str = ",") -> Dict[str, object]:
    """Run the whole pipeline on raw text.

    A malformed file raises FormatError before anything is written; invalid
    rows are reported and never reach the store.
    """
    headers, report = preview_text(text, delimiter)
    summary = await import_rows(store, report.valid, headers)
    return {
        **summary.model_dump(),
        "valid": len(report.valid),
        "invalid": [row.model_dump() for row in report.invalid],
    }
