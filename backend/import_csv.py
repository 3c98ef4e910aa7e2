"""
Batch import of an assessment CSV for one tenant, outside the web app.

Run from the backend folder (with .env present):
  python import_csv.py TENANT_ID path/to/scores.csv

Requires: MONGO_URL (and optionally DB_NAME) in backend/.env
"""
import asyncio
import sys
from pathlib import Path

from database import close_client, ensure_indexes, get_db
from errors import FormatError
from ingest import import_text
from store import TenantStore


async def run(tenant_id: str, csv_path: Path) -> int:
    text = csv_path.read_text(encoding="utf-8-sig")
    db = get_db()
    await ensure_indexes(db)
    try:
        summary = await import_text(TenantStore(db, tenant_id), text)
    except FormatError as exc:
        print(f"ERROR: {exc}")
        return 1

    print(f"Valid rows: {summary['valid']}, invalid rows: {len(summary['invalid'])}")
    for row in summary["invalid"]:
        print(f"  Row {row['row']}: {' · '.join(row['errors'])}")
    print(f"Inserted: {summary['inserted']}")
    print(f"Duplicates skipped: {summary['duplicates']}")
    print(f"Errors: {summary['errors']}")
    for entry in summary["error_log"]:
        print(f"  {entry['row'].get('student_name') or entry['row'].get('student_id')}: {entry['error']}")
    return 1 if summary["errors"] else 0


def main():
    if len(sys.argv) != 3:
        print("Usage: python import_csv.py TENANT_ID path/to/scores.csv")
        sys.exit(2)
    csv_path = Path(sys.argv[2])
    if not csv_path.exists():
        print(f"ERROR: {csv_path} not found")
        sys.exit(1)
    try:
        code = asyncio.run(run(sys.argv[1], csv_path))
    finally:
        close_client()
    print("\nDone.")
    sys.exit(code)


if __name__ == "__main__":
    main()
