import io
from typing import Any, Dict, List

import pandas as pd

from domains import DEFAULT_DOMAINS
from models import STANDARD_COLUMNS

CSV_MEDIA_TYPE = "text/csv"
EXCEL_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

SAMPLE_ROWS = [
    "STU001,Jane Smith,10,FAMAT Fall 2024,2024-10-15,82,85,78,90,70,88,75",
    "STU002,John Doe,10,FAMAT Fall 2024,2024-10-15,74,70,80,65,82,72,68",
    "STU001,Jane Smith,10,FAMAT Spring 2025,2025-03-20,89,92,85,94,78,90,82",
    "STU003,Maria Garcia,11,FAMAT Fall 2024,2024-10-15,91,95,88,93,86,92,90",
]


def sample_csv() -> str:
    domains = [d.lower().replace(" ", "_") for d in DEFAULT_DOMAINS]
    header = ",".join(STANDARD_COLUMNS + domains)
    return "\n".join([header] + SAMPLE_ROWS)


def class_summary_rows(class_averages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    rows = []
    for test in class_averages:
        row = {
            "Test Name": test.get("test_name"),
            "Date": test.get("test_date"),
            "Student Count": test.get("count"),
            "Average Score": test.get("average"),
        }
        for domain, avg in (test.get("domain_averages") or {}).items():
            row[f"{domain} Avg"] = avg
        rows.append(row)
    return rows


def growth_rows(growth: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        {
            "Student Name": item["student"].get("name"),
            "Student ID": item["student"].get("external_id"),
            "First Score": item.get("first_score"),
            "Latest Score": item.get("latest_score"),
            "Growth (pts)": item.get("growth"),
            "Growth (%)": item.get("pct_change"),
            "Tests Taken": item.get("test_count"),
        }
        for item in growth
    ]


def rows_to_csv(rows: List[Dict[str, Any]]) -> bytes:
    if not rows:
        return b""
    # Tests can carry different domains; keep every column in first-seen order.
    columns = list(dict.fromkeys(key for row in rows for key in row))
    df = pd.DataFrame(rows, columns=columns)
    return df.to_csv(index=False).encode("utf-8")


def rows_to_excel(rows: List[Dict[str, Any]], sheet_name: str) -> bytes:
    buffer = io.BytesIO()
    columns = list(dict.fromkeys(key for row in rows for key in row))
    df = pd.DataFrame(rows, columns=columns)
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=sheet_name, index=False)
    buffer.seek(0)
    return buffer.getvalue()
