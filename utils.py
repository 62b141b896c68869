# utils.py

import io
import csv
import re
from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence

CSV_HEADERS = [
    "Card Name", "Set", "Number", "Purchase Price", "Current Value",
    "ROI", "Profit", "Grading Status", "Purchase Date", "Notes",
]


def parse_price(value) -> Optional[float]:
    if value is None or value == "":
        return None
    cleaned = re.sub(r"[$,\s]", "", str(value))
    try:
        return float(cleaned)
    except ValueError:
        return None


def format_grading_status(status: Optional[str]) -> str:
    if not status:
        return "Ungraded"
    return status.replace("psa-", "PSA ").replace("bgs-", "BGS ").replace("ungraded", "Ungraded")


def format_us_date(value) -> str:
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if isinstance(value, datetime):
        value = value.date()
    if not isinstance(value, date):
        return ""
    return f"{value.month}/{value.day}/{value.year}"


def _cell(value) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_csv(rows: Iterable[Sequence], headers: List[str] = CSV_HEADERS) -> str:
    """Every field quoted, rows joined with bare newlines."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_cell(v) for v in row])
    return buffer.getvalue().rstrip("\n")
