from __future__ import annotations

from collections.abc import Iterable
import csv
import io
from pathlib import Path
from typing import Any

from harvester.services.records.types import EmailRecord

CSV_COLUMNS = (
    "email",
    "author_name",
    "author_title",
    "profile_url",
    "post_url",
    "extracted_at",
    "comment_snippet",
    "source_type",
    "seen_count",
)
FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def _csv_cell(value: Any) -> str:
    text = "" if value is None else str(value)
    if text.startswith(FORMULA_PREFIXES):
        text = "'" + text
    return text.replace("\r\n", " ").replace("\n", " ").replace("\r", " ")


def _row(record: EmailRecord) -> list[str]:
    values = record.as_dict()
    return [_csv_cell(values[column]) for column in CSV_COLUMNS]


def records_to_csv(records: Iterable[EmailRecord]) -> str:
    """Render records as a spreadsheet-safe CSV document."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for record in records:
        writer.writerow(_row(record))
    return buffer.getvalue()


def write_csv(path: Path, records: Iterable[EmailRecord]) -> int:
    rows = list(records)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(records_to_csv(rows), encoding="utf-8")
    return len(rows)
