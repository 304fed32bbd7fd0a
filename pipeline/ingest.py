"""Read the Details sheet of a PBB summary workbook into DetailRecords."""

from __future__ import annotations

import sys
from io import BytesIO
from pathlib import Path
from typing import Any
from zipfile import BadZipFile

import httpx
from openpyxl import load_workbook
from openpyxl.utils import column_index_from_string
from openpyxl.utils.exceptions import InvalidFileException

from pipeline.errors import InvalidWorkbookError, MissingSheetError
from pipeline.models import DetailRecord

DETAILS_SHEET = "Details"

# Header name -> DetailRecord field
DETAIL_FIELDS: dict[str, str] = {
    "program_id": "program_id",
    "Fund": "fund",
    "Quartile": "quartile",
    "Final Score": "final_score",
    "AcctType": "acct_type",
    "Cost Type": "cost_type",
    "Total Item Cost": "amount",
}

# Fields read by column letter. The workbook layout guarantees these
# positions; their header cells are not reliable names.
POSITIONAL_COLUMNS: dict[str, str] = {
    "department": "D",
    "program_name": "V",
}
POSITIONAL_DEFAULTS: dict[str, str] = {
    "department": "N/A",
    "program_name": "Unknown Program",
}


def fetch_workbook(url: str) -> bytes:
    """Download a workbook over HTTP(S)."""
    print(f"  [download] {url} ...")
    buf = BytesIO()
    with httpx.stream("GET", url, follow_redirects=True, timeout=300) as r:
        r.raise_for_status()
        for chunk in r.iter_bytes(chunk_size=1 << 20):
            buf.write(chunk)
    print(f"  [done] {buf.tell():,} bytes")
    return buf.getvalue()


def read_source(source: str | Path) -> bytes:
    """Raw bytes from a local path or an http(s) URL."""
    text = str(source)
    if text.startswith(("http://", "https://")):
        return fetch_workbook(text)
    return Path(source).read_bytes()


def _cell(row: tuple, index: int) -> Any:
    return row[index] if index < len(row) else None


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _positional(row: tuple, field: str) -> str:
    value = _text(_cell(row, column_index_from_string(POSITIONAL_COLUMNS[field]) - 1))
    return value or POSITIONAL_DEFAULTS[field]


def read_details_grid(data: bytes) -> list[tuple]:
    """The Details sheet as a raw grid (header row first)."""
    try:
        wb = load_workbook(BytesIO(data), read_only=True, data_only=True)
    except (BadZipFile, InvalidFileException, KeyError, OSError) as e:
        raise InvalidWorkbookError(str(e)) from e
    try:
        if DETAILS_SHEET not in wb.sheetnames:
            raise MissingSheetError(DETAILS_SHEET)
        return list(wb[DETAILS_SHEET].iter_rows(values_only=True))
    finally:
        wb.close()


def parse_details(grid: list[tuple]) -> list[DetailRecord]:
    """Turn a Details grid into records.

    Named fields are looked up by header, department and program name by
    column position. Blank rows are dropped.
    """
    if not grid:
        return []
    header = [_text(h) for h in grid[0]]
    # First column wins when a header is repeated
    named: dict[str, int] = {}
    for idx, name in enumerate(header):
        if name in DETAIL_FIELDS:
            named.setdefault(DETAIL_FIELDS[name], idx)

    records = []
    for row in grid[1:]:
        if all(v is None or (isinstance(v, str) and not v.strip()) for v in row):
            continue
        fields: dict[str, Any] = {field: _cell(row, idx) for field, idx in named.items()}
        for key in ("fund", "acct_type", "cost_type"):
            if key in fields:
                fields[key] = _text(fields[key])
        fields["department"] = _positional(row, "department")
        fields["program_name"] = _positional(row, "program_name")
        records.append(DetailRecord(**fields))
    return records


def load_details(data: bytes) -> list[DetailRecord]:
    """Decode workbook bytes. Raises MissingSheetError when Details is absent."""
    return parse_details(read_details_grid(data))


def ingest(source: str | Path) -> list[DetailRecord]:
    """Load records from a path or URL."""
    records = load_details(read_source(source))
    print(f"  Loaded {DETAILS_SHEET}: {len(records):,} rows")
    return records


if __name__ == "__main__":
    ingest(sys.argv[1])
