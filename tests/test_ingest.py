from __future__ import annotations

from contextlib import contextmanager

import pytest

from conftest import HEADER, details_row, make_workbook
from pipeline import ingest as ingest_module
from pipeline.errors import AllocationError, InvalidWorkbookError, MissingSheetError
from pipeline.ingest import ingest, load_details, parse_details, read_source


def test_load_details_reads_named_and_positional_fields(sample_workbook):
    records = load_details(sample_workbook)
    # Blank row dropped, row without program_id kept for the aggregator to skip
    assert len(records) == 6

    first = records[0]
    assert first.program_id == "P1"
    assert first.fund == "General Fund"
    assert first.department == "Parks"
    assert first.program_name == "Trail Maintenance"
    assert first.acct_type == "Expense"
    assert first.cost_type == "Personnel"
    assert first.amount == 60_000
    assert first.final_score == 90
    assert first.quartile == 1 or first.quartile == "1"


def test_positional_defaults_when_cells_empty():
    data = make_workbook([details_row(department=None, program_name=None)])
    (rec,) = load_details(data)
    assert rec.department == "N/A"
    assert rec.program_name == "Unknown Program"


def test_short_rows_fall_back_to_defaults():
    grid = [tuple(HEADER), ("P9", "General Fund", "2")]
    (rec,) = parse_details(grid)
    assert rec.program_id == "P9"
    assert rec.department == "N/A"
    assert rec.amount is None


def test_header_order_does_not_matter_for_named_fields():
    header = list(HEADER)
    header[0], header[7] = header[7], header[0]
    row = details_row(program_id="P5", amount=42)
    row[0], row[7] = row[7], row[0]
    (rec,) = parse_details([tuple(header), tuple(row)])
    assert rec.program_id == "P5"
    assert rec.amount == 42


def test_missing_details_sheet():
    data = make_workbook([details_row()], sheet="Summary")
    with pytest.raises(MissingSheetError, match="Details"):
        load_details(data)


def test_non_xlsx_bytes_are_rejected():
    with pytest.raises(InvalidWorkbookError, match="Error reading file") as exc:
        load_details(b"not a workbook")
    assert isinstance(exc.value, AllocationError)
    assert isinstance(exc.value, ValueError)


def test_repeated_header_uses_first_column():
    header = [*HEADER, "Fund"]
    row = [*details_row(fund="General Fund"), "Water Fund"]
    (rec,) = parse_details([tuple(header), tuple(row)])
    assert rec.fund == "General Fund"


def test_empty_sheet_yields_no_records():
    assert parse_details([]) == []


def test_ingest_from_path(tmp_path, sample_workbook):
    path = tmp_path / "summary.xlsx"
    path.write_bytes(sample_workbook)
    assert read_source(path) == sample_workbook
    assert len(ingest(path)) == 6


def test_ingest_from_url(monkeypatch, sample_workbook):
    calls = []

    class FakeResponse:
        def raise_for_status(self):
            pass

        def iter_bytes(self, chunk_size):
            for i in range(0, len(sample_workbook), 1024):
                yield sample_workbook[i:i + 1024]

    @contextmanager
    def fake_stream(method, url, **kwargs):
        calls.append((method, url))
        yield FakeResponse()

    monkeypatch.setattr(ingest_module.httpx, "stream", fake_stream)
    records = ingest("https://example.org/summary.xlsx")
    assert calls == [("GET", "https://example.org/summary.xlsx")]
    assert len(records) == 6
