from __future__ import annotations

from datetime import datetime, timedelta, timezone
from io import BytesIO

import pytest
from openpyxl import Workbook

from pipeline.models import DetailRecord, ProgramAggregate

# Columns A-V. Department sits in D and the program name in V, matching
# the layout of the summary report.
HEADER = [
    "program_id", "Fund", "Quartile", "Department", "Final Score", "AcctType",
    "Cost Type", "Total Item Cost", *[f"Extra {i}" for i in range(13)], "Program",
]


def details_row(
    program_id="P1",
    fund="General Fund",
    quartile="1st Quartile",
    department="Parks",
    final_score=90,
    acct_type="Expense",
    cost_type="Personnel",
    amount=1000,
    program_name="Trail Maintenance",
) -> list:
    row = [program_id, fund, quartile, department, final_score, acct_type, cost_type, amount]
    row += [None] * 13
    row.append(program_name)
    return row


def make_workbook(rows: list[list], sheet: str = "Details") -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = sheet
    ws.append(HEADER)
    for row in rows:
        ws.append(row)
    buf = BytesIO()
    wb.save(buf)
    return buf.getvalue()


def record(**kwargs) -> DetailRecord:
    defaults = dict(
        program_id="P1",
        department="Parks",
        program_name="Trail Maintenance",
        fund="General Fund",
        quartile="1",
        final_score=90,
        acct_type="Expense",
        cost_type="Personnel",
        amount=1000,
    )
    defaults.update(kwargs)
    return DetailRecord(**defaults)


def aggregate(**kwargs) -> ProgramAggregate:
    defaults = dict(
        program_id="P1",
        department="Parks",
        program_name="Trail Maintenance",
        quartile="4th Quartile",
        budget=100_000.0,
        funds=["General Fund"],
        fund_breakdown={"General Fund": 100_000.0},
    )
    defaults.update(kwargs)
    return ProgramAggregate(**defaults)


class FakeClock:
    """Deterministic clock that advances one minute per call."""

    def __init__(self) -> None:
        self.now = datetime(2025, 7, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(minutes=1)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sample_workbook() -> bytes:
    return make_workbook([
        details_row("P1", "General Fund", "1", "Parks", amount=60_000, cost_type="Personnel"),
        details_row("P1", "General Fund", "1", "Parks", amount=40_000, cost_type="NonPersonnel"),
        details_row("P2", "General Fund", "Least Aligned", "Library", amount=100_000,
                    program_name="Branch Hours"),
        details_row("P2", "General Fund", "Least Aligned", "Library", acct_type="Revenue",
                    cost_type=None, amount=98_000, program_name="Branch Hours"),
        details_row("P3", "Water Fund", "2nd", "Utilities", amount=50_000,
                    program_name="Meter Reading"),
        [None] * len(HEADER),
        details_row(None, "Water Fund", "2nd", "Utilities", amount=999),
    ])
