"""Fold Details line items into per-program, per-department, per-fund aggregates."""

from __future__ import annotations

import math
import re
from collections.abc import Iterable
from typing import Any

from pipeline.models import DetailRecord, ProgramAggregate
from pipeline.quartiles import normalize_quartile

ProgramKey = tuple[Any, str, "str | None"]

_NUMBER_PREFIX = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def parse_amount(value: Any) -> float:
    """Parse a line-item amount, falling back to 0.0.

    Text is read up to the end of its leading number ("12.5 est" -> 12.5),
    anything else unusable (blank, "n/a", NaN) becomes zero.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        match = _NUMBER_PREFIX.match(str(value).strip())
        if not match:
            return 0.0
        number = float(match.group(0))
    return number if math.isfinite(number) else 0.0


def program_key(record: DetailRecord) -> ProgramKey:
    return (record.program_id, record.department, record.fund)


def aggregate_programs(records: Iterable[DetailRecord]) -> dict[ProgramKey, ProgramAggregate]:
    """Group line items by (program_id, department, fund).

    Quartile, final score, and display fields come from the first record seen
    for a key. Expenses feed Budget, the fund breakdown, and the Personnel /
    NonPersonnel buckets; revenue feeds Revenue only.
    """
    programs: dict[ProgramKey, ProgramAggregate] = {}

    for record in records:
        if not record.program_id:
            continue

        key = program_key(record)
        program = programs.get(key)
        if program is None:
            program = ProgramAggregate(
                program_id=record.program_id,
                department=record.department,
                program_name=record.program_name,
                quartile=normalize_quartile(record.quartile),
                final_score=record.final_score,
            )
            programs[key] = program

        amount = parse_amount(record.amount)
        fund = record.fund
        if fund not in program.funds:
            program.funds.append(fund)
        program.fund_breakdown.setdefault(fund, 0.0)

        if record.acct_type == "Expense":
            program.budget += amount
            program.fund_breakdown[fund] += amount
            if record.cost_type == "Personnel":
                program.personnel += amount
            elif record.cost_type == "NonPersonnel":
                program.non_personnel += amount
        elif record.acct_type == "Revenue":
            program.revenue += amount

    return programs


def available_funds(records: Iterable[DetailRecord]) -> list[str]:
    """Distinct non-empty fund names, sorted, for the fund selector."""
    return sorted({r.fund for r in records if r.fund})
