"""Quartile-based target budgets with the revenue-protection floor."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from pipeline.errors import PreconditionError
from pipeline.models import (
    ALL_FUNDS,
    AllocationResult,
    AllocationSettings,
    AllocationSummary,
    CalculationResult,
    DepartmentRollup,
    ProgramAggregate,
    QuartileRollup,
    is_all_funds,
)
from pipeline.quartiles import QUARTILES

if TYPE_CHECKING:
    from pipeline.ledger import FundProgressLedger


def _pct(change: float, base: float) -> float:
    return change / base * 100 if base != 0 else 0.0


def target_budget(budget: float, revenue: float, pct: float, *, protect_revenue: bool) -> float:
    """Apply one quartile percentage to a budget.

    The revenue floor only engages on a cut, and only for programs that
    bring in revenue.
    """
    target = budget * (1 + pct / 100)
    if protect_revenue and revenue > 0 and pct < 0:
        target = max(target, revenue)
    return target


def select_programs(programs: Mapping[Any, ProgramAggregate], fund: str | None) -> list[ProgramAggregate]:
    """Aggregates visible under the fund filter, minus zero-budget programs."""
    selected = list(programs.values())
    if not is_all_funds(fund):
        selected = [p for p in selected if fund in p.funds]
    return [p for p in selected if p.budget != 0]


def allocate_program(program: ProgramAggregate, settings: AllocationSettings) -> AllocationResult:
    pct = settings.quartile_changes.get(program.quartile, 0) if program.quartile in QUARTILES else 0
    target = target_budget(
        program.budget, program.revenue, pct, protect_revenue=settings.protect_revenue
    )
    change = target - program.budget
    return AllocationResult(
        **program.model_dump(),
        target_budget=target,
        change_amount=change,
        change_percent=_pct(change, program.budget),
    )


def summarize(results: list[AllocationResult], fund: str | None) -> AllocationSummary:
    total_original = sum(p.budget for p in results)
    total_target = sum(p.target_budget for p in results)
    total_change = total_target - total_original
    return AllocationSummary(
        total_original=total_original,
        total_target=total_target,
        total_change=total_change,
        total_change_percent=_pct(total_change, total_original),
        fund_filter=ALL_FUNDS if is_all_funds(fund) else fund,
    )


def rollup_quartiles(results: list[AllocationResult]) -> dict[str, QuartileRollup]:
    """One rollup per canonical quartile, present even when empty."""
    rollups: dict[str, QuartileRollup] = {}
    for quartile in QUARTILES:
        members = [p for p in results if p.quartile == quartile]
        original = sum(p.budget for p in members)
        target = sum(p.target_budget for p in members)
        rollups[quartile] = QuartileRollup(
            count=len(members),
            original_budget=original,
            target_budget=target,
            change=target - original,
            change_percent=_pct(target - original, original),
        )
    return rollups


def rollup_departments(results: list[AllocationResult], fund: str | None) -> list[DepartmentRollup]:
    """Department totals, largest allocation first.

    With a fund selected, expense a program carries under any other fund is
    reported separately as ``other_fund_allocations``.
    """
    departments: dict[str, DepartmentRollup] = {}
    for program in results:
        dept = departments.get(program.department)
        if dept is None:
            dept = departments[program.department] = DepartmentRollup(department=program.department)
        dept.accounting_fund_allocation += program.target_budget
        dept.program_revenue += program.revenue
        dept.program_count += 1
        if not is_all_funds(fund):
            dept.other_fund_allocations += sum(
                amount for name, amount in program.fund_breakdown.items() if name != fund
            )
    return sorted(departments.values(), key=lambda d: d.accounting_fund_allocation, reverse=True)


def calculate(
    programs: Mapping[Any, ProgramAggregate],
    settings: AllocationSettings | None = None,
    fund: str | None = ALL_FUNDS,
    *,
    ledger: FundProgressLedger | None = None,
) -> CalculationResult:
    """Compute target budgets and rollups for the programs under ``fund``.

    When a specific fund is selected and a ledger is given, the fund's
    progress entry is updated with this run's totals and settings.
    """
    if not programs:
        raise PreconditionError("Please upload a file first.")
    settings = settings or AllocationSettings()

    results = [allocate_program(p, settings) for p in select_programs(programs, fund)]
    summary = summarize(results, fund)
    result = CalculationResult(
        programs=results,
        summary=summary,
        by_quartile=rollup_quartiles(results),
        by_department=rollup_departments(results, fund),
    )

    if ledger is not None and not is_all_funds(fund):
        ledger.record_calculation(fund, summary, settings.quartile_changes)
    return result
