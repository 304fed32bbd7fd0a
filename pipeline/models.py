"""Pydantic models shared by the pipeline, the API, and the dashboard."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from pipeline.quartiles import QUARTILES

ALL_FUNDS = "All Funds"

DEFAULT_QUARTILE_CHANGES: dict[str, float] = {
    QUARTILES[0]: 5.0,
    QUARTILES[1]: 2.0,
    QUARTILES[2]: -2.0,
    QUARTILES[3]: -5.0,
}


def is_all_funds(fund: str | None) -> bool:
    """True for the "no filter" selection."""
    return fund is None or fund == ALL_FUNDS


class DetailRecord(BaseModel):
    """One line item from the Details sheet, exactly as read."""

    model_config = ConfigDict(frozen=True)

    program_id: Any = None
    department: str = "N/A"
    program_name: str = "Unknown Program"
    fund: str | None = None
    quartile: Any = None
    final_score: Any = None
    acct_type: str | None = None
    cost_type: str | None = None
    amount: Any = None


class ProgramAggregate(BaseModel):
    program_id: Any
    department: str
    program_name: str
    quartile: Any = None
    final_score: Any = None
    personnel: float = 0.0
    non_personnel: float = 0.0
    budget: float = 0.0
    revenue: float = 0.0
    funds: list[str | None] = Field(default_factory=list)
    fund_breakdown: dict[str | None, float] = Field(default_factory=dict)

    @property
    def primary_fund(self) -> str | None:
        return self.funds[0] if self.funds else None


class AllocationResult(ProgramAggregate):
    target_budget: float
    change_amount: float
    change_percent: float


class QuartileRollup(BaseModel):
    count: int = 0
    original_budget: float = 0.0
    target_budget: float = 0.0
    change: float = 0.0
    change_percent: float = 0.0


class DepartmentRollup(BaseModel):
    department: str
    accounting_fund_allocation: float = 0.0
    other_fund_allocations: float = 0.0
    program_revenue: float = 0.0
    program_count: int = 0

    @property
    def total_resources(self) -> float:
        return self.accounting_fund_allocation + self.other_fund_allocations + self.program_revenue


class AllocationSummary(BaseModel):
    total_original: float
    total_target: float
    total_change: float
    total_change_percent: float
    fund_filter: str = ALL_FUNDS


class CalculationResult(BaseModel):
    programs: list[AllocationResult]
    summary: AllocationSummary
    by_quartile: dict[str, QuartileRollup]
    by_department: list[DepartmentRollup]


class AllocationSettings(BaseModel):
    """Per-calculation inputs, passed by value.

    ``overall_change`` is collected from the user but no formula consumes it.
    """

    quartile_changes: dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_QUARTILE_CHANGES)
    )
    protect_revenue: bool = True
    overall_change: float = 0.0


class FundProgressEntry(BaseModel):
    calculated: bool = False
    saved: bool = False
    last_calculated: datetime | None = None
    saved_at: datetime | None = None
    quartile_settings: dict[str, float] = Field(default_factory=dict)
    total_original: float = 0.0
    total_target: float = 0.0
    total_change: float = 0.0
    total_change_percent: float = 0.0


class FundStatus(BaseModel):
    fund: str
    status: Literal["Saved", "Calculated", "Pending"]
    current: bool = False
    progress: FundProgressEntry | None = None
