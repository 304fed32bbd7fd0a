"""Pydantic request/response models for FastAPI's auto-generated OpenAPI docs."""

from __future__ import annotations

from pydantic import BaseModel, Field

from pipeline.models import (
    ALL_FUNDS,
    AllocationSettings,
    CalculationResult,
    FundProgressEntry,
    FundStatus,
)


class LoadResponse(BaseModel):
    records: int
    programs: int
    funds: list[str]


class FilterOptions(BaseModel):
    funds: list[str]
    quartiles: list[str]
    default_settings: AllocationSettings


class CalculateRequest(BaseModel):
    fund: str = ALL_FUNDS
    settings: AllocationSettings = Field(default_factory=AllocationSettings)


class DepartmentTotals(BaseModel):
    department: str
    program_count: int
    accounting_fund_allocation: float
    other_fund_allocations: float
    program_revenue: float
    total_resources: float


class CalculateResponse(BaseModel):
    result: CalculationResult
    departments: list[DepartmentTotals]
    progress: FundProgressEntry | None = None


class ProgressResponse(BaseModel):
    total_funds: int
    calculated: int
    saved: int
    funds: list[FundStatus]


class SaveResponse(BaseModel):
    fund: str
    progress: FundProgressEntry
