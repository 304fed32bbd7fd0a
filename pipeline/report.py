"""Tabular views of a calculation and the three-sheet Excel export."""

from __future__ import annotations

import re
from io import BytesIO

import pandas as pd

from pipeline.models import CalculationResult, is_all_funds
from pipeline.quartiles import QUARTILES

PROGRAM_REVENUE = "Program Revenue"
TOTAL_RESOURCES = "Total Resources"


def allocation_label(fund: str) -> str:
    return "Accounting Fund Allocation" if is_all_funds(fund) else f"{fund} Allocation"


def export_filename(fund: str) -> str:
    name = re.sub(r"\s+", "_", fund)
    return f"PBB_Target_Budgets_{name}.xlsx"


def department_targets(result: CalculationResult) -> pd.DataFrame:
    fund = result.summary.fund_filter
    rows = []
    for d in result.by_department:
        row = {"Department": d.department, "Program Count": d.program_count}
        row[allocation_label(fund)] = round(d.accounting_fund_allocation, 2)
        if not is_all_funds(fund):
            row["Other Fund Allocations"] = round(d.other_fund_allocations, 2)
        row[PROGRAM_REVENUE] = round(d.program_revenue, 2)
        row[TOTAL_RESOURCES] = round(d.total_resources, 2)
        rows.append(row)
    return pd.DataFrame(rows)


def program_details(result: CalculationResult) -> pd.DataFrame:
    return pd.DataFrame([
        {
            "Program": p.program_name,
            "Department": p.department,
            "Quartile": p.quartile,
            "Primary Fund": p.primary_fund,
            "Original Budget": p.budget,
            "Target Budget": round(p.target_budget, 2),
            "Change Amount": round(p.change_amount, 2),
            "Change %": round(p.change_percent, 2),
        }
        for p in result.programs
    ])


def funding_matrix(result: CalculationResult) -> pd.DataFrame:
    """Department x fund expense, plus program revenue and total resources."""
    funds = sorted({f for p in result.programs for f in p.funds if f})
    matrix: dict[str, dict] = {}
    for program in result.programs:
        row = matrix.get(program.department)
        if row is None:
            row = {"Department": program.department, PROGRAM_REVENUE: 0.0}
            row.update({f: 0.0 for f in funds})
            matrix[program.department] = row
        row[PROGRAM_REVENUE] += program.revenue
        for fund, amount in program.fund_breakdown.items():
            if fund:
                row[fund] = row.get(fund, 0.0) + amount

    rows = []
    for row in matrix.values():
        total = sum(row.get(f, 0.0) for f in funds) + row[PROGRAM_REVENUE]
        rows.append({**row, TOTAL_RESOURCES: round(total, 2)})
    return pd.DataFrame(rows, columns=["Department", PROGRAM_REVENUE, *funds, TOTAL_RESOURCES])


def quartile_funding(result: CalculationResult) -> pd.DataFrame:
    """Fund expense and program revenue stacked per quartile (4th first, for bar charts)."""
    rows = []
    for quartile in reversed(QUARTILES):
        row: dict = {"Quartile": quartile, PROGRAM_REVENUE: 0.0}
        for program in result.programs:
            if program.quartile != quartile:
                continue
            row[PROGRAM_REVENUE] += program.revenue
            for fund, amount in program.fund_breakdown.items():
                if fund:
                    row[fund] = row.get(fund, 0.0) + amount
        rows.append(row)
    return pd.DataFrame(rows).fillna(0.0)


def department_funding_sources(result: CalculationResult, top: int = 6) -> dict[str, pd.DataFrame]:
    """Funding composition for the largest departments, keyed by department."""
    sources = {}
    for dept in result.by_department[:top]:
        totals: dict[str, float] = {}
        revenue = 0.0
        for program in result.programs:
            if program.department != dept.department:
                continue
            for fund, amount in program.fund_breakdown.items():
                if fund:
                    totals[fund] = totals.get(fund, 0.0) + amount
            revenue += program.revenue
        if revenue > 0:
            totals[PROGRAM_REVENUE] = revenue
        sources[dept.department] = pd.DataFrame(
            {"Source": list(totals), "Amount": list(totals.values())}
        )
    return sources


def export_workbook(result: CalculationResult) -> bytes:
    """Serialize a calculation to an .xlsx file with three sheets."""
    buf = BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        department_targets(result).to_excel(writer, sheet_name="Department Targets", index=False)
        program_details(result).to_excel(writer, sheet_name="Program Details", index=False)
        funding_matrix(result).to_excel(writer, sheet_name="Department Funding Matrix", index=False)
    return buf.getvalue()
