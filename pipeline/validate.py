"""Data validation checks for an uploaded PBB summary workbook.

Run before calculating targets to catch data quality issues in the
Details sheet.

Usage:
    uv run python -m pipeline.validate path/to/summary_report.xlsx
"""

from __future__ import annotations

import sys
from pathlib import Path

from pipeline.errors import MissingSheetError
from pipeline.ingest import ingest
from pipeline.quartiles import QUARTILES
from pipeline.transform import aggregate_programs, available_funds

# Cent-level tolerance for float sums
TOLERANCE = 0.01

passed = 0
failed = 0
warnings = 0


def _check(name: str, ok: bool, detail: str = "") -> None:
    global passed, failed
    if ok:
        passed += 1
        print(f"  PASS  {name}")
    else:
        failed += 1
        msg = f"  FAIL  {name}"
        if detail:
            msg += f" — {detail}"
        print(msg)


def _warn(name: str, detail: str) -> None:
    global warnings
    warnings += 1
    print(f"  WARN  {name} — {detail}")


def validate(source: str | Path) -> int:
    """Run all validation checks. Returns number of failures."""
    global passed, failed, warnings
    passed = failed = warnings = 0

    print("=" * 60)
    print("Workbook Validation")
    print("=" * 60)

    # ── 1. Sheet present ──
    print("\n-- Details sheet --")
    try:
        records = ingest(source)
    except MissingSheetError as e:
        _check("Details sheet exists", False, str(e))
        return failed
    _check("Details sheet exists", True)
    _check("Details has rows", len(records) > 0, f"got {len(records):,} rows")

    skipped = sum(1 for r in records if not r.program_id)
    if skipped:
        _warn("Rows without program_id", f"{skipped:,} rows will be ignored")

    # ── 2. Funds ──
    print("\n-- Funds --")
    funds = available_funds(records)
    _check("At least one fund", len(funds) > 0, f"funds: {funds[:5]}")

    # ── 3. Aggregate invariants ──
    print("\n-- Program aggregates --")
    programs = aggregate_programs(records)
    _check("At least one program", len(programs) > 0)

    breakdown_mismatch = [
        p for p in programs.values()
        if abs(p.budget - sum(p.fund_breakdown.values())) > TOLERANCE
    ]
    _check(
        "Budget equals fund breakdown total",
        not breakdown_mismatch,
        f"{len(breakdown_mismatch)} programs differ",
    )

    split_mismatch = [
        p for p in programs.values()
        if abs(p.budget - (p.personnel + p.non_personnel)) > TOLERANCE
    ]
    if split_mismatch:
        _warn(
            "Budget vs Personnel + NonPersonnel",
            f"{len(split_mismatch)} programs have expense with an unrecognized cost type",
        )
    else:
        _check("Budget equals Personnel + NonPersonnel", True)

    # ── 4. Quartiles ──
    print("\n-- Quartiles --")
    unmapped = sorted({str(p.quartile) for p in programs.values() if p.quartile not in QUARTILES})
    if unmapped:
        _warn("Unrecognized quartile labels", f"{unmapped[:5]} receive a 0% change")
    else:
        _check("All quartile labels recognized", True)

    # ── 5. Zero budgets ──
    zero = sum(1 for p in programs.values() if p.budget == 0)
    if zero:
        _warn("Zero-budget programs", f"{zero:,} excluded from calculations")

    # ── Summary ──
    print("\n" + "=" * 60)
    print(f"Results: {passed} passed, {failed} failed, {warnings} warnings")
    print("=" * 60)

    return failed


def main() -> None:
    if len(sys.argv) != 2:
        print("usage: python -m pipeline.validate <workbook.xlsx | url>")
        sys.exit(2)
    failures = validate(sys.argv[1])
    sys.exit(1 if failures > 0 else 0)


if __name__ == "__main__":
    main()
