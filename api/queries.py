"""Shared service layer — all session state lives here.

Both the FastAPI endpoints and MCP tools call these functions. The session
holds the most recently loaded workbook and the last calculation; the
progress ledger is process-wide and persisted to DuckDB.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from pipeline.allocate import calculate as run_calculation
from pipeline.errors import PreconditionError
from pipeline.ingest import load_details, read_source
from pipeline.ledger import DuckDBStore, FundProgressLedger
from pipeline.models import (
    ALL_FUNDS,
    AllocationSettings,
    CalculationResult,
    FundProgressEntry,
    is_all_funds,
)
from pipeline.quartiles import QUARTILES
from pipeline.report import export_filename, export_workbook
from pipeline.transform import aggregate_programs, available_funds

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_session: dict = {
    "programs": {},
    "funds": [],
    "records": 0,
    "result": None,
    "fund": ALL_FUNDS,
}
_ledger: FundProgressLedger | None = None


def get_ledger() -> FundProgressLedger:
    """The process-wide ledger, loaded from DuckDB on first use."""
    global _ledger
    if _ledger is None:
        _ledger = FundProgressLedger(DuckDBStore())
    return _ledger


def set_ledger(ledger: FundProgressLedger | None) -> None:
    global _ledger
    _ledger = ledger


def reset_session() -> None:
    with _lock:
        _session.update(programs={}, funds=[], records=0, result=None, fund=ALL_FUNDS)


# ── 1. Loading ──


def load_workbook_bytes(data: bytes) -> dict:
    """Decode and aggregate a workbook, replacing the current session.

    A workbook without a Details sheet raises before the session is touched.
    """
    records = load_details(data)
    programs = aggregate_programs(records)
    funds = available_funds(records)
    with _lock:
        _session.update(
            programs=programs, funds=funds, records=len(records), result=None, fund=ALL_FUNDS
        )
    logger.info("Loaded %d programs from %d detail records", len(programs), len(records))
    return {"records": len(records), "programs": len(programs), "funds": funds}


def load_source(source: str | Path) -> dict:
    return load_workbook_bytes(read_source(source))


# ── 2. Filter options ──


def get_filter_options() -> dict:
    return {
        "funds": [ALL_FUNDS, *_session["funds"]],
        "quartiles": list(QUARTILES),
        "default_settings": AllocationSettings(),
    }


# ── 3. Calculation ──


def calculate(fund: str = ALL_FUNDS, settings: AllocationSettings | None = None) -> CalculationResult:
    """Run the allocation for ``fund`` and record it in the ledger."""
    settings = settings or AllocationSettings()
    with _lock:
        programs = _session["programs"]
        if programs and not is_all_funds(fund) and fund not in _session["funds"]:
            raise PreconditionError(f"Unknown fund: {fund}")
        result = run_calculation(programs, settings, fund, ledger=get_ledger())
        _session.update(result=result, fund=result.summary.fund_filter)
    logger.info(
        "Calculated %s: %d programs, original=%.2f target=%.2f",
        result.summary.fund_filter,
        len(result.programs),
        result.summary.total_original,
        result.summary.total_target,
    )
    return result


def get_result() -> CalculationResult:
    result = _session["result"]
    if result is None:
        raise PreconditionError("No results yet. Calculate target budgets first.")
    return result


# ── 4. Progress ──


def save_progress(fund: str) -> FundProgressEntry:
    """Mark ``fund`` saved. Requires a current result calculated for that fund."""
    result = _session["result"]
    if result is None or is_all_funds(fund) or result.summary.fund_filter != fund:
        raise PreconditionError("Please select a specific fund and calculate results before saving.")
    entry = get_ledger().mark_saved(fund)
    logger.info("Progress saved for %s", fund)
    return entry


def get_progress(current: str | None = None) -> dict:
    ledger = get_ledger()
    counts = ledger.counts()
    funds = _session["funds"] or sorted(ledger.entries())
    return {
        "total_funds": len(funds),
        "calculated": counts["calculated"],
        "saved": counts["saved"],
        "funds": ledger.fund_statuses(funds, current or _session["fund"]),
    }


def clear_progress(confirm: bool = False) -> None:
    """Erase every fund's progress. Irreversible, so ``confirm`` must be set."""
    if not confirm:
        raise PreconditionError("Clearing all progress cannot be undone; pass confirm=true.")
    get_ledger().clear_all()
    logger.warning("All fund progress cleared")


# ── 5. Export ──


def export_results() -> tuple[str, bytes]:
    result = get_result()
    return export_filename(result.summary.fund_filter), export_workbook(result)
