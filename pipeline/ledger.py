"""Per-fund progress ledger: which funds have been calculated and saved.

The ledger keeps its entries in memory and writes the whole mapping through
to a store on every change. ``DuckDBStore`` keeps it in a single-row
key-value table so it survives restarts.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

import duckdb
from pydantic import TypeAdapter

from pipeline.errors import PreconditionError
from pipeline.models import AllocationSummary, FundProgressEntry, FundStatus, is_all_funds

DB_PATH = Path(__file__).resolve().parent.parent / "db" / "progress.duckdb"
LEDGER_NAMESPACE = "pbb-fund-progress"

_ENTRIES = TypeAdapter(dict[str, FundProgressEntry])


class LedgerStore(Protocol):
    def get(self) -> dict[str, FundProgressEntry]: ...

    def set(self, entries: dict[str, FundProgressEntry]) -> None: ...

    def clear(self) -> None: ...


class MemoryStore:
    """Keeps the serialized ledger in a dict. Used by tests and throwaway sessions."""

    def __init__(self, namespace: str = LEDGER_NAMESPACE) -> None:
        self.namespace = namespace
        self._data: dict[str, bytes] = {}

    def get(self) -> dict[str, FundProgressEntry]:
        payload = self._data.get(self.namespace)
        return _ENTRIES.validate_json(payload) if payload else {}

    def set(self, entries: dict[str, FundProgressEntry]) -> None:
        self._data[self.namespace] = _ENTRIES.dump_json(entries)

    def clear(self) -> None:
        self._data.pop(self.namespace, None)


class DuckDBStore:
    """Ledger JSON stored under a namespace key in a DuckDB file."""

    def __init__(self, db_path: Path | None = None, namespace: str = LEDGER_NAMESPACE) -> None:
        self.db_path = db_path or DB_PATH
        self.namespace = namespace
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as con:
            con.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    namespace VARCHAR PRIMARY KEY,
                    payload VARCHAR NOT NULL
                )
            """)

    def _connect(self) -> duckdb.DuckDBPyConnection:
        return duckdb.connect(str(self.db_path))

    def get(self) -> dict[str, FundProgressEntry]:
        with self._connect() as con:
            row = con.execute(
                "SELECT payload FROM kv_store WHERE namespace = ?", [self.namespace]
            ).fetchone()
        return _ENTRIES.validate_json(row[0]) if row else {}

    def set(self, entries: dict[str, FundProgressEntry]) -> None:
        payload = _ENTRIES.dump_json(entries).decode()
        with self._connect() as con:
            con.execute(
                "INSERT OR REPLACE INTO kv_store (namespace, payload) VALUES (?, ?)",
                [self.namespace, payload],
            )

    def clear(self) -> None:
        with self._connect() as con:
            con.execute("DELETE FROM kv_store WHERE namespace = ?", [self.namespace])


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FundProgressLedger:
    def __init__(
        self,
        store: LedgerStore | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store if store is not None else MemoryStore()
        self.clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, FundProgressEntry] = self.store.get()

    def get(self, fund: str) -> FundProgressEntry | None:
        return self._entries.get(fund)

    def entries(self) -> dict[str, FundProgressEntry]:
        return dict(self._entries)

    def record_calculation(
        self,
        fund: str | None,
        summary: AllocationSummary,
        quartile_changes: dict[str, float],
    ) -> FundProgressEntry | None:
        """Stamp a fund as calculated. Keeps any earlier save; ignores "All Funds"."""
        if is_all_funds(fund):
            return None
        with self._lock:
            previous = self._entries.get(fund)
            entry = FundProgressEntry(
                calculated=True,
                saved=previous.saved if previous else False,
                saved_at=previous.saved_at if previous else None,
                last_calculated=self.clock(),
                quartile_settings=dict(quartile_changes),
                total_original=summary.total_original,
                total_target=summary.total_target,
                total_change=summary.total_change,
                total_change_percent=summary.total_change_percent,
            )
            self._entries[fund] = entry
            self.store.set(self._entries)
        return entry

    def mark_saved(self, fund: str | None) -> FundProgressEntry:
        if is_all_funds(fund):
            raise PreconditionError(
                "Please select a specific fund and calculate results before saving."
            )
        with self._lock:
            previous = self._entries.get(fund)
            if previous is None or not previous.calculated:
                raise PreconditionError(f"No calculated results for {fund} to save.")
            entry = previous.model_copy(update={"saved": True, "saved_at": self.clock()})
            self._entries[fund] = entry
            self.store.set(self._entries)
        return entry

    def clear_all(self) -> None:
        """Drop every entry. Callers are responsible for confirming first."""
        with self._lock:
            self._entries = {}
            self.store.clear()

    def counts(self) -> dict[str, int]:
        entries = list(self._entries.values())
        return {
            "calculated": sum(1 for e in entries if e.calculated),
            "saved": sum(1 for e in entries if e.saved),
        }

    def fund_statuses(self, funds: Iterable[str], current: str | None = None) -> list[FundStatus]:
        """Status rows for every fund offered, calculated or not."""
        rows = []
        for fund in funds:
            if is_all_funds(fund):
                continue
            progress = self._entries.get(fund)
            if progress is not None and progress.saved:
                status = "Saved"
            elif progress is not None and progress.calculated:
                status = "Calculated"
            else:
                status = "Pending"
            rows.append(FundStatus(fund=fund, status=status, current=fund == current, progress=progress))
        return rows
