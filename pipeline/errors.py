"""Exceptions raised by the allocation pipeline."""

from __future__ import annotations


class AllocationError(Exception):
    """Base class for errors the pipeline reports to its callers."""


class MissingSheetError(AllocationError, ValueError):
    """The uploaded workbook has no sheet with the expected name."""

    def __init__(self, sheet: str) -> None:
        super().__init__(f'Could not find "{sheet}" sheet in the file.')
        self.sheet = sheet


class InvalidWorkbookError(AllocationError, ValueError):
    """The upload is not a readable .xlsx workbook."""

    def __init__(self, detail: str = "") -> None:
        msg = "Error reading file. Please upload an .xlsx workbook with a Details sheet."
        super().__init__(f"{msg} ({detail})" if detail else msg)


class PreconditionError(AllocationError):
    """An operation was requested before its inputs exist (rejected, state unchanged)."""
