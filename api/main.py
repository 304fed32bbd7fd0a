"""FastAPI app — thin wrappers around the shared service layer."""

from __future__ import annotations

import logging
from io import BytesIO

from fastapi import FastAPI, File, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from api import queries
from api.models import (
    CalculateRequest,
    CalculateResponse,
    DepartmentTotals,
    FilterOptions,
    LoadResponse,
    ProgressResponse,
    SaveResponse,
)
from pipeline.errors import InvalidWorkbookError, MissingSheetError, PreconditionError
from pipeline.models import CalculationResult

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

app = FastAPI(
    title="PBB Target Budget API",
    description=(
        "Upload a priority-based budgeting summary report, set per-quartile "
        "budget changes, and calculate target budgets by program and department. "
        "Progress is tracked per accounting fund."
    ),
    version="0.1.0",
)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])


@app.exception_handler(MissingSheetError)
def missing_sheet_handler(request: Request, exc: MissingSheetError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(InvalidWorkbookError)
def invalid_workbook_handler(request: Request, exc: InvalidWorkbookError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(PreconditionError)
def precondition_handler(request: Request, exc: PreconditionError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.get("/health")
def health():
    """Debug endpoint — shows ledger location and session size."""
    store = queries.get_ledger().store
    return {
        "ledger_path": str(getattr(store, "db_path", "memory")),
        "funds_tracked": len(queries.get_ledger().entries()),
        "programs_loaded": len(queries._session["programs"]),
    }


@app.get("/")
def root():
    return {
        "message": "PBB Target Budget API",
        "docs": "/docs",
        "endpoints": [
            "/upload", "/funds", "/calculate", "/results",
            "/progress", "/progress/{fund}/save", "/export",
        ],
    }


@app.post("/upload", response_model=LoadResponse)
def upload(file: UploadFile = File(..., description="Summary report (.xlsx) with a Details sheet")):
    """Load a workbook, replacing any previously loaded data."""
    return queries.load_workbook_bytes(file.file.read())


@app.get("/funds", response_model=FilterOptions)
def funds():
    """Fund choices ("All Funds" first), quartiles, and default settings."""
    return queries.get_filter_options()


def _department_totals(result: CalculationResult) -> list[DepartmentTotals]:
    return [
        DepartmentTotals(**d.model_dump(), total_resources=d.total_resources)
        for d in result.by_department
    ]


@app.post("/calculate", response_model=CalculateResponse)
def calculate(body: CalculateRequest):
    """Calculate target budgets for a fund (or all funds)."""
    result = queries.calculate(body.fund, body.settings)
    return CalculateResponse(
        result=result,
        departments=_department_totals(result),
        progress=queries.get_ledger().get(body.fund),
    )


@app.get("/results", response_model=CalculateResponse)
def results():
    """The most recent calculation."""
    result = queries.get_result()
    return CalculateResponse(
        result=result,
        departments=_department_totals(result),
        progress=queries.get_ledger().get(result.summary.fund_filter),
    )


@app.post("/progress/{fund}/save", response_model=SaveResponse)
def save(fund: str):
    """Mark the current fund's calculation as saved."""
    return {"fund": fund, "progress": queries.save_progress(fund)}


@app.get("/progress", response_model=ProgressResponse)
def progress(current: str | None = Query(None, description="Fund to flag as current")):
    """Calculated / saved status for every available fund."""
    return queries.get_progress(current)


@app.delete("/progress")
def clear(confirm: bool = Query(False, description="Must be true; clearing cannot be undone")):
    """Clear all saved progress."""
    queries.clear_progress(confirm)
    return {"message": "All progress has been cleared."}


@app.get("/export")
def export():
    """Download the current results as an Excel workbook."""
    filename, content = queries.export_results()
    return StreamingResponse(
        BytesIO(content),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
