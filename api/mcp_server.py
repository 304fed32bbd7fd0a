"""MCP server for PBB target budget calculations.

Exposes tools that let an assistant load a summary report, calculate
fund targets, and track per-fund progress.
Uses FastMCP (v2) with stdio transport, spawned by the MCP client as a subprocess.
"""

from __future__ import annotations

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from api import queries
from pipeline.errors import AllocationError
from pipeline.models import ALL_FUNDS, AllocationSettings, DEFAULT_QUARTILE_CHANGES

mcp = FastMCP(
    "PBB Target Budgets",
    instructions=(
        "Priority-based budgeting calculator. Call load_workbook first with a path "
        "or URL to a summary report containing a Details sheet, then get_funds to "
        "see the accounting funds. Quartile changes are percentages; amounts are "
        "in US dollars."
    ),
)


@mcp.tool()
def load_workbook(source: str) -> dict:
    """Load a summary report (.xlsx) from a local path or http(s) URL.

    Returns the number of detail records, programs, and the fund names found.
    """
    try:
        return queries.load_source(source)
    except AllocationError as e:
        raise ToolError(str(e)) from e


@mcp.tool()
def get_funds() -> dict:
    """Get the fund choices ("All Funds" first), quartile names, and default settings."""
    options = queries.get_filter_options()
    return {**options, "default_settings": options["default_settings"].model_dump()}


@mcp.tool()
def calculate_targets(
    fund: str = ALL_FUNDS,
    quartile_1: float = DEFAULT_QUARTILE_CHANGES["1st Quartile"],
    quartile_2: float = DEFAULT_QUARTILE_CHANGES["2nd Quartile"],
    quartile_3: float = DEFAULT_QUARTILE_CHANGES["3rd Quartile"],
    quartile_4: float = DEFAULT_QUARTILE_CHANGES["4th Quartile"],
    protect_revenue: bool = True,
) -> dict:
    """Calculate target budgets per program and department.

    quartile_N is the percent change for the Nth quartile (negative = cut).
    With protect_revenue, programs earning revenue are never cut below it.
    Returns the summary, quartile rollups, and department rollups.
    """
    settings = AllocationSettings(
        quartile_changes={
            "1st Quartile": quartile_1,
            "2nd Quartile": quartile_2,
            "3rd Quartile": quartile_3,
            "4th Quartile": quartile_4,
        },
        protect_revenue=protect_revenue,
    )
    try:
        result = queries.calculate(fund, settings)
    except AllocationError as e:
        raise ToolError(str(e)) from e
    return result.model_dump(exclude={"programs"})


@mcp.tool()
def save_progress(fund: str) -> dict:
    """Mark a fund's latest calculation as saved. The fund must be calculated first."""
    try:
        return queries.save_progress(fund).model_dump(mode="json")
    except AllocationError as e:
        raise ToolError(str(e)) from e


@mcp.tool()
def get_progress() -> dict:
    """Get calculated / saved / pending status for every fund."""
    progress = queries.get_progress()
    return {**progress, "funds": [f.model_dump(mode="json") for f in progress["funds"]]}


@mcp.tool()
def clear_progress(confirm: bool = False) -> str:
    """Clear ALL saved fund progress. Cannot be undone; confirm must be true."""
    try:
        queries.clear_progress(confirm)
    except AllocationError as e:
        raise ToolError(str(e)) from e
    return "All progress has been cleared."


def main():
    mcp.run()


if __name__ == "__main__":
    main()
