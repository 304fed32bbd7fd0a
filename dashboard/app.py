"""Streamlit dashboard for priority-based budgeting target budgets."""

from __future__ import annotations

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from pipeline.allocate import calculate
from pipeline.errors import AllocationError
from pipeline.ingest import load_details
from pipeline.ledger import DuckDBStore, FundProgressLedger
from pipeline.models import ALL_FUNDS, DEFAULT_QUARTILE_CHANGES, AllocationSettings, is_all_funds
from pipeline.quartiles import QUARTILES
from pipeline.report import (
    PROGRAM_REVENUE,
    allocation_label,
    department_funding_sources,
    export_filename,
    export_workbook,
    program_details,
    quartile_funding,
)
from pipeline.transform import aggregate_programs, available_funds

st.set_page_config(
    page_title="PBB Target Budget Calculator",
    page_icon="\U0001f4b0",
    layout="wide",
)

FUND_COLORS = [
    "#667eea", "#764ba2", "#f093fb", "#4facfe", "#43e97b",
    "#fa709a", "#feca57", "#48dbfb", "#ff9ff3", "#54a0ff",
]
REVENUE_COLOR = "#28a745"


def money(x: float) -> str:
    return f"-${abs(x):,.0f}" if x < 0 else f"${x:,.0f}"


@st.cache_resource
def _ledger() -> FundProgressLedger:
    return FundProgressLedger(DuckDBStore())


@st.cache_data
def _load(data: bytes):
    records = load_details(data)
    return aggregate_programs(records), available_funds(records), len(records)


ledger = _ledger()

st.title("PBB Target Budget Calculator")
st.caption("Upload your Summary Report and configure target budgets using Priority Based Budgeting")

# ── Upload ──
uploaded = st.file_uploader("Choose Summary Report File", type=["xlsx"])
if uploaded is None:
    st.info("Upload a workbook with a **Details** sheet to begin.")
    st.stop()

try:
    programs, funds, record_count = _load(uploaded.getvalue())
except AllocationError as e:
    st.error(f"Error: {e}")
    st.stop()
st.success(f"Loaded {len(programs):,} programs from {record_count:,} detail records.")

# ── Sidebar configuration ──
st.sidebar.title("Configuration")
fund = st.sidebar.selectbox("Accounting Fund", options=[ALL_FUNDS, *funds])
overall_change = st.sidebar.number_input("Overall Budget Change (%)", value=0.0, step=0.1)
protect_revenue = st.sidebar.checkbox("Protect Revenue-Generating Programs", value=True)

st.sidebar.subheader("Quartile Budget Changes (%)")
quartile_changes = {
    q: st.sidebar.number_input(q, value=DEFAULT_QUARTILE_CHANGES[q], step=0.1, key=f"q_{q}")
    for q in QUARTILES
}
settings = AllocationSettings(
    quartile_changes=quartile_changes,
    protect_revenue=protect_revenue,
    overall_change=overall_change,
)

if st.sidebar.button("Calculate Target Budgets", type="primary"):
    try:
        st.session_state["result"] = calculate(programs, settings, fund, ledger=ledger)
    except AllocationError as e:
        st.sidebar.warning(str(e))

# ── Fund progress dashboard ──
with st.expander("Fund Progress Dashboard", expanded=False):
    counts = ledger.counts()
    c1, c2, c3 = st.columns(3)
    c1.metric("Total Funds", len(funds))
    c2.metric("Calculated", counts["calculated"])
    c3.metric("Saved", counts["saved"])

    rows = []
    for status in ledger.fund_statuses(funds, current=fund):
        p = status.progress
        rows.append({
            "Fund": status.fund + (" (current)" if status.current else ""),
            "Status": status.status,
            "Original Budget": money(p.total_original) if p else "-",
            "Target Budget": money(p.total_target) if p else "-",
            "Change": money(p.total_change) if p else "-",
            "Change %": f"{p.total_change_percent:.2f}%" if p else "-",
            "Last Updated": p.last_calculated.strftime("%Y-%m-%d %H:%M") if p and p.last_calculated else "-",
        })
    st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)

    if ledger.entries():
        confirm = st.checkbox("I understand clearing all progress cannot be undone")
        if st.button("Clear All Progress", disabled=not confirm):
            ledger.clear_all()
            st.success("All progress has been cleared.")
            st.rerun()

result = st.session_state.get("result")
if result is None:
    st.stop()

summary = result.summary
st.header(f"Results ({summary.fund_filter})" if not is_all_funds(summary.fund_filter) else "Results")

action_save, action_export = st.columns(2)
with action_save:
    if not is_all_funds(fund):
        entry = ledger.get(fund)
        if st.button("Saved" if entry and entry.saved else "Save Progress"):
            try:
                if summary.fund_filter != fund:
                    raise AllocationError("Please select a specific fund and calculate results before saving.")
                ledger.mark_saved(fund)
                st.success(f"Progress saved for {fund}!")
            except AllocationError as e:
                st.warning(str(e))
with action_export:
    st.download_button(
        "Export to Excel",
        data=export_workbook(result),
        file_name=export_filename(summary.fund_filter),
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )

tab_summary, tab_charts = st.tabs(["Summary & Tables", "Visualizations"])

# ── TAB 1: Summary & tables ──
with tab_summary:
    col1, col2, col3 = st.columns(3)
    col1.metric("Original Budget", money(summary.total_original))
    col2.metric("Target Budget", money(summary.total_target))
    col3.metric(
        "Total Change",
        money(summary.total_change),
        f"{summary.total_change_percent:.2f}%",
    )

    st.subheader("By Quartile")
    for col, (quartile, q) in zip(st.columns(4), result.by_quartile.items()):
        with col:
            st.markdown(f"**{quartile}**")
            st.write(f"Programs: {q.count}")
            st.write(f"Original: {money(q.original_budget)}")
            st.write(f"Target: {money(q.target_budget)}")
            st.write(f"Change: {money(q.change)} ({q.change_percent:.2f}%)")

    st.subheader("Department Targets")
    dept_rows = []
    for d in result.by_department:
        row = {"Department": d.department, "Programs": d.program_count}
        row[allocation_label(summary.fund_filter)] = d.accounting_fund_allocation
        if not is_all_funds(summary.fund_filter):
            row["Other Fund Allocations"] = d.other_fund_allocations
        row[PROGRAM_REVENUE] = d.program_revenue
        row["Total Resources"] = d.total_resources
        dept_rows.append(row)
    dept_df = pd.DataFrame(dept_rows)
    if not dept_df.empty:
        totals = dept_df.drop(columns=["Department"]).sum()
        dept_df = pd.concat(
            [dept_df, pd.DataFrame([{"Department": "TOTAL", **totals.to_dict()}])],
            ignore_index=True,
        )
        money_cols = [c for c in dept_df.columns if c not in ("Department", "Programs")]
        st.dataframe(
            dept_df,
            use_container_width=True,
            hide_index=True,
            column_config={
                c: st.column_config.NumberColumn(c, format="$ %.0f") for c in money_cols
            },
        )

    st.subheader("Program Details")
    details = program_details(result)
    if not details.empty:
        st.dataframe(
            details.drop(columns=["Primary Fund"]),
            use_container_width=True,
            hide_index=True,
            column_config={
                "Original Budget": st.column_config.NumberColumn("Original Budget", format="$ %.0f"),
                "Target Budget": st.column_config.NumberColumn("Target Budget", format="$ %.0f"),
                "Change Amount": st.column_config.NumberColumn("Change", format="$ %.0f"),
                "Change %": st.column_config.NumberColumn("Change %", format="%.2f%%"),
            },
        )

# ── TAB 2: Visualizations ──
with tab_charts:
    st.subheader("Quartile Funding Breakdown")
    st.caption("Funding sources by quartile")
    qf = quartile_funding(result)
    fund_cols = [c for c in qf.columns if c not in ("Quartile", PROGRAM_REVENUE)][:10]
    fig = go.Figure()
    fig.add_bar(y=qf["Quartile"], x=qf[PROGRAM_REVENUE], name=PROGRAM_REVENUE,
                orientation="h", marker_color=REVENUE_COLOR)
    for i, f in enumerate(fund_cols):
        fig.add_bar(y=qf["Quartile"], x=qf[f], name=f, orientation="h",
                    marker_color=FUND_COLORS[i % len(FUND_COLORS)])
    fig.update_layout(barmode="stack", height=400, margin=dict(l=10, r=10, t=10, b=10))
    st.plotly_chart(fig, use_container_width=True)

    st.subheader("Department Funding Sources")
    st.caption("Funding composition for top departments")
    sources = department_funding_sources(result)
    cols = st.columns(2)
    for i, (dept, frame) in enumerate(sources.items()):
        with cols[i % 2]:
            st.markdown(f"**{dept}**")
            if frame.empty:
                st.info("No funding data.")
                continue
            pie = go.Figure(go.Pie(
                labels=frame["Source"],
                values=frame["Amount"],
                marker=dict(colors=FUND_COLORS),
                textinfo="percent",
            ))
            pie.update_layout(height=300, margin=dict(l=10, r=10, t=10, b=10))
            st.plotly_chart(pie, use_container_width=True)
