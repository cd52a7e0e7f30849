"""
Streamlit Frontend for Wealth Ledger

The snapshot manager and the reports that sit on top of the ledger core.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Explicit action: nothing is generated or written until the user clicks
3. Clear error messages in simple language
4. Every run reports exactly which months were committed and which failed
"""

import asyncio
from datetime import date

import streamlit as st

from wealth_ledger.audit import configure_logging, create_correlation_id
from wealth_ledger.cashflow import BridgeInvariantError
from wealth_ledger.config import get_settings
from wealth_ledger.ledger import (
    InvalidMonthError,
    MissingAccountError,
    SnapshotGenerationCancelled,
)
from wealth_ledger.models.cashflow import CashFlowBucket, ReportPeriod
from wealth_ledger.orchestrator import (
    BridgeReportFlow,
    NetWorthReportFlow,
    SnapshotJob,
    create_app_components,
)
from wealth_ledger.reports import PnLBreakdown
from wealth_ledger.services.storage import StorageError
from wealth_ledger.validation import InvalidLedgerInputError


# Page configuration
st.set_page_config(
    page_title="Wealth Ledger",
    page_icon="📒",
    layout="wide",
    initial_sidebar_state="expanded",
)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components():
    """Get or create application components (cached)."""
    configure_logging(get_settings().app.log_level)
    try:
        return create_app_components(use_storage=True)
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        return create_app_components(use_storage=False)


def main():
    """Main application entry point."""
    snapshot_job, bridge_flow, net_worth_flow, sheets_client = get_components()

    st.sidebar.title("📒 Wealth Ledger")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["🗓️ Snapshot Manager", "💧 Cash-Flow Bridge", "📈 Net Worth", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    if sheets_client is None:
        st.sidebar.warning("Google Sheets is not configured; using empty local storage.")

    if page == "🗓️ Snapshot Manager":
        render_snapshot_page(snapshot_job)
    elif page == "💧 Cash-Flow Bridge":
        render_bridge_page(bridge_flow)
    elif page == "📈 Net Worth":
        render_net_worth_page(net_worth_flow)
    elif page == "⚙️ Settings":
        render_settings_page(snapshot_job)


def _month_key(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def render_snapshot_page(snapshot_job: SnapshotJob):
    """Render the snapshot manager (single month or month range)."""
    st.title("🗓️ Snapshot Manager")
    st.markdown(
        "Rebuild monthly snapshots from the full transaction history. "
        "Existing snapshots for the same months are overwritten."
    )

    mode = st.radio("Mode", ["Single month", "Month range"], horizontal=True)
    today = date.today()

    if mode == "Single month":
        target = st.date_input("Month", value=today.replace(day=1))
        request = {"month": _month_key(target)}
    else:
        col1, col2 = st.columns(2)
        with col1:
            start = st.date_input("From month", value=date(today.year, 1, 1))
        with col2:
            end = st.date_input("To month", value=today.replace(day=1))
        request = {"start": _month_key(start), "end": _month_key(end)}

    if st.button("▶️ Generate snapshots", type="primary"):
        with st.spinner("Replaying the ledger..."):
            try:
                report = run_async(snapshot_job.run(
                    correlation_id=create_correlation_id(),
                    **request,
                ))
            except InvalidMonthError as e:
                st.error(f"❌ {e}")
                return
            except InvalidLedgerInputError as e:
                st.error(snapshot_job.validator.get_user_friendly_summary(e.result))
                return
            except SnapshotGenerationCancelled as e:
                st.warning(f"Cancelled after {len(e.completed_months)} months.")
                return
            except StorageError as e:
                st.error(f"❌ Could not read the ledger: {e}")
                return

        if report.committed_months:
            st.success(f"✅ Saved {len(report.committed_months)} snapshots.")
        for failure in report.failures:
            st.error(f"❌ {failure.month}: {failure.message}")
        if report.uncommitted_months:
            st.error(
                "❌ These months were generated but not saved: "
                + ", ".join(report.uncommitted_months)
            )
        if report.chain_mismatches:
            st.warning(
                f"⚠️ {len(report.chain_mismatches)} balances do not roll forward "
                "between consecutive months."
            )
        if report.validation and report.validation.warnings:
            with st.expander("⚠️ Ledger warnings"):
                st.text(snapshot_job.validator.get_user_friendly_summary(report.validation))

        for snapshot in report.snapshots:
            with st.expander(f"{snapshot.id} · net worth {snapshot.summary.net_worth:,.2f}"):
                col1, col2, col3 = st.columns(3)
                col1.metric("Assets", f"{snapshot.summary.total_assets:,.2f}")
                col2.metric("Liabilities", f"{snapshot.summary.total_liabilities:,.2f}")
                col3.metric("Savings", f"{snapshot.pnl_performance.savings:,.2f}")
                st.json(snapshot.to_document())

        try:
            events = run_async(snapshot_job.run_events(report.correlation_id))
        except StorageError as e:
            st.warning(f"Run log unavailable: {e}")
            events = []
        if events:
            with st.expander(f"📜 Run log ({len(events)} events)"):
                for event in events:
                    st.markdown(f"- {event.timestamp:%H:%M:%S} · {event.severity.value} · {event.description}")


def render_bridge_page(bridge_flow: BridgeReportFlow):
    """Render the cash-flow bridge report."""
    st.title("💧 Cash-Flow Bridge")
    st.markdown(
        "How your cash moved: opening → operating → investing → financing → closing, "
        "with the period's income and expense breakdown."
    )

    period = st.selectbox(
        "Period",
        options=list(ReportPeriod),
        index=1,
        format_func=lambda p: p.value.title(),
    )

    if st.button("📊 Build report", type="primary"):
        with st.spinner("Classifying cash movements..."):
            try:
                result = run_async(bridge_flow.build(period=period))
            except (MissingAccountError, BridgeInvariantError, InvalidLedgerInputError) as e:
                st.error(f"❌ {e}")
                return
            except StorageError as e:
                st.error(f"❌ Could not read the ledger: {e}")
                return

        if not result.has_bridge:
            st.info(f"📋 {result.reason}")
            return

        st.bar_chart(
            {step["name"]: float(step["value"]) for step in result.to_waterfall()}
        )
        col1, col2 = st.columns(2)
        col1.metric("Opening cash", f"{result.opening:,.2f}")
        col2.metric("Closing cash", f"{result.closing:,.2f}", delta=f"{result.net_change:,.2f}")

        for bucket in CashFlowBucket:
            details = result.details_for(bucket)
            with st.expander(f"{bucket.value} ({len(details)})"):
                for detail in details:
                    st.markdown(
                        f"- {detail.occurred_at:%Y-%m-%d} · {detail.amount:+,.2f} · "
                        f"{detail.type.value} · {detail.category or '-'} "
                        f"(rule: {detail.matched_rule.value})"
                    )

        try:
            pnl = run_async(bridge_flow.period_pnl(period=period))
        except (InvalidLedgerInputError, StorageError) as e:
            st.error(f"❌ {e}")
            return
        render_pnl(pnl)


def render_pnl(pnl: PnLBreakdown):
    """Income and expense breakdown of one period."""
    st.markdown(f"### 💰 Profit & Loss · {pnl.label}")
    col1, col2, col3 = st.columns(3)
    col1.metric("Income", f"{pnl.income.total:,.2f}")
    col2.metric("Expense", f"{pnl.expense.total:,.2f}")
    col3.metric("Savings rate", f"{pnl.savings_rate}%")

    st.markdown(
        f"- Salary: {pnl.income.salary:,.2f}\n"
        f"- Investment: {pnl.income.investment:,.2f}\n"
        f"- Other income: {pnl.income.other:,.2f}\n"
        f"- Fixed expenses: {pnl.expense.fixed:,.2f}\n"
        f"- Variable expenses: {pnl.expense.variable:,.2f}"
    )
    if pnl.expense.top_categories:
        st.bar_chart({c.name: float(c.amount) for c in pnl.expense.top_categories})
    st.caption(f"{pnl.transaction_count} transactions in this period")


def render_net_worth_page(net_worth_flow: NetWorthReportFlow):
    """Render the net-worth trend and the live reconciliation."""
    st.title("📈 Net Worth")

    try:
        trend = run_async(net_worth_flow.trend())
    except (InvalidLedgerInputError, StorageError) as e:
        st.error(f"❌ {e}")
        return

    st.line_chart({
        "net worth": {p.label: float(p.net_worth) for p in trend.history},
        "forecast": {
            p.label: float(p.forecast) for p in trend.combined if p.forecast is not None
        },
    })
    st.metric("Average monthly change", f"{trend.avg_growth:,.2f}")

    try:
        comparison = run_async(net_worth_flow.pnl_comparison())
    except (InvalidLedgerInputError, StorageError) as e:
        st.error(f"❌ {e}")
    else:
        col1, col2, col3 = st.columns(3)
        col1.metric(
            "Income this month",
            f"{comparison.current.income.total:,.2f}",
            delta=f"{comparison.income_change:,.2f}",
        )
        col2.metric(
            "Expense this month",
            f"{comparison.current.expense.total:,.2f}",
            delta=f"{comparison.expense_change:,.2f}",
            delta_color="inverse",
        )
        col3.metric(
            "Savings this month",
            f"{comparison.current.savings:,.2f}",
            delta=f"{comparison.savings_change:,.2f}",
        )
        render_pnl(comparison.current)

    if st.button("🔎 Check live balances"):
        try:
            reconciliation = run_async(net_worth_flow.reconcile())
        except MissingAccountError as e:
            st.error(f"❌ {e}")
            return

        if reconciliation.is_consistent:
            st.success("✅ Replayed ledger matches live balances.")
        else:
            st.warning(
                f"⚠️ Replayed net worth {reconciliation.reconstructed_net_worth:,.2f} "
                f"vs live {reconciliation.live_net_worth:,.2f}"
            )
            for d in reconciliation.discrepancies:
                st.markdown(
                    f"- {d.name or d.account_id}: replayed {d.reconstructed:,.2f}, "
                    f"live {d.live:,.2f}"
                )


def render_settings_page(snapshot_job: SnapshotJob):
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    from wealth_ledger.config import validate_all_settings

    status = validate_all_settings()

    sections = [
        ("Ledger", "ledger"),
        ("Google Sheets (Storage)", "google_sheets"),
        ("Application", "app"),
    ]

    for name, key in sections:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    if status.get("ledger"):
        ledger = get_settings().ledger
        st.markdown("### Ledger")
        st.markdown(
            f"- Timezone: `{ledger.timezone}`\n"
            f"- Batch size: `{ledger.batch_chunk_size}`\n"
            f"- Cash category: `{ledger.cash_category}`\n"
            f"- Equity category: `{ledger.equity_fund_category}`"
        )

    st.markdown("### Recent Activity")
    try:
        events = run_async(snapshot_job.recent_events(limit=20))
    except StorageError as e:
        st.error(f"❌ Could not read the audit log: {e}")
        events = []
    if not events:
        st.info("No audit events stored yet.")
    for event in events:
        st.markdown(
            f"- {event.timestamp:%Y-%m-%d %H:%M} · {event.event_type.value} · {event.description}"
        )

    st.markdown("---")
    st.markdown(
        "To configure the application, create a `.env` file. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
