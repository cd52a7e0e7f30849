"""Reporting package."""

from wealth_ledger.reports.net_worth import (
    AccountDiscrepancy,
    LiveReconciliation,
    NetWorthPoint,
    NetWorthTrend,
    live_summary,
    net_worth_trend,
    reconcile_live_balances,
)
from wealth_ledger.reports.pnl import (
    CategoryAmount,
    ExpenseBreakdown,
    ExpenseType,
    IncomeBreakdown,
    MonthlyPnLComparison,
    PnLBreakdown,
    classify_expense_type,
    monthly_pnl,
    monthly_pnl_comparison,
    pnl_breakdown,
)

__all__ = [
    # Net worth
    "AccountDiscrepancy",
    "LiveReconciliation",
    "NetWorthPoint",
    "NetWorthTrend",
    "live_summary",
    "net_worth_trend",
    "reconcile_live_balances",
    # Profit & loss
    "CategoryAmount",
    "ExpenseBreakdown",
    "ExpenseType",
    "IncomeBreakdown",
    "MonthlyPnLComparison",
    "PnLBreakdown",
    "classify_expense_type",
    "monthly_pnl",
    "monthly_pnl_comparison",
    "pnl_breakdown",
]
