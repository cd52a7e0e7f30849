"""
Net-Worth Reporting

Read-side reports built on snapshots and live balances.

DESIGN DECISION: Reports are DETERMINISTIC and only show stored or replayed
numbers. The history series comes from persisted snapshots; the live point
comes from the registry's current balances; the forecast is a plain linear
extension, labelled as a forecast and never mixed into history values.
"""

from datetime import datetime, tzinfo
from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from wealth_ledger.ledger.months import month_of, shift_month
from wealth_ledger.ledger.replay import compute_balances
from wealth_ledger.ledger.snapshots import summarize_balances
from wealth_ledger.models.ledger import (
    EQUITY_FUND_CATEGORY,
    Account,
    AccountGroup,
    MonthlySnapshot,
    SnapshotSummary,
    Transaction,
    ZERO,
    as_utc,
)


LIVE_LABEL = "Now"

# Points used for the average monthly change
GROWTH_WINDOW = 4


class NetWorthPoint(BaseModel):
    """One point of the trend chart."""

    label: str = Field(
        ...,
        description="Month key YYYY-MM, or 'Now' for the live point"
    )
    assets: Optional[Decimal] = None
    liabilities: Optional[Decimal] = None
    net_worth: Optional[Decimal] = None
    forecast: Optional[Decimal] = None
    is_live: bool = False


class NetWorthTrend(BaseModel):
    """History, live point and forecast of net worth."""

    history: list[NetWorthPoint] = Field(default_factory=list)
    forecast: list[NetWorthPoint] = Field(default_factory=list)
    avg_growth: Decimal = ZERO

    @property
    def combined(self) -> list[NetWorthPoint]:
        return [*self.history, *self.forecast]


class AccountDiscrepancy(BaseModel):
    """An account whose replayed balance differs from its live balance."""

    account_id: str
    name: Optional[str] = None
    group: AccountGroup
    reconstructed: Decimal
    live: Decimal

    @property
    def difference(self) -> Decimal:
        return self.live - self.reconstructed


class LiveReconciliation(BaseModel):
    """Replayed ledger compared against the registry's live balances."""

    as_of: datetime
    reconstructed_net_worth: Decimal
    live_net_worth: Decimal
    discrepancies: list[AccountDiscrepancy] = Field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.discrepancies and self.reconstructed_net_worth == self.live_net_worth


def live_summary(
    accounts: Iterable[Account],
    equity_fund_category: str = EQUITY_FUND_CATEGORY,
) -> SnapshotSummary:
    """Balance-sheet totals from the registry's current balances."""
    accounts = list(accounts)
    live = {account.id: account.current_balance for account in accounts}
    return summarize_balances(accounts, live, equity_fund_category)


def net_worth_trend(
    snapshots: Iterable[MonthlySnapshot],
    accounts: Iterable[Account],
    now: datetime,
    forecast_months: int = 6,
    equity_fund_category: str = EQUITY_FUND_CATEGORY,
    tz: Optional[tzinfo] = None,
) -> NetWorthTrend:
    """
    Build the net-worth trend.

    History points come from snapshots in month order. A live "Now" point is
    appended when the current month has no snapshot. The forecast continues
    from the last point by the average monthly change over the last (up to)
    four points.
    """
    history = [
        NetWorthPoint(
            label=snapshot.id,
            assets=snapshot.summary.total_assets,
            liabilities=snapshot.summary.total_liabilities,
            net_worth=snapshot.summary.net_worth,
        )
        for snapshot in sorted(snapshots, key=lambda s: s.id)
    ]

    current_month = month_of(now, tz)
    if not any(point.label == current_month for point in history):
        summary = live_summary(accounts, equity_fund_category)
        history.append(NetWorthPoint(
            label=LIVE_LABEL,
            assets=summary.total_assets,
            liabilities=summary.total_liabilities,
            net_worth=summary.net_worth,
            is_live=True,
        ))

    avg_growth = ZERO
    if len(history) > 1:
        recent = history[-GROWTH_WINDOW:]
        avg_growth = (recent[-1].net_worth - recent[0].net_worth) / (len(recent) - 1)

    last = history[-1]
    last.forecast = last.net_worth

    # Forecast months follow the latest month on the chart, which can be
    # later than today when a future month was snapshotted.
    forecast_from = max(
        [point.label for point in history if not point.is_live] + [current_month]
    )

    forecast = []
    running = last.net_worth
    for step in range(1, forecast_months + 1):
        running += avg_growth
        forecast.append(NetWorthPoint(
            label=shift_month(forecast_from, step),
            forecast=running,
        ))

    return NetWorthTrend(history=history, forecast=forecast, avg_growth=avg_growth)


def reconcile_live_balances(
    accounts: Iterable[Account],
    transactions: Iterable[Transaction],
    as_of: datetime,
    equity_fund_category: str = EQUITY_FUND_CATEGORY,
) -> LiveReconciliation:
    """
    Replay the full ledger to `as_of` and compare with live balances.

    Raises:
        MissingAccountError: When the replay hits a bad account reference
    """
    accounts = list(accounts)
    as_of = as_utc(as_of)
    replayed = compute_balances(accounts, transactions, as_of)

    discrepancies = [
        AccountDiscrepancy(
            account_id=account.id,
            name=account.name,
            group=account.group,
            reconstructed=replayed.get(account.id, ZERO),
            live=account.current_balance,
        )
        for account in accounts
        if account.holds_balance and replayed.get(account.id, ZERO) != account.current_balance
    ]

    return LiveReconciliation(
        as_of=as_of,
        reconstructed_net_worth=summarize_balances(
            accounts, replayed, equity_fund_category
        ).net_worth,
        live_net_worth=live_summary(accounts, equity_fund_category).net_worth,
        discrepancies=discrepancies,
    )
