"""
Snapshot Generator

Materializes one MonthlySnapshot per requested month: balances at the
month's last instant plus the month's income/expense performance.

DESIGN DECISION: Months are computed independently. Each month gets a fresh
full replay to its own cutoff and a separate pass for PnL; nothing is
carried over from the previous month. This makes a month's result
independent of which other months were requested, and lets one month fail
(unknown account) without stopping the rest.
"""

from datetime import datetime, timezone, tzinfo
from decimal import Decimal
from typing import Callable, Iterable, Mapping, Optional

import structlog
from pydantic import BaseModel, Field

from wealth_ledger.ledger.months import month_bounds, normalize_months
from wealth_ledger.ledger.replay import (
    MissingAccountError,
    compute_balances,
    roll_forward,
)
from wealth_ledger.models.ledger import (
    EQUITY_FUND_CATEGORY,
    Account,
    AccountBalanceDetail,
    AccountGroup,
    MonthlySnapshot,
    PnLPerformance,
    SnapshotSummary,
    Transaction,
    TransactionGroup,
    ZERO,
)


logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# RESULT TYPES
# =============================================================================

class SnapshotFailure(BaseModel):
    """A month that could not be generated."""

    month: str
    error_type: str
    message: str
    transaction_id: Optional[str] = None
    account_id: Optional[str] = None


class SnapshotRun(BaseModel):
    """Outcome of one generation call: snapshots built plus months that failed."""

    snapshots: list[MonthlySnapshot] = Field(default_factory=list)
    failures: list[SnapshotFailure] = Field(default_factory=list)

    @property
    def generated_months(self) -> list[str]:
        return [snapshot.id for snapshot in self.snapshots]

    @property
    def failed_months(self) -> list[str]:
        return [failure.month for failure in self.failures]

    @property
    def is_complete(self) -> bool:
        return not self.failures


class ChainMismatch(BaseModel):
    """Two consecutive snapshots that do not roll forward into each other."""

    month: str
    previous_month: str
    account_id: Optional[str] = None
    expected: Optional[Decimal] = Field(
        default=None,
        description="Balance obtained by rolling the previous snapshot forward"
    )
    actual: Optional[Decimal] = Field(
        default=None,
        description="Balance stored in this month's snapshot"
    )
    reason: str = "balance_mismatch"


class SnapshotGenerationCancelled(Exception):
    """
    Raised when the caller's cancellation check fires between months.

    Carries everything completed before the check so the caller may still
    persist it.
    """

    def __init__(
        self,
        completed_months: list[str],
        snapshots: list[MonthlySnapshot],
        failures: Optional[list[SnapshotFailure]] = None,
    ):
        self.completed_months = completed_months
        self.snapshots = snapshots
        self.failures = failures or []
        super().__init__(
            f"Snapshot generation cancelled after {len(completed_months)} months"
        )


# =============================================================================
# AGGREGATION
# =============================================================================

def summarize_balances(
    accounts: Iterable[Account],
    balances: Mapping[str, Decimal],
    equity_fund_category: str = EQUITY_FUND_CATEGORY,
) -> SnapshotSummary:
    """
    Aggregate balances into balance-sheet totals.

    ASSETS count as assets. CAPITAL in the equity-fund category counts as
    equity; any other CAPITAL is a liability. Net worth excludes equity.
    """
    total_assets = ZERO
    total_liabilities = ZERO
    total_equity = ZERO

    for account in accounts:
        balance = balances.get(account.id, ZERO)
        if account.group == AccountGroup.ASSETS:
            total_assets += balance
        elif account.group == AccountGroup.CAPITAL:
            if account.category == equity_fund_category:
                total_equity += balance
            else:
                total_liabilities += balance

    return SnapshotSummary(
        net_worth=total_assets - total_liabilities,
        total_assets=total_assets,
        total_liabilities=total_liabilities,
        total_equity=total_equity,
    )


def compute_pnl(
    transactions: Iterable[Transaction],
    start: datetime,
    end: datetime,
) -> PnLPerformance:
    """
    Income and expense of transactions dated within [start, end].

    Goes by the transaction's reporting group, not by the accounts it
    touches, so no polarity is involved.
    """
    income = ZERO
    expense = ZERO

    for txn in transactions:
        if not start <= txn.occurred_at <= end:
            continue
        if txn.group == TransactionGroup.INCOME:
            income += txn.amount
        elif txn.group == TransactionGroup.EXPENSES:
            expense += txn.amount

    return PnLPerformance(income=income, expense=expense, savings=income - expense)


def build_snapshot(
    accounts: list[Account],
    transactions: list[Transaction],
    month: str,
    created_at: datetime,
    tz: Optional[tzinfo] = None,
    equity_fund_category: str = EQUITY_FUND_CATEGORY,
) -> MonthlySnapshot:
    """
    Build the snapshot of a single month from scratch.

    Raises:
        MissingAccountError: When replay up to the month end hits a bad
            account reference.
    """
    start, cutoff = month_bounds(month, tz)
    balances = compute_balances(accounts, transactions, cutoff)

    return MonthlySnapshot(
        id=month,
        snapshot_date=cutoff,
        summary=summarize_balances(accounts, balances, equity_fund_category),
        accounts_detail=[
            AccountBalanceDetail(
                id=account.id,
                name=account.name,
                group=account.group,
                category=account.category,
                balance=balances.get(account.id, ZERO),
            )
            for account in accounts
        ],
        pnl_performance=compute_pnl(transactions, start, cutoff),
        created_at=created_at,
    )


# =============================================================================
# GENERATION
# =============================================================================

def generate_snapshots(
    accounts: Iterable[Account],
    transactions: Iterable[Transaction],
    months: Iterable[str],
    tz: Optional[tzinfo] = None,
    clock: Clock = utc_now,
    should_cancel: Optional[Callable[[], bool]] = None,
    equity_fund_category: str = EQUITY_FUND_CATEGORY,
) -> SnapshotRun:
    """
    Generate snapshots for an explicit list of months.

    Args:
        accounts: Account registry
        transactions: Complete transaction log
        months: Month keys ("YYYY-MM"); validated and de-duplicated first
        tz: Timezone the months are calendared in (default UTC)
        clock: Source of `created_at`; pass a fixed clock for
            byte-identical regeneration
        should_cancel: Checked before each month; returning True raises
            SnapshotGenerationCancelled
        equity_fund_category: CAPITAL category counted as equity

    Returns:
        SnapshotRun with the generated snapshots and per-month failures

    Raises:
        InvalidMonthError: For any malformed month key (before any work)
        SnapshotGenerationCancelled: When should_cancel fires
    """
    accounts = list(accounts)
    transactions = list(transactions)
    month_list = normalize_months(list(months))
    for month in month_list:
        month_bounds(month, tz)

    run = SnapshotRun()
    total = len(month_list)

    for position, month in enumerate(month_list, start=1):
        if should_cancel is not None and should_cancel():
            logger.warning(
                "snapshot_generation_cancelled",
                completed=len(run.snapshots) + len(run.failures),
                total=total,
            )
            raise SnapshotGenerationCancelled(
                completed_months=run.generated_months,
                snapshots=run.snapshots,
                failures=run.failures,
            )

        logger.info("snapshot_processing", month=month, position=position, total=total)

        try:
            snapshot = build_snapshot(
                accounts,
                transactions,
                month,
                created_at=clock(),
                tz=tz,
                equity_fund_category=equity_fund_category,
            )
        except MissingAccountError as e:
            logger.error(
                "snapshot_failed",
                month=month,
                error=str(e),
                transaction_id=e.transaction_id,
                account_id=e.account_id,
            )
            run.failures.append(SnapshotFailure(
                month=month,
                error_type=type(e).__name__,
                message=str(e),
                transaction_id=e.transaction_id,
                account_id=e.account_id,
            ))
            continue

        logger.info(
            "snapshot_generated",
            month=month,
            net_worth=str(snapshot.summary.net_worth),
        )
        run.snapshots.append(snapshot)

    return run


# =============================================================================
# CONSISTENCY CHECKS
# =============================================================================

def check_accounting_identity(
    snapshot: MonthlySnapshot,
    equity_fund_category: str = EQUITY_FUND_CATEGORY,
) -> bool:
    """Net worth equals ASSETS minus non-equity CAPITAL in the stored detail."""
    assets = sum(
        (d.balance for d in snapshot.accounts_detail if d.group == AccountGroup.ASSETS),
        ZERO,
    )
    liabilities = sum(
        (
            d.balance for d in snapshot.accounts_detail
            if d.group == AccountGroup.CAPITAL and d.category != equity_fund_category
        ),
        ZERO,
    )
    return assets - liabilities == snapshot.summary.net_worth


def verify_snapshot_chain(
    accounts: Iterable[Account],
    transactions: Iterable[Transaction],
    snapshots: Iterable[MonthlySnapshot],
) -> list[ChainMismatch]:
    """
    Check that each snapshot rolls forward into the next one.

    For every consecutive pair (by snapshot date), the transactions dated in
    (previous.snapshot_date, current.snapshot_date] are applied to the
    previous snapshot's balances; the result must equal the current
    snapshot's balances account by account.
    """
    accounts = list(accounts)
    transactions = list(transactions)
    ordered = sorted(snapshots, key=lambda s: s.snapshot_date)

    mismatches = []
    for previous, current in zip(ordered, ordered[1:]):
        try:
            expected = roll_forward(
                accounts,
                previous.balances(),
                transactions,
                after=previous.snapshot_date,
                cutoff=current.snapshot_date,
            )
        except MissingAccountError as e:
            mismatches.append(ChainMismatch(
                month=current.id,
                previous_month=previous.id,
                account_id=e.account_id,
                reason=f"replay_failed: {e}",
            ))
            continue

        actual = current.balances()
        for account_id in sorted(set(expected) | set(actual)):
            want = expected.get(account_id, ZERO)
            have = actual.get(account_id, ZERO)
            if want != have:
                mismatches.append(ChainMismatch(
                    month=current.id,
                    previous_month=previous.id,
                    account_id=account_id,
                    expected=want,
                    actual=have,
                ))

    if mismatches:
        logger.warning("snapshot_chain_mismatch", count=len(mismatches))
    return mismatches
