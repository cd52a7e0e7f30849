"""
Cash-Flow Bridge

Explains how the cash position moved over a period:

    opening + operating + investing + financing == closing

The opening balance is not replayed from history. It is derived backwards
from the live cash balance:

    opening = now_balance - net_flow(transactions dated >= period_start)

DESIGN DECISION: A transaction counts only when exactly one of its legs is a
cash account. Cash-to-cash transfers move nothing out of the pool and
transactions with no cash leg never touch it. The closing balance is derived
independently of the buckets and the identity is checked, so a
classification bug cannot silently produce a bridge that does not add up.
"""

from datetime import datetime, timedelta, timezone, tzinfo
from decimal import Decimal
from typing import Callable, Collection, Iterable, Optional, Union

import structlog

from wealth_ledger.cashflow.rules import DEFAULT_RULES, ClassificationRules
from wealth_ledger.ledger.replay import MissingAccountError
from wealth_ledger.models.cashflow import (
    BridgeDetail,
    BridgeStep,
    BridgeStepName,
    CashFlowBridge,
    CashFlowBucket,
    FlowDirection,
    NoCashAccounts,
    ReportPeriod,
)
from wealth_ledger.models.ledger import (
    CASH_CATEGORY,
    Account,
    AccountGroup,
    Transaction,
    ZERO,
    as_utc,
    to_decimal,
)


logger = structlog.get_logger(__name__)


class BridgeInvariantError(Exception):
    """opening + operating + investing + financing did not equal closing."""

    def __init__(self, expected_closing: Decimal, bridged_closing: Decimal):
        self.expected_closing = expected_closing
        self.bridged_closing = bridged_closing
        super().__init__(
            f"Bridge does not close: derived closing {expected_closing}, "
            f"opening plus flows {bridged_closing}"
        )


# =============================================================================
# CASH POOL HELPERS
# =============================================================================

def cash_account_ids(
    accounts: Iterable[Account],
    cash_category: str = CASH_CATEGORY,
) -> list[str]:
    """ASSETS accounts in the cash category, in registry order."""
    return [
        account.id
        for account in accounts
        if account.group == AccountGroup.ASSETS and account.category == cash_category
    ]


def live_cash_balance(accounts: Iterable[Account], ids: Collection[str]) -> Decimal:
    """Sum of the registry's live balances over the given cash accounts."""
    wanted = set(ids)
    return sum(
        (account.current_balance for account in accounts if account.id in wanted),
        ZERO,
    )


def period_start_for(
    period: ReportPeriod,
    now: datetime,
    tz: Optional[tzinfo] = None,
) -> datetime:
    """
    Start instant of a preset reporting period.

    WEEK is a rolling seven days back from now; MONTH and YEAR start at
    midnight on the first day of the calendar month/year in `tz`.
    """
    now = as_utc(now)
    if period == ReportPeriod.WEEK:
        return now - timedelta(days=7)

    local = now.astimezone(tz or timezone.utc)
    if period == ReportPeriod.MONTH:
        start = local.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    else:
        start = local.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    return start.astimezone(timezone.utc)


def cash_direction(txn: Transaction, cash_ids: Collection[str]) -> Optional[FlowDirection]:
    """
    Inflow when the cash leg is debited, outflow when it is credited.

    None when both or neither legs are cash.
    """
    debit_cash = txn.debit_account_id in cash_ids
    credit_cash = txn.credit_account_id in cash_ids
    if debit_cash == credit_cash:
        return None
    return FlowDirection.INFLOW if debit_cash else FlowDirection.OUTFLOW


def _signed(txn: Transaction, direction: FlowDirection) -> Decimal:
    return txn.amount if direction == FlowDirection.INFLOW else -txn.amount


def _net_flow(
    transactions: Iterable[Transaction],
    cash_ids: Collection[str],
    include: Callable[[datetime], bool],
) -> Decimal:
    net = ZERO
    for txn in transactions:
        if not include(txn.occurred_at):
            continue
        direction = cash_direction(txn, cash_ids)
        if direction is not None:
            net += _signed(txn, direction)
    return net


def net_cash_flow(
    transactions: Iterable[Transaction],
    cash_ids: Collection[str],
    since: datetime,
) -> Decimal:
    """Net cash movement of transactions dated at or after `since`."""
    since = as_utc(since)
    return _net_flow(transactions, cash_ids, lambda moment: moment >= since)


def _check_cash_ids(accounts: Iterable[Account], ids: Collection[str]) -> None:
    registry = {account.id: account for account in accounts}
    for account_id in ids:
        account = registry.get(account_id)
        if account is None or account.group != AccountGroup.ASSETS:
            raise MissingAccountError(None, account_id, "cash")


# =============================================================================
# BRIDGE
# =============================================================================

def compute_bridge(
    accounts: Iterable[Account],
    transactions: Iterable[Transaction],
    cash_account_ids: Collection[str],
    period_start: datetime,
    now_balance,
    period_end: Optional[datetime] = None,
    rules: ClassificationRules = DEFAULT_RULES,
) -> Union[CashFlowBridge, NoCashAccounts]:
    """
    Build the opening-to-closing cash bridge for a period.

    Args:
        accounts: Account registry
        transactions: Complete transaction log
        cash_account_ids: Accounts forming the cash pool
        period_start: First instant of the period (inclusive)
        now_balance: Live balance of the cash pool
        period_end: Last instant of the period (inclusive); None means now
        rules: Classification rule table

    Returns:
        CashFlowBridge, or NoCashAccounts when the cash pool is empty

    Raises:
        ValueError: If period_end precedes period_start
        MissingAccountError: If a cash id is not an ASSETS account
        BridgeInvariantError: If the bridge does not close
    """
    accounts = list(accounts)
    transactions = list(transactions)
    cash_ids = frozenset(cash_account_ids)
    period_start = as_utc(period_start)
    period_end = as_utc(period_end) if period_end is not None else None

    if period_end is not None and period_end < period_start:
        raise ValueError("period_end must not precede period_start")

    if not cash_ids:
        logger.info("bridge_skipped", reason="no_cash_accounts")
        return NoCashAccounts(period_start=period_start, period_end=period_end)

    _check_cash_ids(accounts, cash_ids)
    now_balance = to_decimal(now_balance)

    opening = now_balance - net_cash_flow(transactions, cash_ids, period_start)

    totals = {bucket: ZERO for bucket in CashFlowBucket}
    details: dict[CashFlowBucket, list[BridgeDetail]] = {bucket: [] for bucket in CashFlowBucket}

    for txn in transactions:
        if txn.occurred_at < period_start:
            continue
        if period_end is not None and txn.occurred_at > period_end:
            continue

        direction = cash_direction(txn, cash_ids)
        if direction is None:
            continue

        classification = rules.classify(txn)
        amount = _signed(txn, direction)
        if direction == FlowDirection.INFLOW:
            cash_leg, counterparty = txn.debit_account_id, txn.credit_account_id
        else:
            cash_leg, counterparty = txn.credit_account_id, txn.debit_account_id

        totals[classification.bucket] += amount
        details[classification.bucket].append(BridgeDetail(
            transaction_id=txn.id,
            occurred_at=txn.occurred_at,
            amount=amount,
            direction=direction,
            cash_account_id=cash_leg,
            counterparty_account_id=counterparty,
            type=txn.type,
            group=txn.group,
            category=txn.category,
            bucket=classification.bucket,
            matched_rule=classification.matched_rule,
            note=txn.note,
        ))

    if period_end is None:
        closing = now_balance
    else:
        closing = now_balance - _net_flow(
            transactions, cash_ids, lambda moment: moment > period_end
        )

    bridged = opening + sum(totals.values(), ZERO)
    if bridged != closing:
        raise BridgeInvariantError(closing, bridged)

    logger.info(
        "bridge_computed",
        period_start=period_start.isoformat(),
        period_end=period_end.isoformat() if period_end else None,
        opening=str(opening),
        closing=str(closing),
    )

    return CashFlowBridge(
        period_start=period_start,
        period_end=period_end,
        cash_account_ids=sorted(cash_ids),
        steps=[
            BridgeStep(name=BridgeStepName.OPENING, value=opening),
            BridgeStep(
                name=BridgeStepName.OPERATING,
                value=totals[CashFlowBucket.OPERATING],
                details=details[CashFlowBucket.OPERATING],
            ),
            BridgeStep(
                name=BridgeStepName.INVESTING,
                value=totals[CashFlowBucket.INVESTING],
                details=details[CashFlowBucket.INVESTING],
            ),
            BridgeStep(
                name=BridgeStepName.FINANCING,
                value=totals[CashFlowBucket.FINANCING],
                details=details[CashFlowBucket.FINANCING],
            ),
            BridgeStep(name=BridgeStepName.CLOSING, value=closing),
        ],
    )
