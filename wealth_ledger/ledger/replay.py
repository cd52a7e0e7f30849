"""
Ledger Replay Engine

Reconstructs account balances at any cutoff by replaying the full
transaction history from zero.

DESIGN DECISION: Replay never starts from a cached balance or a previous
snapshot. Every call rebuilds from an all-zero state, so the result depends
only on (accounts, transactions, cutoff). A transaction that references an
account which cannot carry a balance aborts the replay; nothing is skipped.

Polarity is keyed by the group of the touched account:

    debit  ASSETS   +amount      credit ASSETS   -amount
    debit  CAPITAL  -amount      credit CAPITAL  +amount
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Iterator, Mapping, NamedTuple, Optional

from wealth_ledger.models.ledger import (
    Account,
    AccountGroup,
    Transaction,
    ZERO,
    as_utc,
)


class MissingAccountError(Exception):
    """
    A transaction references an account that cannot hold a balance.

    Fatal for the month or period being computed, never for the process.
    """

    def __init__(self, transaction_id: Optional[str], account_id: str, side: str):
        self.transaction_id = transaction_id
        self.account_id = account_id
        self.side = side
        super().__init__(self._describe())

    def _describe(self) -> str:
        if self.transaction_id is None:
            return f"{self.side.capitalize()} account {self.account_id!r} is not usable here"
        return (
            f"Transaction {self.transaction_id} {self.side} account "
            f"{self.account_id!r} does not exist"
        )


class AccountPolarityError(MissingAccountError):
    """The referenced account exists but is an INCOME/EXPENSES account."""

    def __init__(self, transaction_id: str, account_id: str, side: str, group: AccountGroup):
        self.group = group
        super().__init__(transaction_id, account_id, side)

    def _describe(self) -> str:
        return (
            f"Transaction {self.transaction_id} {self.side} account "
            f"{self.account_id!r} is a {self.group.value} account and carries no balance"
        )


class ReplayStep(NamedTuple):
    """One applied transaction and the balances it left behind."""
    transaction: Transaction
    debit_balance: Decimal
    credit_balance: Decimal


# Sign applied to the amount, per (side, group)
_POLARITY = {
    ("debit", AccountGroup.ASSETS): 1,
    ("debit", AccountGroup.CAPITAL): -1,
    ("credit", AccountGroup.ASSETS): -1,
    ("credit", AccountGroup.CAPITAL): 1,
}


def sort_transactions(transactions: Iterable[Transaction]) -> list[Transaction]:
    """Chronological order; ties keep their original order (sorted() is stable)."""
    return sorted(transactions, key=lambda txn: txn.occurred_at)


def _index_accounts(accounts: Iterable[Account]) -> dict[str, Account]:
    return {account.id: account for account in accounts}


def _resolve(
    registry: Mapping[str, Account],
    txn: Transaction,
    account_id: str,
    side: str,
) -> Account:
    account = registry.get(account_id)
    if account is None:
        raise MissingAccountError(txn.id, account_id, side)
    if not account.holds_balance:
        raise AccountPolarityError(txn.id, account_id, side, account.group)
    return account


def _apply(
    registry: Mapping[str, Account],
    balances: dict[str, Decimal],
    txn: Transaction,
) -> None:
    # Resolve both legs before touching balances so a bad credit leg
    # cannot leave a half-applied debit behind.
    debit = _resolve(registry, txn, txn.debit_account_id, "debit")
    credit = _resolve(registry, txn, txn.credit_account_id, "credit")

    balances[debit.id] = balances.get(debit.id, ZERO) + _POLARITY[("debit", debit.group)] * txn.amount
    balances[credit.id] = balances.get(credit.id, ZERO) + _POLARITY[("credit", credit.group)] * txn.amount


def _in_window(txn: Transaction, after: Optional[datetime], cutoff: datetime) -> bool:
    if txn.occurred_at > cutoff:
        return False
    return after is None or txn.occurred_at > after


def iter_replay(
    accounts: Iterable[Account],
    transactions: Iterable[Transaction],
    cutoff: datetime,
) -> Iterator[ReplayStep]:
    """
    Replay from zero, yielding after every applied transaction.

    Raises:
        MissingAccountError: When a transaction in range references an
            unknown or non-balance account.
    """
    registry = _index_accounts(accounts)
    balances = {account_id: ZERO for account_id in registry}
    cutoff = as_utc(cutoff)

    for txn in sort_transactions(transactions):
        if not _in_window(txn, None, cutoff):
            continue
        _apply(registry, balances, txn)
        yield ReplayStep(
            transaction=txn,
            debit_balance=balances[txn.debit_account_id],
            credit_balance=balances[txn.credit_account_id],
        )


def compute_balances(
    accounts: Iterable[Account],
    transactions: Iterable[Transaction],
    cutoff: datetime,
) -> dict[str, Decimal]:
    """
    Balances of every account as of `cutoff` (inclusive).

    Every account in the registry appears in the result; INCOME and
    EXPENSES accounts stay at zero.

    Raises:
        MissingAccountError: When a transaction in range references an
            unknown or non-balance account.
    """
    registry = _index_accounts(accounts)
    balances = {account_id: ZERO for account_id in registry}
    cutoff = as_utc(cutoff)

    for txn in sort_transactions(transactions):
        if _in_window(txn, None, cutoff):
            _apply(registry, balances, txn)

    return balances


def roll_forward(
    accounts: Iterable[Account],
    opening_balances: Mapping[str, Decimal],
    transactions: Iterable[Transaction],
    after: datetime,
    cutoff: datetime,
) -> dict[str, Decimal]:
    """
    Apply only the transactions in (after, cutoff] on top of known balances.

    Used to check that one snapshot's balances roll forward into the next.
    """
    registry = _index_accounts(accounts)
    balances = {account_id: ZERO for account_id in registry}
    balances.update(opening_balances)
    after, cutoff = as_utc(after), as_utc(cutoff)

    for txn in sort_transactions(transactions):
        if _in_window(txn, after, cutoff):
            _apply(registry, balances, txn)

    return balances
