"""
Tests for the ledger replay engine.
"""

import random

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from wealth_ledger.ledger.replay import (
    AccountPolarityError,
    MissingAccountError,
    compute_balances,
    iter_replay,
    roll_forward,
    sort_transactions,
)
from wealth_ledger.models.ledger import Account, Transaction


JAN_END = datetime(2024, 1, 31, 23, 59, 59, 999999, tzinfo=timezone.utc)


def _account(account_id, group, category=""):
    return Account(id=account_id, name=account_id.title(), group=group, category=category)


def _txn(txn_id, when, amount, debit, credit, type_="INTERNAL_TRANSFER", group="ASSETS", category=""):
    return Transaction(
        id=txn_id,
        occurred_at=when,
        amount=Decimal(str(amount)),
        debit_account_id=debit,
        credit_account_id=credit,
        type=type_,
        group=group,
        category=category,
    )


@pytest.fixture
def accounts():
    return [
        _account("cash", "ASSETS", "Cash"),
        _account("bank", "ASSETS", "Savings"),
        _account("fund", "CAPITAL", "Equity Fund"),
        _account("loan", "CAPITAL", "Bank Loan"),
        _account("salary", "INCOME", "Salary"),
    ]


class TestPolarity:
    """Tests for debit/credit polarity by account group."""

    def test_equity_withdrawal_scenario(self):
        """Withdrawing from the equity fund into cash raises both balances."""
        accounts = [
            _account("cash", "ASSETS", "Cash"),
            _account("emergency", "CAPITAL", "Equity Fund"),
        ]
        transactions = [
            _txn("t1", datetime(2024, 1, 5, tzinfo=timezone.utc), 1_000_000,
                 "cash", "emergency", "CAPITAL_WITHDRAWAL", "CAPITAL", "Equity Fund"),
        ]

        balances = compute_balances(accounts, transactions, JAN_END)

        assert balances["cash"] == Decimal("1000000")
        assert balances["emergency"] == Decimal("1000000")

    def test_asset_to_asset_transfer(self, accounts):
        """A transfer moves value between two asset accounts."""
        transactions = [
            _txn("t1", datetime(2024, 1, 2, tzinfo=timezone.utc), 300, "bank", "cash"),
        ]
        balances = compute_balances(accounts, transactions, JAN_END)
        assert balances["bank"] == Decimal("300")
        assert balances["cash"] == Decimal("-300")

    def test_debt_repayment_reduces_liability(self, accounts):
        """Debiting a CAPITAL account lowers it; crediting cash lowers cash."""
        transactions = [
            _txn("t1", datetime(2024, 1, 2, tzinfo=timezone.utc), 1000, "cash", "loan", "BORROWING", "CAPITAL"),
            _txn("t2", datetime(2024, 1, 20, tzinfo=timezone.utc), 400, "loan", "cash", "DEBT_REPAYMENT", "CAPITAL"),
        ]
        balances = compute_balances(accounts, transactions, JAN_END)
        assert balances["loan"] == Decimal("600")
        assert balances["cash"] == Decimal("600")

    def test_every_account_is_reported(self, accounts):
        """Untouched and INCOME accounts appear with zero."""
        balances = compute_balances(accounts, [], JAN_END)
        assert set(balances) == {"cash", "bank", "fund", "loan", "salary"}
        assert all(value == Decimal("0") for value in balances.values())


class TestReplayErrors:
    """Tests for unresolvable legs."""

    def test_credit_to_income_account_raises(self, accounts):
        """A leg resolving to an INCOME account aborts the replay."""
        transactions = [
            _txn("t1", datetime(2024, 1, 3, tzinfo=timezone.utc), 2_000_000,
                 "cash", "salary", "DAILY_CASHFLOW", "INCOME", "Salary"),
        ]
        with pytest.raises(AccountPolarityError) as exc_info:
            compute_balances(accounts, transactions, JAN_END)

        error = exc_info.value
        assert isinstance(error, MissingAccountError)
        assert error.transaction_id == "t1"
        assert error.account_id == "salary"
        assert error.side == "credit"
        assert "INCOME" in str(error)

    def test_unknown_account_raises(self, accounts):
        """A leg referencing an unknown id raises MissingAccountError."""
        transactions = [
            _txn("t9", datetime(2024, 1, 3, tzinfo=timezone.utc), 10, "ghost", "cash"),
        ]
        with pytest.raises(MissingAccountError) as exc_info:
            compute_balances(accounts, transactions, JAN_END)
        assert exc_info.value.side == "debit"
        assert exc_info.value.account_id == "ghost"

    def test_bad_transaction_after_cutoff_is_ignored(self, accounts):
        """Only transactions in range are resolved."""
        transactions = [
            _txn("t1", datetime(2024, 1, 3, tzinfo=timezone.utc), 10, "bank", "cash"),
            _txn("t2", datetime(2024, 2, 3, tzinfo=timezone.utc), 10, "ghost", "cash"),
        ]
        balances = compute_balances(accounts, transactions, JAN_END)
        assert balances["bank"] == Decimal("10")

    def test_iter_replay_stops_at_bad_leg(self, accounts):
        """iter_replay yields the good prefix, then raises."""
        transactions = [
            _txn("t1", datetime(2024, 1, 1, tzinfo=timezone.utc), 10, "bank", "cash"),
            _txn("t2", datetime(2024, 1, 2, tzinfo=timezone.utc), 10, "bank", "ghost"),
        ]
        steps = iter_replay(accounts, transactions, JAN_END)
        first = next(steps)
        assert first.transaction.id == "t1"
        assert first.debit_balance == Decimal("10")
        with pytest.raises(MissingAccountError):
            next(steps)


class TestReplayDeterminism:
    """Tests for ordering, cutoff and idempotence."""

    def test_cutoff_is_inclusive(self, accounts):
        """A transaction exactly at the cutoff is applied."""
        transactions = [_txn("t1", JAN_END, 5, "bank", "cash")]
        assert compute_balances(accounts, transactions, JAN_END)["bank"] == Decimal("5")
        assert compute_balances(
            accounts, transactions, JAN_END - timedelta(microseconds=1)
        )["bank"] == Decimal("0")

    def test_replay_is_idempotent(self, accounts):
        """Two replays of the same input give the same balances."""
        transactions = [
            _txn(f"t{i}", datetime(2024, 1, 1 + i, tzinfo=timezone.utc), 10 + i, "bank", "cash")
            for i in range(10)
        ]
        assert compute_balances(accounts, transactions, JAN_END) == compute_balances(
            accounts, transactions, JAN_END
        )

    def test_input_order_does_not_matter(self, accounts):
        """Shuffling transactions with distinct timestamps keeps the result."""
        transactions = [
            _txn(f"t{i}", datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(hours=i),
                 Decimal("1.5") * (i + 1), "bank" if i % 2 else "cash", "loan")
            for i in range(20)
        ]
        shuffled = list(transactions)
        random.Random(7).shuffle(shuffled)
        assert compute_balances(accounts, shuffled, JAN_END) == compute_balances(
            accounts, transactions, JAN_END
        )

    def test_equal_timestamps_keep_input_order(self):
        """Ties are applied in the order they were supplied."""
        moment = datetime(2024, 1, 10, tzinfo=timezone.utc)
        transactions = [
            _txn("b", moment, 1, "x", "y"),
            _txn("a", moment, 1, "x", "y"),
            _txn("c", moment - timedelta(seconds=1), 1, "x", "y"),
        ]
        assert [t.id for t in sort_transactions(transactions)] == ["c", "b", "a"]

    def test_naive_cutoff_is_utc(self, accounts):
        """A naive cutoff is treated as UTC."""
        transactions = [_txn("t1", datetime(2024, 1, 31, 12, tzinfo=timezone.utc), 5, "bank", "cash")]
        balances = compute_balances(accounts, transactions, datetime(2024, 1, 31, 12))
        assert balances["bank"] == Decimal("5")


class TestRollForward:
    """Tests for rolling known balances forward."""

    def test_roll_forward_matches_full_replay(self, accounts):
        """Opening balances plus the window equal a full replay."""
        transactions = [
            _txn("t1", datetime(2024, 1, 10, tzinfo=timezone.utc), 100, "cash", "loan", "BORROWING", "CAPITAL"),
            _txn("t2", datetime(2024, 2, 10, tzinfo=timezone.utc), 40, "bank", "cash"),
        ]
        feb_end = datetime(2024, 2, 29, 23, 59, 59, 999999, tzinfo=timezone.utc)

        opening = compute_balances(accounts, transactions, JAN_END)
        rolled = roll_forward(accounts, opening, transactions, JAN_END, feb_end)

        assert rolled == compute_balances(accounts, transactions, feb_end)
        assert rolled["cash"] == Decimal("60")

    def test_roll_forward_excludes_after_bound(self, accounts):
        """Transactions at or before `after` are not applied again."""
        transactions = [_txn("t1", JAN_END, 100, "bank", "cash")]
        rolled = roll_forward(
            accounts, {"bank": Decimal("100"), "cash": Decimal("-100")},
            transactions, JAN_END, JAN_END + timedelta(days=5),
        )
        assert rolled["bank"] == Decimal("100")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
