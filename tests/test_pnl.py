"""
Tests for the profit & loss breakdown.
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

from wealth_ledger.ledger.snapshots import compute_pnl
from wealth_ledger.models.ledger import Transaction
from wealth_ledger.reports.pnl import (
    UNCATEGORIZED,
    ExpenseType,
    classify_expense_type,
    monthly_pnl,
    monthly_pnl_comparison,
    pnl_breakdown,
)


def _txn(txn_id, day, amount, group, category, month=3):
    return Transaction(
        id=txn_id,
        occurred_at=datetime(2024, month, day, 9, tzinfo=timezone.utc),
        amount=Decimal(str(amount)),
        debit_account_id="cash",
        credit_account_id="fund",
        type="DAILY_CASHFLOW",
        group=group,
        category=category,
    )


@pytest.fixture
def march():
    return [
        _txn("salary", 1, 20_000_000, "INCOME", "Salary"),
        _txn("bonus", 2, 5_000_000, "INCOME", "Bonus"),
        _txn("dividend", 3, 1_000_000, "INCOME", "Passive Income"),
        _txn("deposit", 4, 200_000, "INCOME", "Deposit Interest"),
        _txn("gift", 5, 300_000, "INCOME", "Gift"),
        _txn("rent", 6, 6_000_000, "EXPENSES", "Rent"),
        _txn("power", 7, 800_000, "EXPENSES", "Tiền điện"),
        _txn("food-1", 8, 2_000_000, "EXPENSES", "Food"),
        _txn("food-2", 9, 1_500_000, "EXPENSES", "Food"),
        _txn("movie", 10, 400_000, "EXPENSES", "Entertainment"),
        _txn("misc", 11, 100_000, "EXPENSES", ""),
        _txn("buy", 12, 3_000_000, "ASSETS", "Stocks"),
    ]


class TestExpenseType:
    """Tests for fixed/variable expense classification."""

    @pytest.mark.parametrize("category", [
        "Rent", "Home Mortgage", "Car Insurance", "Internet", "Học phí", "Tiền nước", "Loan Repayment",
    ])
    def test_fixed_keywords(self, category):
        """Keywords match case-insensitively anywhere in the category."""
        assert classify_expense_type(category) == ExpenseType.FIXED

    @pytest.mark.parametrize("category", ["Food", "Shopping", "Travel", ""])
    def test_variable_by_default(self, category):
        """Categories without a fixed keyword are variable."""
        assert classify_expense_type(category) == ExpenseType.VARIABLE

    def test_override_wins(self):
        """An explicit category entry beats the keywords."""
        overrides = {"Rent": ExpenseType.VARIABLE, "Gym": ExpenseType.FIXED}
        assert classify_expense_type("Rent", overrides) == ExpenseType.VARIABLE
        assert classify_expense_type("Gym", overrides) == ExpenseType.FIXED


class TestPnLBreakdown:
    """Tests for the period breakdown."""

    def _march(self, transactions, **kwargs):
        return pnl_breakdown(
            transactions,
            datetime(2024, 3, 1, tzinfo=timezone.utc),
            datetime(2024, 3, 31, 23, 59, 59, 999999, tzinfo=timezone.utc),
            **kwargs,
        )

    def test_income_split(self, march):
        """Salary and bonus, then investment income, then the rest."""
        income = self._march(march).income
        assert income.salary == Decimal("25000000")
        assert income.investment == Decimal("1200000")
        assert income.other == Decimal("300000")
        assert income.total == Decimal("26500000")

    def test_expense_split(self, march):
        """Fixed and variable totals add up to total expense."""
        expense = self._march(march).expense
        assert expense.fixed == Decimal("6800000")
        assert expense.variable == Decimal("4000000")
        assert expense.total == expense.fixed + expense.variable

    def test_category_lists_biggest_first(self, march):
        """Repeated categories are summed and ranked by amount."""
        expense = self._march(march).expense
        assert [c.name for c in expense.fixed_categories] == ["Rent", "Tiền điện"]
        assert [c.name for c in expense.variable_categories] == ["Food", "Entertainment", UNCATEGORIZED]
        assert expense.variable_categories[0].amount == Decimal("3500000")

    def test_top_categories(self, march):
        """top_n keeps the largest categories across both types."""
        top = self._march(march, top_n=2).expense.top_categories
        assert [(c.name, c.expense_type) for c in top] == [
            ("Rent", ExpenseType.FIXED),
            ("Food", ExpenseType.VARIABLE),
        ]

    def test_totals_match_snapshot_pnl(self, march):
        """The breakdown agrees with the snapshot's income and expense."""
        start = datetime(2024, 3, 1, tzinfo=timezone.utc)
        end = datetime(2024, 3, 31, 23, 59, 59, 999999, tzinfo=timezone.utc)
        breakdown = pnl_breakdown(march, start, end)
        pnl = compute_pnl(march, start, end)

        assert breakdown.income.total == pnl.income
        assert breakdown.expense.total == pnl.expense
        assert breakdown.savings == pnl.savings

    def test_savings_rate_and_count(self, march):
        """Savings rate is a percentage; every group counts toward the total."""
        breakdown = self._march(march)
        assert breakdown.savings == Decimal("15700000")
        assert breakdown.savings_rate == Decimal("59.25")
        assert breakdown.transaction_count == 12

    def test_no_income_has_zero_rate(self):
        """A period with only expenses has a zero savings rate."""
        breakdown = self._march([_txn("rent", 6, 100, "EXPENSES", "Rent")])
        assert breakdown.savings == Decimal("-100")
        assert breakdown.savings_rate == Decimal("0")

    def test_window_is_inclusive(self, march):
        """Transactions outside [start, end] are ignored."""
        breakdown = pnl_breakdown(
            march,
            datetime(2024, 3, 6, 9, tzinfo=timezone.utc),
            datetime(2024, 3, 7, 9, tzinfo=timezone.utc),
        )
        assert breakdown.expense.total == Decimal("6800000")
        assert breakdown.label == "2024-03-06"


class TestMonthlyComparison:
    """Tests for this month against last month."""

    def test_current_and_previous(self, march):
        """The month of `now` is compared with the one before it."""
        april = [
            _txn("salary-apr", 1, 20_000_000, "INCOME", "Salary", month=4),
            _txn("rent-apr", 6, 6_000_000, "EXPENSES", "Rent", month=4),
        ]
        comparison = monthly_pnl_comparison(march + april, now=datetime(2024, 4, 15, tzinfo=timezone.utc))

        assert comparison.current.label == "2024-04"
        assert comparison.previous.label == "2024-03"
        assert comparison.income_change == Decimal("-6500000")
        assert comparison.expense_change == Decimal("-4800000")
        assert comparison.savings_change == Decimal("-1700000")

    def test_january_compares_with_december(self):
        """The previous month wraps into the prior year."""
        comparison = monthly_pnl_comparison([], now=datetime(2024, 1, 10, tzinfo=timezone.utc))
        assert comparison.previous.label == "2023-12"
        assert comparison.previous.transaction_count == 0

    def test_months_follow_timezone(self):
        """A late-evening UTC entry belongs to the next local month."""
        late = _txn("salary", 31, 1_000, "INCOME", "Salary")
        late = late.model_copy(update={"occurred_at": datetime(2024, 3, 31, 20, tzinfo=timezone.utc)})
        tz = ZoneInfo("Asia/Ho_Chi_Minh")

        assert monthly_pnl([late], "2024-04", tz).income.total == Decimal("1000")
        assert monthly_pnl([late], "2024-03", tz).income.total == Decimal("0")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
