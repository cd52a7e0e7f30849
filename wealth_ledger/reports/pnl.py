"""
Profit & Loss Breakdown

Income and expense of a period, split the way the dashboard reads them:

    income   -> salary / investment / other   (by category)
    expense  -> fixed / variable              (override, then keywords)

DESIGN DECISION: Like the snapshot PnL, everything goes by the transaction's
reporting group and category, never by the accounts it touches. The
breakdown totals therefore always equal compute_pnl for the same window.

Fixed-expense keywords match case-insensitively as substrings of the
category, in English and Vietnamese. An explicit per-category override
always wins over the keywords.
"""

from datetime import datetime, tzinfo
from decimal import Decimal
from enum import Enum
from typing import Iterable, Mapping, Optional

from pydantic import BaseModel, Field

from wealth_ledger.ledger.months import month_bounds, month_of, shift_month
from wealth_ledger.models.ledger import Transaction, TransactionGroup, ZERO, as_utc


UNCATEGORIZED = "Uncategorized"

SALARY_CATEGORIES = frozenset({"Salary", "Bonus"})
INVESTMENT_INCOME_CATEGORIES = frozenset({"Passive Income", "Capital Gain"})
INTEREST_KEYWORD = "interest"

FIXED_EXPENSE_KEYWORDS = (
    # Housing
    "housing", "rent", "mortgage", "nhà", "thuê",
    # Debt service
    "nợ", "lãi", "interest", "loan", "financial",
    # Insurance
    "insurance", "bảo hiểm",
    # Utilities
    "internet", "electric", "water", "điện", "nước",
    # Education
    "tuition", "học phí", "education",
    # Health
    "health", "y tế", "thuốc",
    "subscription",
)

TOP_CATEGORY_COUNT = 5

PERCENT = Decimal("0.01")


class ExpenseType(str, Enum):
    FIXED = "FIXED"
    VARIABLE = "VARIABLE"


def classify_expense_type(
    category: str,
    expense_types: Optional[Mapping[str, ExpenseType]] = None,
) -> ExpenseType:
    """
    FIXED or VARIABLE for an expense category.

    An entry in `expense_types` decides first; otherwise a category holding
    any fixed keyword is FIXED and everything else is VARIABLE.
    """
    if expense_types and category in expense_types:
        return ExpenseType(expense_types[category])

    lowered = category.lower()
    if any(keyword in lowered for keyword in FIXED_EXPENSE_KEYWORDS):
        return ExpenseType.FIXED
    return ExpenseType.VARIABLE


def is_salary_income(category: str) -> bool:
    return category in SALARY_CATEGORIES


def is_investment_income(category: str) -> bool:
    return category in INVESTMENT_INCOME_CATEGORIES or INTEREST_KEYWORD in category.lower()


# =============================================================================
# RESULT TYPES
# =============================================================================

class CategoryAmount(BaseModel):
    """Total spent in one expense category."""

    name: str
    amount: Decimal
    expense_type: ExpenseType


class IncomeBreakdown(BaseModel):
    total: Decimal = ZERO
    salary: Decimal = ZERO
    investment: Decimal = Field(
        default=ZERO,
        description="Passive income, capital gains and interest"
    )
    other: Decimal = ZERO


class ExpenseBreakdown(BaseModel):
    total: Decimal = ZERO
    fixed: Decimal = ZERO
    variable: Decimal = ZERO
    top_categories: list[CategoryAmount] = Field(
        default_factory=list,
        description="Largest categories, biggest first"
    )
    fixed_categories: list[CategoryAmount] = Field(default_factory=list)
    variable_categories: list[CategoryAmount] = Field(default_factory=list)


class PnLBreakdown(BaseModel):
    """Income and expense of one period with their breakdowns."""

    label: str = Field(
        ...,
        description="Month key for a calendar month, else the period's start date"
    )
    period_start: datetime
    period_end: datetime
    income: IncomeBreakdown = Field(default_factory=IncomeBreakdown)
    expense: ExpenseBreakdown = Field(default_factory=ExpenseBreakdown)
    transaction_count: int = Field(
        default=0,
        description="Transactions of any group dated in the period"
    )

    @property
    def savings(self) -> Decimal:
        return self.income.total - self.expense.total

    @property
    def savings_rate(self) -> Decimal:
        """Savings as a percentage of income; zero without income."""
        if self.income.total <= ZERO:
            return ZERO
        return (self.savings / self.income.total * 100).quantize(PERCENT)


class MonthlyPnLComparison(BaseModel):
    """This month's P&L next to the previous month's."""

    current: PnLBreakdown
    previous: PnLBreakdown

    @property
    def income_change(self) -> Decimal:
        return self.current.income.total - self.previous.income.total

    @property
    def expense_change(self) -> Decimal:
        return self.current.expense.total - self.previous.expense.total

    @property
    def savings_change(self) -> Decimal:
        return self.current.savings - self.previous.savings


# =============================================================================
# COMPUTATION
# =============================================================================

def _sorted_amounts(
    totals: Mapping[str, Decimal],
    expense_types: Mapping[str, ExpenseType],
) -> list[CategoryAmount]:
    ordered = sorted(totals.items(), key=lambda item: (-item[1], item[0]))
    return [
        CategoryAmount(name=name, amount=amount, expense_type=expense_types[name])
        for name, amount in ordered
    ]


def pnl_breakdown(
    transactions: Iterable[Transaction],
    start: datetime,
    end: datetime,
    label: Optional[str] = None,
    expense_types: Optional[Mapping[str, ExpenseType]] = None,
    top_n: int = TOP_CATEGORY_COUNT,
) -> PnLBreakdown:
    """
    P&L of transactions dated within [start, end].

    Args:
        transactions: Transaction log (any order)
        start: First instant of the period
        end: Last instant of the period (inclusive)
        label: Display label; defaults to the start date
        expense_types: Per-category FIXED/VARIABLE overrides
        top_n: How many expense categories to keep in `top_categories`
    """
    start = as_utc(start)
    end = as_utc(end)

    income = IncomeBreakdown()
    category_totals: dict[str, Decimal] = {}
    category_types: dict[str, ExpenseType] = {}
    count = 0

    for txn in transactions:
        if not start <= txn.occurred_at <= end:
            continue
        count += 1

        if txn.group == TransactionGroup.INCOME:
            income.total += txn.amount
            if is_salary_income(txn.category):
                income.salary += txn.amount
            elif is_investment_income(txn.category):
                income.investment += txn.amount
            else:
                income.other += txn.amount

        elif txn.group == TransactionGroup.EXPENSES:
            name = txn.category or UNCATEGORIZED
            category_totals[name] = category_totals.get(name, ZERO) + txn.amount
            if name not in category_types:
                category_types[name] = classify_expense_type(txn.category, expense_types)

    categories = _sorted_amounts(category_totals, category_types)
    fixed = [c for c in categories if c.expense_type == ExpenseType.FIXED]
    variable = [c for c in categories if c.expense_type == ExpenseType.VARIABLE]

    expense = ExpenseBreakdown(
        total=sum((c.amount for c in categories), ZERO),
        fixed=sum((c.amount for c in fixed), ZERO),
        variable=sum((c.amount for c in variable), ZERO),
        top_categories=categories[:top_n],
        fixed_categories=fixed,
        variable_categories=variable,
    )

    return PnLBreakdown(
        label=label or f"{start:%Y-%m-%d}",
        period_start=start,
        period_end=end,
        income=income,
        expense=expense,
        transaction_count=count,
    )


def monthly_pnl(
    transactions: Iterable[Transaction],
    month: str,
    tz: Optional[tzinfo] = None,
    expense_types: Optional[Mapping[str, ExpenseType]] = None,
) -> PnLBreakdown:
    """P&L of one calendar month in `tz`."""
    start, end = month_bounds(month, tz)
    return pnl_breakdown(transactions, start, end, label=month, expense_types=expense_types)


def monthly_pnl_comparison(
    transactions: Iterable[Transaction],
    now: datetime,
    tz: Optional[tzinfo] = None,
    expense_types: Optional[Mapping[str, ExpenseType]] = None,
) -> MonthlyPnLComparison:
    """The month containing `now` against the month before it."""
    transactions = list(transactions)
    current_month = month_of(now, tz)
    return MonthlyPnLComparison(
        current=monthly_pnl(transactions, current_month, tz, expense_types),
        previous=monthly_pnl(transactions, shift_month(current_month, -1), tz, expense_types),
    )
