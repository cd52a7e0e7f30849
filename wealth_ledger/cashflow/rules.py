"""
Cash-Flow Classification Rules

Maps a cash-touching transaction to Operating, Investing or Financing.

DESIGN DECISION: The whole rule table is data, held in one injectable
ClassificationRules object. Lookup order is:

    1. transaction type   (enum, exact)
    2. transaction group  (enum, exact)
    3. category string    (exact, case-sensitive)
    4. fallback           (Operating)

Enums are consulted before the free-form category, so a typed entry is never
reclassified by a label. An unmatched transaction is Operating; ambiguity
is never an error.
"""

from typing import Mapping

from pydantic import BaseModel, ConfigDict, Field

from wealth_ledger.models.cashflow import (
    CashFlowBucket,
    Classification,
    MatchedRule,
)
from wealth_ledger.models.ledger import (
    Transaction,
    TransactionGroup,
    TransactionType,
)


class ClassificationRules(BaseModel):
    """Tagged lookup tables keyed by type, group and category."""

    model_config = ConfigDict(frozen=True)

    type_buckets: dict[TransactionType, CashFlowBucket] = Field(default_factory=dict)
    group_buckets: dict[TransactionGroup, CashFlowBucket] = Field(default_factory=dict)
    category_buckets: dict[str, CashFlowBucket] = Field(default_factory=dict)
    fallback: CashFlowBucket = CashFlowBucket.OPERATING

    def classify(self, txn: Transaction) -> Classification:
        """Assign a bucket and record which rule decided it."""
        if txn.type in self.type_buckets:
            return Classification(
                bucket=self.type_buckets[txn.type],
                matched_rule=MatchedRule.TYPE,
                matched_key=txn.type.value,
            )

        if txn.group in self.group_buckets:
            return Classification(
                bucket=self.group_buckets[txn.group],
                matched_rule=MatchedRule.GROUP,
                matched_key=txn.group.value,
            )

        if txn.category in self.category_buckets:
            return Classification(
                bucket=self.category_buckets[txn.category],
                matched_rule=MatchedRule.CATEGORY,
                matched_key=txn.category,
            )

        return Classification(bucket=self.fallback, matched_rule=MatchedRule.FALLBACK)

    def with_categories(self, categories: Mapping[str, CashFlowBucket]) -> "ClassificationRules":
        """Copy of these rules with extra or overriding category entries."""
        merged = dict(self.category_buckets)
        merged.update(categories)
        return self.model_copy(update={"category_buckets": merged})

    def categories_for(self, bucket: CashFlowBucket) -> list[str]:
        return sorted(c for c, b in self.category_buckets.items() if b == bucket)


DEFAULT_RULES = ClassificationRules(
    type_buckets={
        TransactionType.INTEREST_LOG: CashFlowBucket.OPERATING,
        TransactionType.ASSET_BUY: CashFlowBucket.INVESTING,
        TransactionType.ASSET_SELL: CashFlowBucket.INVESTING,
        TransactionType.ASSET_INVESTMENT: CashFlowBucket.INVESTING,
        TransactionType.LENDING: CashFlowBucket.INVESTING,
        TransactionType.BORROWING: CashFlowBucket.FINANCING,
        TransactionType.DEBT_REPAYMENT: CashFlowBucket.FINANCING,
        TransactionType.CAPITAL_INJECTION: CashFlowBucket.FINANCING,
        TransactionType.CAPITAL_WITHDRAWAL: CashFlowBucket.FINANCING,
    },
    group_buckets={
        TransactionGroup.INCOME: CashFlowBucket.OPERATING,
        TransactionGroup.EXPENSES: CashFlowBucket.OPERATING,
    },
    category_buckets={
        "Stocks": CashFlowBucket.INVESTING,
        "Crypto": CashFlowBucket.INVESTING,
        "Gold": CashFlowBucket.INVESTING,
        "Real Estate": CashFlowBucket.INVESTING,
        "Savings": CashFlowBucket.INVESTING,
        "Receivables": CashFlowBucket.INVESTING,
        "Liability": CashFlowBucket.FINANCING,
        "Equity Fund": CashFlowBucket.FINANCING,
        "Bank Loan": CashFlowBucket.FINANCING,
        "Personal Loan": CashFlowBucket.FINANCING,
    },
)
