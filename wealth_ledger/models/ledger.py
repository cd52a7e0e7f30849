"""
Core Ledger Models for Wealth Ledger

These models define the strict schemas for the records this core reads
(accounts, transactions) and the documents it produces (monthly snapshots).
They are designed to:
1. Enforce type safety at the feed boundary
2. Keep money in Decimal end to end
3. Be serializable for storage and logging

DESIGN DECISION: Accounts and transactions are frozen. The transaction log
is append-only and this core never patches a record it was handed.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


EQUITY_FUND_CATEGORY = "Equity Fund"
CASH_CATEGORY = "Cash"

ZERO = Decimal("0")


def to_decimal(value) -> Decimal:
    """Convert an int/float/str amount to Decimal without float noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def as_utc(value: datetime) -> datetime:
    """Normalize a datetime to an aware UTC instant (naive means UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountGroup(str, Enum):
    """
    Account groups.

    Only ASSETS and CAPITAL carry a running balance. INCOME and EXPENSES
    exist as labels in the registry but never hold a replayed balance.
    """
    ASSETS = "ASSETS"
    CAPITAL = "CAPITAL"
    INCOME = "INCOME"
    EXPENSES = "EXPENSES"

    @property
    def holds_balance(self) -> bool:
        return self in (AccountGroup.ASSETS, AccountGroup.CAPITAL)


class AccountStatus(str, Enum):
    """Lifecycle status of an account."""
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"


class TransactionType(str, Enum):
    """Kinds of ledger entries recorded by the app."""
    DAILY_CASHFLOW = "DAILY_CASHFLOW"
    CREDIT_SPENDING = "CREDIT_SPENDING"
    CREDIT_PAYMENT = "CREDIT_PAYMENT"
    INTERNAL_TRANSFER = "INTERNAL_TRANSFER"
    ASSET_BUY = "ASSET_BUY"
    ASSET_SELL = "ASSET_SELL"
    ASSET_INVESTMENT = "ASSET_INVESTMENT"
    ASSET_REVALUATION = "ASSET_REVALUATION"
    LENDING = "LENDING"
    BORROWING = "BORROWING"
    DEBT_REPAYMENT = "DEBT_REPAYMENT"
    CAPITAL_INJECTION = "CAPITAL_INJECTION"
    CAPITAL_WITHDRAWAL = "CAPITAL_WITHDRAWAL"
    FUND_ALLOCATION = "FUND_ALLOCATION"
    INTEREST_LOG = "INTEREST_LOG"
    INITIAL_BALANCE = "INITIAL_BALANCE"


class TransactionGroup(str, Enum):
    """
    Reporting label of a transaction.

    Independent of which accounts the entry touches: a salary credited to a
    cash account is group INCOME even though both legs are ASSETS/CAPITAL.
    """
    INCOME = "INCOME"
    EXPENSES = "EXPENSES"
    ASSETS = "ASSETS"
    CAPITAL = "CAPITAL"


# =============================================================================
# FEED RECORDS
# =============================================================================

class Account(BaseModel):
    """
    An account as supplied by the account registry.

    Read-only to this core. `current_balance` is the live balance the
    registry maintains; replay never reads it, reconciliation and the cash
    bridge do.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(
        ...,
        min_length=1,
        description="Account identifier"
    )
    name: Optional[str] = Field(
        default=None,
        max_length=200,
        description="Display name"
    )
    group: AccountGroup
    category: str = Field(
        default="",
        description="Free-form category (Cash, Stocks, Equity Fund, Bank Loan, ...)"
    )
    current_balance: Decimal = Field(
        default=ZERO,
        description="Live balance maintained by the registry"
    )
    status: AccountStatus = AccountStatus.ACTIVE

    @property
    def holds_balance(self) -> bool:
        return self.group.holds_balance


class Transaction(BaseModel):
    """
    A committed double-entry transaction.

    The feed field is called `datetime`; it is exposed as `occurred_at` so the
    attribute does not shadow the datetime type. Both names are accepted on
    input.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        frozen=True,
        populate_by_name=True,
    )

    id: str = Field(..., min_length=1)
    occurred_at: datetime = Field(
        ...,
        alias="datetime",
        description="When the transaction happened (ISO-8601)"
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Transaction amount, always positive"
    )
    debit_account_id: str = Field(..., min_length=1)
    credit_account_id: str = Field(..., min_length=1)
    type: TransactionType
    group: TransactionGroup
    category: str = Field(
        default="",
        description="Free-form label used for sub-classification"
    )
    note: Optional[str] = Field(
        default=None,
        max_length=1000
    )

    @field_validator('occurred_at')
    @classmethod
    def normalize_timezone(cls, v: datetime) -> datetime:
        """Compare every instant in UTC; naive timestamps are taken as UTC."""
        return as_utc(v)

    def touches(self, account_id: str) -> bool:
        return account_id in (self.debit_account_id, self.credit_account_id)


# =============================================================================
# SNAPSHOT DOCUMENTS
# =============================================================================

class AccountBalanceDetail(BaseModel):
    """Balance of one account at a snapshot cutoff."""

    id: str
    name: Optional[str] = None
    group: AccountGroup
    category: str = ""
    balance: Decimal


class SnapshotSummary(BaseModel):
    """Balance-sheet totals at a snapshot cutoff."""

    net_worth: Decimal
    total_assets: Decimal
    total_liabilities: Decimal
    total_equity: Decimal


class PnLPerformance(BaseModel):
    """Income and expense recorded within the snapshot month."""

    income: Decimal = ZERO
    expense: Decimal = ZERO
    savings: Decimal = ZERO


class MonthlySnapshot(BaseModel):
    """
    A persisted, point-in-time materialization of all balances plus PnL.

    CRITICAL: Produced only by the snapshot generator and replaced
    wholesale on regeneration. Never patch a field in place.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(
        ...,
        pattern=r"^\d{4}-(0[1-9]|1[0-2])$",
        description="Month key, YYYY-MM"
    )
    snapshot_date: datetime = Field(
        ...,
        description="End-of-month cutoff instant"
    )
    summary: SnapshotSummary
    accounts_detail: list[AccountBalanceDetail] = Field(default_factory=list)
    pnl_performance: PnLPerformance
    created_at: datetime = Field(
        ...,
        alias="createdAt",
        description="When this snapshot was generated"
    )

    @field_validator('snapshot_date', 'created_at')
    @classmethod
    def normalize_timezone(cls, v: datetime) -> datetime:
        return as_utc(v)

    def balances(self) -> dict[str, Decimal]:
        """Account id -> balance map of this snapshot."""
        return {detail.id: detail.balance for detail in self.accounts_detail}

    def to_document(self) -> dict:
        """
        Convert to the stored document shape.

        Field names follow the persisted contract (`createdAt`); money is
        serialized as strings so no precision is lost in JSON.
        """
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found in the ledger feeds."""

    field: str = Field(
        ...,
        description="Record or field with the issue (e.g. 'transactions[3].amount')"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'invalid_value', 'duplicate_id', 'unknown_account')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    record_id: Optional[str] = Field(
        default=None,
        description="ID of the offending account/transaction when known"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggestion for fixing the issue"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage ledger validation.

    Stage 1: Schema validation (each feed row parses into a model)
    Stage 2: Semantic validation (ids unique, references resolvable)
    """

    validated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    schema_valid: bool = Field(
        ...,
        description="Did every feed row parse?"
    )
    semantic_valid: bool = Field(
        ...,
        description="Did semantic validation pass?"
    )
    is_valid: bool = Field(
        ...,
        description="Overall validation result"
    )

    account_count: int = Field(default=0, ge=0)
    transaction_count: int = Field(default=0, ge=0)

    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All validation issues found"
    )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        """Messages of non-blocking issues."""
        return [issue.message for issue in self.issues if issue.severity == "warning"]
