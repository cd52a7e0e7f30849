"""
Data Models Package

This package contains all Pydantic models used in the Wealth Ledger core.
All data flowing through the system must conform to these schemas.
"""

from wealth_ledger.models.ledger import (
    CASH_CATEGORY,
    EQUITY_FUND_CATEGORY,
    Account,
    AccountBalanceDetail,
    AccountGroup,
    AccountStatus,
    MonthlySnapshot,
    PnLPerformance,
    SnapshotSummary,
    Transaction,
    TransactionGroup,
    TransactionType,
    ValidationIssue,
    ValidationResult,
    as_utc,
    to_decimal,
)
from wealth_ledger.models.cashflow import (
    BridgeDetail,
    BridgeStep,
    BridgeStepName,
    CashFlowBridge,
    CashFlowBucket,
    Classification,
    FlowDirection,
    MatchedRule,
    NoCashAccounts,
    ReportPeriod,
)
from wealth_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "CASH_CATEGORY",
    "EQUITY_FUND_CATEGORY",
    "Account",
    "AccountBalanceDetail",
    "AccountGroup",
    "AccountStatus",
    "MonthlySnapshot",
    "PnLPerformance",
    "SnapshotSummary",
    "Transaction",
    "TransactionGroup",
    "TransactionType",
    "ValidationIssue",
    "ValidationResult",
    "as_utc",
    "to_decimal",
    # Cash-flow models
    "BridgeDetail",
    "BridgeStep",
    "BridgeStepName",
    "CashFlowBridge",
    "CashFlowBucket",
    "Classification",
    "FlowDirection",
    "MatchedRule",
    "NoCashAccounts",
    "ReportPeriod",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
