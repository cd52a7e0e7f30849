"""
Cash-Flow Package

Bridge computation and the classification rule table.
"""

from wealth_ledger.cashflow.bridge import (
    BridgeInvariantError,
    cash_account_ids,
    cash_direction,
    compute_bridge,
    live_cash_balance,
    net_cash_flow,
    period_start_for,
)
from wealth_ledger.cashflow.rules import DEFAULT_RULES, ClassificationRules

__all__ = [
    "BridgeInvariantError",
    "ClassificationRules",
    "DEFAULT_RULES",
    "cash_account_ids",
    "cash_direction",
    "compute_bridge",
    "live_cash_balance",
    "net_cash_flow",
    "period_start_for",
]
