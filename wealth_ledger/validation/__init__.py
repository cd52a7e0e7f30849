"""Validation package."""

from wealth_ledger.validation.validator import (
    InvalidLedgerInputError,
    LedgerValidator,
    ValidatedLedger,
)

__all__ = ["InvalidLedgerInputError", "LedgerValidator", "ValidatedLedger"]
