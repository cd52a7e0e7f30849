"""
Two-Stage Ledger Validation Pipeline

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Every feed row must parse into an Account or Transaction
- Positive amounts, parseable datetimes, known enum values
- This catches malformed rows from the sheets

STAGE 2 - SEMANTIC VALIDATION:
- Duplicate account and transaction ids
- References to unknown accounts or to INCOME/EXPENSES accounts
- Transactions dated in the future
- This catches data that parses but cannot replay cleanly

Duplicate ids are errors: the input is rejected before anything is computed
or written. Bad account references are warnings, because replay fails only
the months whose cutoff reaches the offending transaction.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them for human review.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, NamedTuple, Optional, Union

from pydantic import BaseModel, ValidationError

from wealth_ledger.config import get_settings
from wealth_ledger.models.ledger import (
    Account,
    Transaction,
    ValidationIssue,
    ValidationResult,
)


Row = Union[dict[str, Any], BaseModel]


class InvalidLedgerInputError(Exception):
    """The ledger feeds have error-level issues; nothing was computed."""

    def __init__(
        self,
        issues: list[ValidationIssue],
        result: Optional[ValidationResult] = None,
    ):
        self.issues = issues
        self.result = result
        errors = [issue for issue in issues if issue.severity == "error"]
        super().__init__(f"Ledger input rejected with {len(errors)} errors")


class ValidatedLedger(NamedTuple):
    accounts: list[Account]
    transactions: list[Transaction]
    result: ValidationResult


def _loc(error: dict) -> str:
    return ".".join(str(part) for part in error.get("loc", ())) or "row"


class LedgerValidator:
    """
    Validates the account and transaction feeds through a two-stage pipeline.

    Stage 1: Schema validation (rows -> models)
    Stage 2: Semantic validation (cross-record checks)
    """

    def __init__(
        self,
        future_date_tolerance_days: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize validator.

        Args:
            future_date_tolerance_days: How far ahead a transaction may be
                dated before it is flagged. Defaults to the app setting.
            clock: Source of "now" for the future-date check.
        """
        if future_date_tolerance_days is None:
            future_date_tolerance_days = get_settings().app.future_date_tolerance_days
        self._tolerance = timedelta(days=future_date_tolerance_days)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _parse_rows(
        self,
        rows: Iterable[Row],
        model: type,
        feed: str,
    ) -> tuple[list, list[ValidationIssue]]:
        parsed = []
        issues = []

        for index, row in enumerate(rows):
            if isinstance(row, model):
                parsed.append(row)
                continue

            data = row.model_dump(by_alias=True) if isinstance(row, BaseModel) else row
            record_id = data.get("id") if isinstance(data, dict) else None
            try:
                parsed.append(model.model_validate(data))
            except ValidationError as e:
                for error in e.errors():
                    issues.append(ValidationIssue(
                        field=f"{feed}[{index}].{_loc(error)}",
                        issue_type="invalid_value",
                        message=f"{feed[:-1].capitalize()} {record_id or index}: {error['msg']}",
                        severity="error",
                        record_id=str(record_id) if record_id is not None else None,
                        suggested_fix=f"Correct row {index + 1} of the {feed} sheet",
                    ))

        return parsed, issues

    def _validate_schema(
        self,
        account_rows: Iterable[Row],
        transaction_rows: Iterable[Row],
    ) -> tuple[bool, list[ValidationIssue], list[Account], list[Transaction]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues, accounts, transactions)
        """
        accounts, account_issues = self._parse_rows(account_rows, Account, "accounts")
        transactions, txn_issues = self._parse_rows(transaction_rows, Transaction, "transactions")

        issues = account_issues + txn_issues
        is_valid = not any(issue.severity == "error" for issue in issues)

        return is_valid, issues, accounts, transactions

    def _check_duplicates(
        self,
        ids: list[str],
        feed: str,
    ) -> list[ValidationIssue]:
        issues = []
        seen = set()
        reported = set()

        for record_id in ids:
            if record_id in seen and record_id not in reported:
                reported.add(record_id)
                issues.append(ValidationIssue(
                    field=feed,
                    issue_type="duplicate_id",
                    message=f"{feed[:-1].capitalize()} id {record_id!r} appears more than once",
                    severity="error",
                    record_id=record_id,
                    suggested_fix="Ids must be unique; remove or rename the duplicate row",
                ))
            seen.add(record_id)

        return issues

    def _validate_semantic(
        self,
        accounts: list[Account],
        transactions: list[Transaction],
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Checks:
        - Unique ids
        - Account references resolvable to balance-carrying accounts
        - Future dates

        Returns: (is_valid, list_of_issues)
        """
        issues = []
        issues.extend(self._check_duplicates([a.id for a in accounts], "accounts"))
        issues.extend(self._check_duplicates([t.id for t in transactions], "transactions"))

        registry = {account.id: account for account in accounts}
        latest_allowed = self._clock() + self._tolerance

        for txn in transactions:
            for side, account_id in (
                ("debit", txn.debit_account_id),
                ("credit", txn.credit_account_id),
            ):
                account = registry.get(account_id)
                if account is None:
                    issues.append(ValidationIssue(
                        field=f"{side}_account_id",
                        issue_type="unknown_account",
                        message=(
                            f"Transaction {txn.id} {side} account {account_id!r} "
                            "is not in the registry"
                        ),
                        severity="warning",
                        record_id=txn.id,
                        suggested_fix="Months on or after this transaction will fail to generate",
                    ))
                elif not account.holds_balance:
                    issues.append(ValidationIssue(
                        field=f"{side}_account_id",
                        issue_type="non_balance_account",
                        message=(
                            f"Transaction {txn.id} {side} account {account_id!r} "
                            f"is a {account.group.value} account"
                        ),
                        severity="warning",
                        record_id=txn.id,
                        suggested_fix="Only ASSETS and CAPITAL accounts can be debited or credited",
                    ))

            if txn.occurred_at > latest_allowed:
                issues.append(ValidationIssue(
                    field="datetime",
                    issue_type="future_date",
                    message=f"Transaction {txn.id} is dated in the future ({txn.occurred_at.isoformat()})",
                    severity="warning",
                    record_id=txn.id,
                    suggested_fix="Please verify the date is correct",
                ))

        is_valid = not any(issue.severity == "error" for issue in issues)

        return is_valid, issues

    def validate(
        self,
        account_rows: Iterable[Row],
        transaction_rows: Iterable[Row],
    ) -> ValidatedLedger:
        """
        Run the full two-stage validation pipeline.

        Returns:
            The parsed accounts and transactions plus the ValidationResult
        """
        schema_valid, all_issues, accounts, transactions = self._validate_schema(
            account_rows, transaction_rows
        )

        # Stage 2 runs on whatever parsed, so duplicate ids are reported
        # alongside unparseable rows in one pass.
        semantic_valid, semantic_issues = self._validate_semantic(accounts, transactions)
        all_issues.extend(semantic_issues)

        result = ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            account_count=len(accounts),
            transaction_count=len(transactions),
            issues=all_issues,
        )
        return ValidatedLedger(accounts, transactions, result)

    def validate_or_raise(
        self,
        account_rows: Iterable[Row],
        transaction_rows: Iterable[Row],
    ) -> ValidatedLedger:
        """
        Validate and reject input with error-level issues.

        Raises:
            InvalidLedgerInputError: If any error-level issue was found
        """
        validated = self.validate(account_rows, transaction_rows)
        if validated.result.has_errors:
            raise InvalidLedgerInputError(validated.result.issues, validated.result)
        return validated

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show in the snapshot manager.
        """
        if result.is_valid and not result.warnings:
            return (
                f"✅ All checks passed for {result.account_count} accounts "
                f"and {result.transaction_count} transactions."
            )

        lines = []

        if result.has_errors:
            lines.append("❌ The ledger has problems that block snapshot generation:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        if result.has_errors:
            lines.append("")
            lines.append("Please fix the issues above before generating snapshots.")
        else:
            lines.append("")
            lines.append("You can still proceed; affected months will be reported as failed.")

        return "\n".join(lines)
