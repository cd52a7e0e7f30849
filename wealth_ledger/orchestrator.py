"""
Main Orchestrator for Wealth Ledger

This module ties together all the components and defines the
end-to-end flows for:
1. Snapshot job (fetch → validate → generate → verify → persist)
2. Cash-flow bridge report (fetch → validate → bridge)
3. Net-worth trend, live reconciliation and P&L breakdown

DESIGN DECISION: The orchestrator enforces the boundaries:
- The compute core never touches I/O; everything is fetched first
- Invalid input is rejected before anything is computed or written
- Every step is audited

This is the "glue" that keeps the pure core pure while the job still
reports exactly what was generated, what was committed and what failed.
"""

import asyncio
from datetime import datetime, timezone
from typing import Callable, Iterable, Mapping, Optional, Union
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from wealth_ledger.audit import AuditLogger, create_correlation_id
from wealth_ledger.cashflow import (
    DEFAULT_RULES,
    BridgeInvariantError,
    ClassificationRules,
    cash_account_ids,
    compute_bridge,
    live_cash_balance,
    period_start_for,
)
from wealth_ledger.config import LedgerSettings, get_settings
from wealth_ledger.ledger import (
    ChainMismatch,
    MissingAccountError,
    SnapshotFailure,
    SnapshotGenerationCancelled,
    generate_snapshots,
    persist_snapshots,
    resolve_months,
    verify_snapshot_chain,
)
from wealth_ledger.ledger.months import month_bounds, month_of, normalize_months
from wealth_ledger.models.audit import AuditEvent
from wealth_ledger.models.cashflow import CashFlowBridge, NoCashAccounts, ReportPeriod
from wealth_ledger.models.ledger import MonthlySnapshot, ValidationResult
from wealth_ledger.reports import (
    ExpenseType,
    LiveReconciliation,
    MonthlyPnLComparison,
    NetWorthTrend,
    PnLBreakdown,
    monthly_pnl_comparison,
    net_worth_trend,
    pnl_breakdown,
    reconcile_live_balances,
)
from wealth_ledger.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerRepository,
    GoogleSheetsSnapshotStorage,
    InMemoryLedgerRepository,
    InMemorySnapshotStorage,
    LedgerRepository,
    PartialBatchCommitError,
    SnapshotStorageInterface,
    StorageError,
)
from wealth_ledger.validation import (
    InvalidLedgerInputError,
    LedgerValidator,
    ValidatedLedger,
)


logger = structlog.get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _issue_dicts(result: ValidationResult) -> list[dict]:
    return [
        {"field": i.field, "type": i.issue_type, "severity": i.severity, "message": i.message}
        for i in result.issues
    ]


async def load_ledger(
    repository: LedgerRepository,
    validator: LedgerValidator,
    audit_logger: Optional[AuditLogger],
    correlation_id: UUID,
) -> ValidatedLedger:
    """
    Fetch both feeds and validate them.

    Raises:
        StorageError: If a feed could not be read
        InvalidLedgerInputError: If the feeds have error-level issues
    """
    try:
        account_rows = await repository.list_accounts()
        transaction_rows = await repository.list_transactions()
    except StorageError as e:
        if audit_logger:
            await audit_logger.log_external_service_error(
                service="ledger_repository",
                error_message=str(e),
                correlation_id=correlation_id,
            )
        raise

    if audit_logger:
        await audit_logger.log_ledger_loaded(
            account_count=len(account_rows),
            transaction_count=len(transaction_rows),
            correlation_id=correlation_id,
        )

    validated = validator.validate(account_rows, transaction_rows)

    if audit_logger:
        await audit_logger.log_validation(
            issues=_issue_dicts(validated.result),
            has_errors=validated.result.has_errors,
            correlation_id=correlation_id,
        )

    if validated.result.has_errors:
        raise InvalidLedgerInputError(validated.result.issues, validated.result)

    return validated


class SnapshotJobReport(BaseModel):
    """What one snapshot job run did."""

    correlation_id: UUID
    requested_months: list[str] = Field(default_factory=list)
    generated_months: list[str] = Field(default_factory=list)
    committed_months: list[str] = Field(
        default_factory=list,
        description="Months durably stored by this run"
    )
    uncommitted_months: list[str] = Field(
        default_factory=list,
        description="Generated months whose storage batch failed"
    )
    failures: list[SnapshotFailure] = Field(
        default_factory=list,
        description="Months that could not be generated"
    )
    chain_mismatches: list[ChainMismatch] = Field(default_factory=list)
    validation: Optional[ValidationResult] = None
    snapshots: list[MonthlySnapshot] = Field(default_factory=list)

    @property
    def failed_months(self) -> list[str]:
        return [failure.month for failure in self.failures]

    @property
    def is_complete(self) -> bool:
        return (
            not self.failures
            and not self.uncommitted_months
            and not self.chain_mismatches
        )


class SnapshotJob:
    """
    Orchestrates snapshot generation.

    Flow:
    1. Resolve → month or range compiled to an explicit month list
    2. Fetch → accounts and transactions from the repository
    3. Validate → reject input with errors before computing anything
    4. Generate → one fresh replay per month, yielding between months
    5. Verify → consecutive snapshots must roll forward into each other
    6. Persist → chunked upsert, each chunk atomic

    A failed month never stops the others. A failed chunk never stops
    the other chunks.
    """

    def __init__(
        self,
        repository: LedgerRepository,
        snapshot_storage: Optional[SnapshotStorageInterface] = None,
        validator: Optional[LedgerValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._repository = repository
        self._snapshot_storage = snapshot_storage
        self._validator = validator or LedgerValidator()
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().ledger
        self._clock = clock

    @property
    def snapshot_storage(self) -> Optional[SnapshotStorageInterface]:
        return self._snapshot_storage

    @property
    def validator(self) -> LedgerValidator:
        return self._validator

    async def run_events(self, correlation_id: UUID) -> list[AuditEvent]:
        """Audit trail of one run, oldest first."""
        if not self._audit_logger:
            return []
        return await self._audit_logger.events_for(correlation_id)

    async def recent_events(self, limit: int = 50) -> list[AuditEvent]:
        if not self._audit_logger:
            return []
        return await self._audit_logger.recent_events(limit)

    async def run(
        self,
        months: Optional[Iterable[str]] = None,
        month: Optional[str] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
        correlation_id: Optional[UUID] = None,
    ) -> SnapshotJobReport:
        """
        Generate and persist snapshots.

        Pass either an explicit `months` list, a single `month`, or an
        inclusive `start`/`end` range.

        Raises:
            InvalidMonthError: Malformed month or inverted range
            StorageError: The feeds could not be read
            InvalidLedgerInputError: The feeds have error-level issues
            SnapshotGenerationCancelled: should_cancel fired between months
        """
        correlation_id = correlation_id or create_correlation_id()

        if months is not None:
            month_list = normalize_months(list(months))
        else:
            month_list = resolve_months(month=month, start=start, end=end)
        for current in month_list:
            month_bounds(current, self._settings.tzinfo)

        if self._audit_logger:
            await self._audit_logger.log_job_started(month_list, correlation_id)

        validated = await load_ledger(
            self._repository, self._validator, self._audit_logger, correlation_id
        )
        accounts, transactions = validated.accounts, validated.transactions

        report = SnapshotJobReport(
            correlation_id=correlation_id,
            requested_months=month_list,
            validation=validated.result,
        )

        for current in month_list:
            if should_cancel is not None and should_cancel():
                if self._audit_logger:
                    await self._audit_logger.log_job_cancelled(
                        report.generated_months, correlation_id
                    )
                raise SnapshotGenerationCancelled(
                    completed_months=report.generated_months,
                    snapshots=report.snapshots,
                    failures=report.failures,
                )

            run = generate_snapshots(
                accounts,
                transactions,
                [current],
                tz=self._settings.tzinfo,
                clock=self._clock,
                equity_fund_category=self._settings.equity_fund_category,
            )
            report.snapshots.extend(run.snapshots)
            report.generated_months.extend(run.generated_months)
            report.failures.extend(run.failures)

            if self._audit_logger:
                for snapshot in run.snapshots:
                    await self._audit_logger.log_snapshot_generated(
                        snapshot.id, str(snapshot.summary.net_worth), correlation_id
                    )
                for failure in run.failures:
                    await self._audit_logger.log_replay_failed(
                        failure.month, failure.message, correlation_id
                    )

            # Month boundary: let timeouts and other tasks in
            await asyncio.sleep(0)

        if self._settings.verify_snapshot_chain:
            report.chain_mismatches = verify_snapshot_chain(
                accounts, transactions, report.snapshots
            )
            if self._audit_logger:
                await self._audit_chain(report, correlation_id)

        if self._snapshot_storage is not None and report.snapshots:
            await self._persist(report, correlation_id)

        logger.info(
            "snapshot_job_finished",
            correlation_id=str(correlation_id),
            generated=len(report.generated_months),
            committed=len(report.committed_months),
            failed=len(report.failures),
        )
        return report

    async def _audit_chain(self, report: SnapshotJobReport, correlation_id: UUID) -> None:
        by_month: dict[tuple[str, str], list[str]] = {}
        for mismatch in report.chain_mismatches:
            key = (mismatch.month, mismatch.previous_month)
            by_month.setdefault(key, []).append(mismatch.account_id or "")
        for (current, previous), account_ids in by_month.items():
            await self._audit_logger.log_chain_mismatch(
                current, previous, account_ids, correlation_id
            )

    async def _persist(self, report: SnapshotJobReport, correlation_id: UUID) -> None:
        try:
            report.committed_months = await persist_snapshots(
                self._snapshot_storage,
                report.snapshots,
                chunk_size=self._settings.batch_chunk_size,
            )
        except PartialBatchCommitError as e:
            report.committed_months = e.committed_months
            report.uncommitted_months = e.failed_months
            if self._audit_logger:
                await self._audit_logger.log_commit_failed(
                    committed_months=e.committed_months,
                    failed_months=e.failed_months,
                    error_message="; ".join(e.errors),
                    correlation_id=correlation_id,
                )
            return

        if self._audit_logger:
            await self._audit_logger.log_snapshots_committed(
                report.committed_months, correlation_id
            )


class BridgeReportFlow:
    """
    Orchestrates the cash-flow bridge report.

    The cash pool is every ASSETS account in the configured cash category;
    its live balance is the sum of the registry's current balances.
    """

    def __init__(
        self,
        repository: LedgerRepository,
        validator: Optional[LedgerValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
        rules: ClassificationRules = DEFAULT_RULES,
        expense_types: Optional[Mapping[str, ExpenseType]] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._repository = repository
        self._validator = validator or LedgerValidator()
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().ledger
        self._rules = rules
        self._expense_types = expense_types
        self._clock = clock

    def _period_start(
        self,
        period_start: Optional[datetime],
        period: Optional[ReportPeriod],
    ) -> datetime:
        if (period_start is None) == (period is None):
            raise ValueError("Give exactly one of period_start or period")
        if period is not None:
            return period_start_for(period, self._clock(), self._settings.tzinfo)
        return period_start

    async def build(
        self,
        period_start: Optional[datetime] = None,
        period: Optional[ReportPeriod] = None,
        period_end: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Union[CashFlowBridge, NoCashAccounts]:
        """
        Compute the bridge for an explicit start or a preset period.

        Raises:
            ValueError: Neither or both of period_start and period given
            MissingAccountError: A cash id is not an ASSETS account
            BridgeInvariantError: The bridge did not close
        """
        correlation_id = correlation_id or create_correlation_id()
        period_start = self._period_start(period_start, period)

        validated = await load_ledger(
            self._repository, self._validator, self._audit_logger, correlation_id
        )
        accounts = validated.accounts

        cash_ids = cash_account_ids(accounts, self._settings.cash_category)

        try:
            result = compute_bridge(
                accounts,
                validated.transactions,
                cash_ids,
                period_start=period_start,
                now_balance=live_cash_balance(accounts, cash_ids),
                period_end=period_end,
                rules=self._rules,
            )
        except (MissingAccountError, BridgeInvariantError) as e:
            if self._audit_logger:
                await self._audit_logger.log_bridge_failed(
                    type(e).__name__, str(e), correlation_id
                )
            raise

        if self._audit_logger:
            await self._audit_logger.log_bridge_computed(
                period_start=result.period_start.isoformat(),
                period_end=result.period_end.isoformat() if result.period_end else None,
                opening=str(result.opening),
                closing=str(result.closing),
                correlation_id=correlation_id,
            )

        return result

    async def period_pnl(
        self,
        period_start: Optional[datetime] = None,
        period: Optional[ReportPeriod] = None,
        period_end: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> PnLBreakdown:
        """
        Income and expense breakdown over the same window as the bridge.

        The window ends at `period_end`, or now when open.

        Raises:
            ValueError: Neither or both of period_start and period given
        """
        correlation_id = correlation_id or create_correlation_id()
        start = self._period_start(period_start, period)
        end = period_end or self._clock()

        validated = await load_ledger(
            self._repository, self._validator, self._audit_logger, correlation_id
        )
        label = month_of(start, self._settings.tzinfo) if period == ReportPeriod.MONTH else None
        return pnl_breakdown(
            validated.transactions,
            start,
            end,
            label=label,
            expense_types=self._expense_types,
        )


class NetWorthReportFlow:
    """
    Orchestrates the net-worth trend and the live reconciliation.

    Reads stored snapshots for history and the registry for the live point.
    """

    def __init__(
        self,
        repository: LedgerRepository,
        snapshot_storage: SnapshotStorageInterface,
        validator: Optional[LedgerValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
        expense_types: Optional[Mapping[str, ExpenseType]] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._repository = repository
        self._snapshot_storage = snapshot_storage
        self._validator = validator or LedgerValidator()
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().ledger
        self._expense_types = expense_types
        self._clock = clock

    async def trend(self, correlation_id: Optional[UUID] = None) -> NetWorthTrend:
        """History from stored snapshots, live point and linear forecast."""
        correlation_id = correlation_id or create_correlation_id()

        validated = await load_ledger(
            self._repository, self._validator, self._audit_logger, correlation_id
        )
        snapshots = await self._snapshot_storage.list_snapshots()

        return net_worth_trend(
            snapshots,
            validated.accounts,
            now=self._clock(),
            forecast_months=self._settings.forecast_months,
            equity_fund_category=self._settings.equity_fund_category,
            tz=self._settings.tzinfo,
        )

    async def reconcile(self, correlation_id: Optional[UUID] = None) -> LiveReconciliation:
        """Replay the whole ledger to now and compare with live balances."""
        correlation_id = correlation_id or create_correlation_id()

        validated = await load_ledger(
            self._repository, self._validator, self._audit_logger, correlation_id
        )
        reconciliation = reconcile_live_balances(
            validated.accounts,
            validated.transactions,
            as_of=self._clock(),
            equity_fund_category=self._settings.equity_fund_category,
        )

        if not reconciliation.is_consistent:
            logger.warning(
                "live_balances_diverge",
                correlation_id=str(correlation_id),
                accounts=[d.account_id for d in reconciliation.discrepancies],
                reconstructed=str(reconciliation.reconstructed_net_worth),
                live=str(reconciliation.live_net_worth),
            )
        return reconciliation

    async def pnl_comparison(self, correlation_id: Optional[UUID] = None) -> MonthlyPnLComparison:
        """This month's income and expense breakdown against last month's."""
        correlation_id = correlation_id or create_correlation_id()

        validated = await load_ledger(
            self._repository, self._validator, self._audit_logger, correlation_id
        )
        return monthly_pnl_comparison(
            validated.transactions,
            now=self._clock(),
            tz=self._settings.tzinfo,
            expense_types=self._expense_types,
        )


def create_app_components(
    use_storage: bool = True,
) -> tuple[SnapshotJob, BridgeReportFlow, NetWorthReportFlow, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to run against empty in-memory storage.

    Returns:
        (snapshot_job, bridge_flow, net_worth_flow, sheets_client)
    """
    sheets_client = None
    repository: LedgerRepository = InMemoryLedgerRepository()
    snapshot_storage: SnapshotStorageInterface = InMemorySnapshotStorage()
    audit_storage: Optional[AuditStorageInterface] = None

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            repository = GoogleSheetsLedgerRepository(sheets_client)
            snapshot_storage = GoogleSheetsSnapshotStorage(sheets_client)
            audit_storage = GoogleSheetsAuditStorage(sheets_client)
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None

    audit_logger = AuditLogger(audit_storage)  # Local-only when audit_storage is None

    snapshot_job = SnapshotJob(
        repository=repository,
        snapshot_storage=snapshot_storage,
        audit_logger=audit_logger,
    )

    bridge_flow = BridgeReportFlow(
        repository=repository,
        audit_logger=audit_logger,
    )

    net_worth_flow = NetWorthReportFlow(
        repository=repository,
        snapshot_storage=snapshot_storage,
        audit_logger=audit_logger,
    )

    return snapshot_job, bridge_flow, net_worth_flow, sheets_client
