"""
Audit Logger

DESIGN DECISION: Every significant job step is logged.
This provides:
1. Traceability of which run committed which months
2. Debugging capability when a month fails to replay
3. The user can see the history of snapshot runs

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the job if logging fails)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from wealth_ledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from wealth_ledger.services.storage.interface import AuditStorageInterface


def configure_logging(log_level: str = "INFO") -> None:
    """
    Configure structlog for local JSON logging.

    Called once at import with INFO; call again with the configured level
    at application startup.
    """
    logging.basicConfig(format="%(message)s", level=getattr(logging, log_level.upper()))
    logging.getLogger().setLevel(getattr(logging, log_level.upper()))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("wealth_ledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_ledger_loaded(
        self,
        account_count: int,
        transaction_count: int,
        correlation_id: UUID,
    ) -> None:
        """Log a successful feed read."""
        await self.log(AuditEventBuilder.ledger_loaded(
            account_count=account_count,
            transaction_count=transaction_count,
            correlation_id=correlation_id,
        ))

    async def log_validation(
        self,
        issues: list[dict],
        has_errors: bool,
        correlation_id: UUID,
    ) -> None:
        """Log the outcome of ledger validation."""
        if has_errors:
            event = AuditEventBuilder.validation_failed(
                issues=issues,
                correlation_id=correlation_id,
            )
        else:
            event = AuditEventBuilder.validation_passed(
                warning_count=len(issues),
                correlation_id=correlation_id,
            )
        await self.log(event)

    async def log_job_started(
        self,
        months: list[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.snapshot_job_started(
            months=months,
            correlation_id=correlation_id,
        ))

    async def log_snapshot_generated(
        self,
        month: str,
        net_worth: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.snapshot_generated(
            month=month,
            net_worth=net_worth,
            correlation_id=correlation_id,
        ))

    async def log_replay_failed(
        self,
        month: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a month that could not be replayed."""
        await self.log(AuditEventBuilder.replay_failed(
            month=month,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_job_cancelled(
        self,
        completed_months: list[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.snapshot_job_cancelled(
            completed_months=completed_months,
            correlation_id=correlation_id,
        ))

    async def log_chain_mismatch(
        self,
        month: str,
        previous_month: str,
        accounts: list[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.chain_mismatch(
            month=month,
            previous_month=previous_month,
            accounts=accounts,
            correlation_id=correlation_id,
        ))

    async def log_snapshots_committed(
        self,
        months: list[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.snapshots_committed(
            months=months,
            correlation_id=correlation_id,
        ))

    async def log_commit_failed(
        self,
        committed_months: list[str],
        failed_months: list[str],
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a partially failed snapshot commit."""
        await self.log(AuditEventBuilder.snapshot_commit_failed(
            committed_months=committed_months,
            failed_months=failed_months,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_bridge_computed(
        self,
        period_start: str,
        period_end: Optional[str],
        opening: str,
        closing: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.bridge_computed(
            period_start=period_start,
            period_end=period_end,
            opening=opening,
            closing=closing,
            correlation_id=correlation_id,
        ))

    async def log_bridge_failed(
        self,
        error_type: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.bridge_failed(
            error_type=error_type,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def events_for(self, correlation_id: UUID) -> list[AuditEvent]:
        """
        Events of one job run or report request, oldest first.

        Returns an empty list when only logging locally.
        """
        if not self._storage:
            return []
        return await self._storage.get_events_by_correlation_id(correlation_id)

    async def recent_events(self, limit: int = 50) -> list[AuditEvent]:
        """Most recent persisted events, newest first."""
        if not self._storage:
            return []
        return await self._storage.get_recent_events(limit)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a job run or report request.
    Pass it through all subsequent operations.
    """
    return uuid4()
