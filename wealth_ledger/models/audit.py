"""
Audit Models for Wealth Ledger

Every significant job step in the system is logged for audit purposes.
This provides:
1. Traceability of each snapshot generation and bridge report
2. Debugging information when a month fails to replay
3. A record of which months were committed by which run

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every stage of the snapshot job and the bridge flow has its own type.
    """
    # Input
    LEDGER_LOADED = "ledger_loaded"
    VALIDATION_PASSED = "validation_passed"
    VALIDATION_FAILED = "validation_failed"

    # Snapshot generation
    SNAPSHOT_JOB_STARTED = "snapshot_job_started"
    SNAPSHOT_GENERATED = "snapshot_generated"
    REPLAY_FAILED = "replay_failed"
    SNAPSHOT_JOB_CANCELLED = "snapshot_job_cancelled"
    CHAIN_MISMATCH = "chain_mismatch"

    # Persistence
    SNAPSHOTS_COMMITTED = "snapshots_committed"
    SNAPSHOT_COMMIT_FAILED = "snapshot_commit_failed"

    # Reports
    BRIDGE_COMPUTED = "bridge_computed"
    BRIDGE_FAILED = "bridge_failed"

    # System events
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'snapshot', 'bridge', 'ledger')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to (e.g. '2024-03')"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one job run)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.snapshot_generated("2024-03", "1250.00", correlation_id)
        event = AuditEventBuilder.replay_failed("2024-04", "Unknown account x", correlation_id)
    """

    @staticmethod
    def ledger_loaded(
        account_count: int,
        transaction_count: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_LOADED,
            entity_type="ledger",
            correlation_id=correlation_id,
            description=f"Loaded {account_count} accounts and {transaction_count} transactions",
            details={
                "account_count": account_count,
                "transaction_count": transaction_count,
            },
        )

    @staticmethod
    def validation_passed(
        warning_count: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_PASSED,
            entity_type="ledger",
            correlation_id=correlation_id,
            description=f"Ledger validation passed with {warning_count} warnings",
            details={"warning_count": warning_count},
        )

    @staticmethod
    def validation_failed(
        issues: list[dict],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="ledger",
            correlation_id=correlation_id,
            description=f"Ledger validation failed with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def snapshot_job_started(
        months: list[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SNAPSHOT_JOB_STARTED,
            entity_type="snapshot_job",
            correlation_id=correlation_id,
            description=f"Snapshot job started for {len(months)} months",
            details={"months": months},
            is_user_action=True,
        )

    @staticmethod
    def snapshot_generated(
        month: str,
        net_worth: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SNAPSHOT_GENERATED,
            entity_type="snapshot",
            entity_id=month,
            correlation_id=correlation_id,
            description=f"Snapshot generated for {month}",
            details={"net_worth": net_worth},
        )

    @staticmethod
    def replay_failed(
        month: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REPLAY_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="snapshot",
            entity_id=month,
            correlation_id=correlation_id,
            description=f"Replay failed for {month}",
            error_code="missing_account",
            error_message=error_message,
        )

    @staticmethod
    def snapshot_job_cancelled(
        completed_months: list[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SNAPSHOT_JOB_CANCELLED,
            severity=AuditSeverity.WARNING,
            entity_type="snapshot_job",
            correlation_id=correlation_id,
            description=f"Snapshot job cancelled after {len(completed_months)} months",
            details={"completed_months": completed_months},
            is_user_action=True,
        )

    @staticmethod
    def chain_mismatch(
        month: str,
        previous_month: str,
        accounts: list[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CHAIN_MISMATCH,
            severity=AuditSeverity.ERROR,
            entity_type="snapshot",
            entity_id=month,
            correlation_id=correlation_id,
            description=f"Snapshot {month} does not roll forward from {previous_month}",
            details={"previous_month": previous_month, "accounts": accounts},
        )

    @staticmethod
    def snapshots_committed(
        months: list[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SNAPSHOTS_COMMITTED,
            entity_type="snapshot_batch",
            correlation_id=correlation_id,
            description=f"Committed {len(months)} snapshots",
            details={"months": months},
        )

    @staticmethod
    def snapshot_commit_failed(
        committed_months: list[str],
        failed_months: list[str],
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SNAPSHOT_COMMIT_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="snapshot_batch",
            correlation_id=correlation_id,
            description=f"Snapshot commit failed for {len(failed_months)} months",
            error_message=error_message,
            details={
                "committed_months": committed_months,
                "failed_months": failed_months,
            },
        )

    @staticmethod
    def bridge_computed(
        period_start: str,
        period_end: Optional[str],
        opening: str,
        closing: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BRIDGE_COMPUTED,
            entity_type="bridge",
            correlation_id=correlation_id,
            description=f"Cash-flow bridge computed from {period_start}",
            details={
                "period_start": period_start,
                "period_end": period_end,
                "opening": opening,
                "closing": closing,
            },
            is_user_action=True,
        )

    @staticmethod
    def bridge_failed(
        error_type: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BRIDGE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="bridge",
            correlation_id=correlation_id,
            description=f"Cash-flow bridge failed: {error_type}",
            error_code=error_type,
            error_message=error_message,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
