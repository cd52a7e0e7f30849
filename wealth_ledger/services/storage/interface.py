"""
Abstract Storage Interface

DESIGN DECISION: We define abstract interfaces for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the compute core decoupled from storage implementation

The ledger feeds are read-only to this system: the repository hands out raw
rows and the validator turns them into models. Snapshots are written only as
whole documents, in chunks, each chunk all-or-nothing.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import UUID

from wealth_ledger.models.audit import AuditEvent
from wealth_ledger.models.ledger import MonthlySnapshot


class LedgerRepository(ABC):
    """
    Read-only access to the account registry and the transaction log.

    Rows are returned as plain dictionaries in the feed shape; parsing and
    validation happen in the validator so bad rows can be reported instead
    of crashing the read.
    """

    @abstractmethod
    async def list_accounts(self) -> list[dict[str, Any]]:
        """
        Fetch every account row.

        Returns:
            Rows shaped {id, name, group, category, current_balance, status}

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    async def list_transactions(self) -> list[dict[str, Any]]:
        """
        Fetch the complete transaction log.

        Returns:
            Rows shaped {id, datetime, amount, debit_account_id,
            credit_account_id, type, group, category, note}

        Raises:
            StorageError: If the read fails
        """
        pass


class SnapshotStorageInterface(ABC):
    """
    Abstract interface for monthly snapshot storage.

    Snapshots are keyed by month id and replaced wholesale.
    """

    @abstractmethod
    async def upsert_snapshots(self, snapshots: list[MonthlySnapshot]) -> None:
        """
        Write one chunk of snapshots atomically, overwriting by month id.

        Either every snapshot in the chunk is stored or none is.

        Args:
            snapshots: At most the backend's per-batch ceiling

        Raises:
            StorageError: If the chunk was not committed
        """
        pass

    @abstractmethod
    async def get_snapshot(self, month: str) -> Optional[MonthlySnapshot]:
        """
        Retrieve a snapshot by its month id.

        Returns:
            The snapshot if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_snapshots(self) -> list[MonthlySnapshot]:
        """
        List all stored snapshots.

        Returns:
            Snapshots ordered by month id
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Args:
            event: The audit event to log

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one snapshot job run).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class PartialBatchCommitError(StorageError):
    """
    One or more snapshot chunks failed to commit.

    Chunks are independent, so some months may already be stored.
    """

    def __init__(
        self,
        committed_months: list[str],
        failed_months: list[str],
        errors: Optional[list[str]] = None,
    ):
        self.committed_months = committed_months
        self.failed_months = failed_months
        self.errors = errors or []
        super().__init__(
            f"{len(failed_months)} snapshots failed to commit "
            f"({len(committed_months)} committed)"
        )
