"""
In-Memory Storage Implementation

Used by the tests and for local runs without a spreadsheet. Behaves like the
Google Sheets adapters: chunk writes are all-or-nothing and documents are
replaced wholesale by id.
"""

from typing import Any, Iterable, Optional, Union
from uuid import UUID

from pydantic import BaseModel

from wealth_ledger.models.audit import AuditEvent
from wealth_ledger.models.ledger import MonthlySnapshot
from wealth_ledger.services.storage.interface import (
    AuditStorageInterface,
    LedgerRepository,
    SnapshotStorageInterface,
    StorageError,
)


Row = Union[dict[str, Any], BaseModel]


def _as_row(record: Row) -> dict[str, Any]:
    if isinstance(record, BaseModel):
        return record.model_dump(mode="json", by_alias=True)
    return dict(record)


class InMemoryLedgerRepository(LedgerRepository):
    """Serves fixed account and transaction feeds."""

    def __init__(
        self,
        accounts: Iterable[Row] = (),
        transactions: Iterable[Row] = (),
    ):
        self._accounts = [_as_row(record) for record in accounts]
        self._transactions = [_as_row(record) for record in transactions]

    async def list_accounts(self) -> list[dict[str, Any]]:
        return [dict(row) for row in self._accounts]

    async def list_transactions(self) -> list[dict[str, Any]]:
        return [dict(row) for row in self._transactions]


class InMemorySnapshotStorage(SnapshotStorageInterface):
    """
    Dictionary-backed snapshot store.

    `fail_on_months` makes any chunk containing one of those months fail
    without writing anything, to exercise partial-commit handling.
    """

    def __init__(self, fail_on_months: Iterable[str] = ()):
        self._snapshots: dict[str, MonthlySnapshot] = {}
        self.fail_on_months = set(fail_on_months)
        self.batches: list[list[str]] = []

    async def upsert_snapshots(self, snapshots: list[MonthlySnapshot]) -> None:
        months = [snapshot.id for snapshot in snapshots]
        self.batches.append(months)

        failing = self.fail_on_months.intersection(months)
        if failing:
            raise StorageError(f"Batch rejected for months: {sorted(failing)}")

        for snapshot in snapshots:
            self._snapshots[snapshot.id] = snapshot.model_copy(deep=True)

    async def get_snapshot(self, month: str) -> Optional[MonthlySnapshot]:
        return self._snapshots.get(month)

    async def list_snapshots(self) -> list[MonthlySnapshot]:
        return [self._snapshots[month] for month in sorted(self._snapshots)]


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return sorted(self.events, key=lambda e: e.timestamp, reverse=True)[:limit]
