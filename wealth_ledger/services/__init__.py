"""Services package."""

from wealth_ledger.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerRepository,
    GoogleSheetsSnapshotStorage,
    InMemoryAuditStorage,
    InMemoryLedgerRepository,
    InMemorySnapshotStorage,
    LedgerRepository,
    PartialBatchCommitError,
    SnapshotStorageInterface,
    StorageError,
)

__all__ = [
    "AuditStorageInterface",
    "ConnectionError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerRepository",
    "GoogleSheetsSnapshotStorage",
    "InMemoryAuditStorage",
    "InMemoryLedgerRepository",
    "InMemorySnapshotStorage",
    "LedgerRepository",
    "PartialBatchCommitError",
    "SnapshotStorageInterface",
    "StorageError",
]
