"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the production backend; the in-memory backend serves tests
and local runs.
"""

from wealth_ledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    LedgerRepository,
    PartialBatchCommitError,
    SnapshotStorageInterface,
    StorageError,
)
from wealth_ledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerRepository,
    GoogleSheetsSnapshotStorage,
)
from wealth_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerRepository,
    InMemorySnapshotStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerRepository",
    "SnapshotStorageInterface",
    # Exceptions
    "ConnectionError",
    "PartialBatchCommitError",
    "StorageError",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerRepository",
    "GoogleSheetsSnapshotStorage",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerRepository",
    "InMemorySnapshotStorage",
]
