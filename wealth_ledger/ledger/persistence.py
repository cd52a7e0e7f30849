"""
Snapshot Persistence

Writes generated snapshots in chunks. Each chunk is one atomic storage
batch; chunks are independent of each other.

DESIGN DECISION: Every chunk is attempted even after a failure, and the
caller gets an exact committed/failed month split. Nothing is retried here;
re-running the job regenerates identical documents and overwrites by id.
"""

from typing import Iterable

import structlog

from wealth_ledger.models.ledger import MonthlySnapshot
from wealth_ledger.services.storage.interface import (
    PartialBatchCommitError,
    SnapshotStorageInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)

MAX_BATCH_SIZE = 500


def chunked(snapshots: list[MonthlySnapshot], size: int) -> list[list[MonthlySnapshot]]:
    if size < 1:
        raise ValueError("chunk_size must be at least 1")
    return [snapshots[i:i + size] for i in range(0, len(snapshots), size)]


async def persist_snapshots(
    store: SnapshotStorageInterface,
    snapshots: Iterable[MonthlySnapshot],
    chunk_size: int = MAX_BATCH_SIZE,
) -> list[str]:
    """
    Upsert snapshots chunk by chunk.

    Args:
        store: Snapshot storage backend
        snapshots: Snapshots to write (overwrite by month id)
        chunk_size: Snapshots per atomic batch, at most 500

    Returns:
        Month ids committed, in write order

    Raises:
        PartialBatchCommitError: If any chunk failed; carries both the
            committed and the failed months
    """
    if chunk_size > MAX_BATCH_SIZE:
        raise ValueError(f"chunk_size cannot exceed {MAX_BATCH_SIZE}")

    committed: list[str] = []
    failed: list[str] = []
    errors: list[str] = []

    for index, chunk in enumerate(chunked(list(snapshots), chunk_size)):
        months = [snapshot.id for snapshot in chunk]
        try:
            await store.upsert_snapshots(chunk)
        except StorageError as e:
            logger.error("snapshot_chunk_failed", chunk=index, months=months, error=str(e))
            failed.extend(months)
            errors.append(str(e))
            continue

        logger.info("snapshot_chunk_committed", chunk=index, count=len(months))
        committed.extend(months)

    if failed:
        raise PartialBatchCommitError(committed, failed, errors)

    return committed
