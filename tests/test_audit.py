"""
Tests for the audit logger and audit storage reads.
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from wealth_ledger.audit import AuditLogger, create_correlation_id
from wealth_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from wealth_ledger.services.storage import GoogleSheetsAuditStorage, InMemoryAuditStorage


def _event(minute, correlation_id=None, event_type=AuditEventType.SNAPSHOT_GENERATED):
    return AuditEvent(
        timestamp=datetime(2024, 4, 1, 9, minute, tzinfo=timezone.utc),
        event_type=event_type,
        entity_type="snapshot",
        entity_id="2024-03",
        correlation_id=correlation_id,
        description=f"Event at minute {minute}",
    )


class TestAuditLogger:
    """Tests for writing and reading back audit events."""

    def test_events_for_one_run(self):
        """Only the run's events come back, oldest first."""
        storage = InMemoryAuditStorage()
        audit = AuditLogger(storage=storage)
        run_id = create_correlation_id()

        async def scenario():
            await audit.log(_event(5, run_id))
            await audit.log(_event(1, create_correlation_id()))
            await audit.log(_event(2, run_id, AuditEventType.SNAPSHOT_JOB_STARTED))
            return await audit.events_for(run_id)

        events = asyncio.run(scenario())

        assert [e.timestamp.minute for e in events] == [2, 5]
        assert events[0].event_type == AuditEventType.SNAPSHOT_JOB_STARTED

    def test_recent_events_newest_first(self):
        """recent_events honours the limit."""
        storage = InMemoryAuditStorage()
        audit = AuditLogger(storage=storage)

        async def scenario():
            for minute in (3, 1, 7):
                await audit.log(_event(minute))
            return await audit.recent_events(limit=2)

        events = asyncio.run(scenario())
        assert [e.timestamp.minute for e in events] == [7, 3]

    def test_reads_without_storage(self):
        """A local-only logger has nothing to read back."""
        audit = AuditLogger()
        assert asyncio.run(audit.events_for(create_correlation_id())) == []
        assert asyncio.run(audit.recent_events()) == []

    def test_storage_failure_does_not_raise(self):
        """A failing audit store never breaks the caller."""
        storage = MagicMock()

        async def broken(event):
            raise RuntimeError("sheet unavailable")

        storage.append_event = broken
        assert asyncio.run(AuditLogger(storage=storage).log(_event(1))) is False


class TestGoogleSheetsAuditStorage:
    """Tests for reading the audit sheet against a mocked worksheet."""

    def _storage(self, rows):
        sheet = MagicMock()
        sheet.get_all_values.return_value = rows
        client = MagicMock()
        client.get_audit_sheet.return_value = sheet
        return GoogleSheetsAuditStorage(client=client)

    def test_events_by_correlation_id(self):
        """Rows are parsed back into events and filtered by run."""
        run_id = create_correlation_id()
        first = _event(4, run_id)
        other = _event(2, create_correlation_id())
        second = _event(9, run_id).model_copy(update={
            "severity": AuditSeverity.ERROR,
            "error_message": "unknown account",
        })
        storage = self._storage([
            ["event_id"],
            second.to_sheets_row(),
            other.to_sheets_row(),
            first.to_sheets_row(),
        ])

        events = asyncio.run(storage.get_events_by_correlation_id(run_id))

        assert [e.event_id for e in events] == [first.event_id, second.event_id]
        assert events[1].severity == AuditSeverity.ERROR
        assert events[1].error_message == "unknown account"

    def test_recent_events_skip_unreadable_rows(self):
        """Blank and malformed rows are skipped, the rest sorted newest first."""
        older = _event(1)
        newer = _event(8)
        storage = self._storage([
            ["event_id"],
            [],
            ["not-a-uuid", "2024-04-01T09:00:00+00:00", "snapshot_generated", "info"],
            older.to_sheets_row(),
            newer.to_sheets_row(),
        ])

        events = asyncio.run(storage.get_recent_events(limit=10))

        assert [e.event_id for e in events] == [newer.event_id, older.event_id]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
