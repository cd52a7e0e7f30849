"""
Integration tests for the orchestrated flows (with in-memory storage).
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from wealth_ledger.audit import AuditLogger
from wealth_ledger.config import LedgerSettings
from wealth_ledger.ledger import InvalidMonthError, SnapshotGenerationCancelled
from wealth_ledger.models.audit import AuditEventType
from wealth_ledger.models.cashflow import ReportPeriod
from wealth_ledger.orchestrator import (
    BridgeReportFlow,
    NetWorthReportFlow,
    SnapshotJob,
)
from wealth_ledger.reports import ExpenseType
from wealth_ledger.services.storage import (
    InMemoryAuditStorage,
    InMemoryLedgerRepository,
    InMemorySnapshotStorage,
)
from wealth_ledger.validation import InvalidLedgerInputError, LedgerValidator


NOW = datetime(2024, 4, 1, 8, 0, tzinfo=timezone.utc)


def clock():
    return NOW


ACCOUNT_ROWS = [
    {"id": "cash", "name": "Wallet", "group": "ASSETS", "category": "Cash", "current_balance": "500000"},
    {"id": "stocks", "name": "Brokerage", "group": "ASSETS", "category": "Stocks"},
    {"id": "fund", "name": "Equity", "group": "CAPITAL", "category": "Equity Fund"},
    {"id": "salary", "name": "Salary", "group": "INCOME", "category": "Salary"},
]


def _txn_row(txn_id, when, amount, debit, credit, type_, group, category=""):
    return {
        "id": txn_id,
        "datetime": when,
        "amount": str(amount),
        "debit_account_id": debit,
        "credit_account_id": credit,
        "type": type_,
        "group": group,
        "category": category,
    }


JANUARY_ROWS = [
    _txn_row("salary-jan", "2024-01-05T09:00:00Z", 2_000_000, "cash", "fund", "DAILY_CASHFLOW", "INCOME", "Salary"),
    _txn_row("buy-jan", "2024-01-12T09:00:00Z", 800_000, "stocks", "cash", "ASSET_BUY", "ASSETS", "Stocks"),
]

FEBRUARY_ROWS = [
    _txn_row("rent-feb", "2024-02-03T09:00:00Z", 100_000, "fund", "cash", "DAILY_CASHFLOW", "EXPENSES", "Rent"),
]


class Harness:
    """Wires a snapshot job to in-memory storage."""

    def __init__(self, transaction_rows, fail_on_months=(), account_rows=ACCOUNT_ROWS, **settings):
        self.repository = InMemoryLedgerRepository(account_rows, transaction_rows)
        self.snapshot_storage = InMemorySnapshotStorage(fail_on_months=fail_on_months)
        self.audit_storage = InMemoryAuditStorage()
        self.audit_logger = AuditLogger(self.audit_storage)
        self.validator = LedgerValidator(future_date_tolerance_days=1, clock=clock)
        self.settings = LedgerSettings(batch_chunk_size=2, **settings)

    def job(self) -> SnapshotJob:
        return SnapshotJob(
            repository=self.repository,
            snapshot_storage=self.snapshot_storage,
            validator=self.validator,
            audit_logger=self.audit_logger,
            settings=self.settings,
            clock=clock,
        )

    def event_types(self) -> list[AuditEventType]:
        return [event.event_type for event in self.audit_storage.events]


class TestSnapshotJob:
    """Tests for the end-to-end snapshot job."""

    def test_range_is_generated_and_committed(self):
        """Every month in the range is generated and stored in chunks."""
        harness = Harness(JANUARY_ROWS + FEBRUARY_ROWS)

        report = asyncio.run(harness.job().run(start="2024-01", end="2024-03"))

        assert report.requested_months == ["2024-01", "2024-02", "2024-03"]
        assert report.generated_months == ["2024-01", "2024-02", "2024-03"]
        assert report.committed_months == ["2024-01", "2024-02", "2024-03"]
        assert report.is_complete
        assert harness.snapshot_storage.batches == [["2024-01", "2024-02"], ["2024-03"]]

        february = asyncio.run(harness.snapshot_storage.get_snapshot("2024-02"))
        assert february.balances()["cash"] == Decimal("1100000")
        assert february.summary.net_worth == Decimal("1900000")
        assert february.pnl_performance.expense == Decimal("100000")

    def test_job_is_audited(self):
        """Each stage leaves an audit event under one correlation id."""
        harness = Harness(JANUARY_ROWS)

        report = asyncio.run(harness.job().run(month="2024-01"))

        assert harness.event_types() == [
            AuditEventType.SNAPSHOT_JOB_STARTED,
            AuditEventType.LEDGER_LOADED,
            AuditEventType.VALIDATION_PASSED,
            AuditEventType.SNAPSHOT_GENERATED,
            AuditEventType.SNAPSHOTS_COMMITTED,
        ]
        assert all(e.correlation_id == report.correlation_id for e in harness.audit_storage.events)

    def test_run_events_by_correlation_id(self):
        """A run's audit trail is read back by its correlation id only."""
        harness = Harness(JANUARY_ROWS)
        job = harness.job()

        first = asyncio.run(job.run(month="2024-01"))
        asyncio.run(job.run(month="2024-01"))

        events = asyncio.run(job.run_events(first.correlation_id))
        assert events[0].event_type == AuditEventType.SNAPSHOT_JOB_STARTED
        assert len(events) == 5
        assert all(e.correlation_id == first.correlation_id for e in events)
        assert len(asyncio.run(job.recent_events(limit=3))) == 3

    def test_run_events_without_audit_logger(self):
        """A job without an audit logger has no trail to read."""
        harness = Harness(JANUARY_ROWS)
        job = SnapshotJob(repository=harness.repository, settings=harness.settings, clock=clock)
        report = asyncio.run(job.run(month="2024-01"))
        assert asyncio.run(job.run_events(report.correlation_id)) == []

    def test_failed_month_is_reported_not_raised(self):
        """A month whose replay fails is listed while the others are stored."""
        bad = _txn_row("bonus-mar", "2024-03-02T09:00:00Z", 10, "cash", "salary", "DAILY_CASHFLOW", "INCOME")
        harness = Harness(JANUARY_ROWS + FEBRUARY_ROWS + [bad])

        report = asyncio.run(harness.job().run(start="2024-01", end="2024-03"))

        assert report.generated_months == ["2024-01", "2024-02"]
        assert report.failed_months == ["2024-03"]
        assert report.failures[0].transaction_id == "bonus-mar"
        assert report.committed_months == ["2024-01", "2024-02"]
        assert report.validation.warnings
        assert not report.is_complete
        assert AuditEventType.REPLAY_FAILED in harness.event_types()

    def test_partial_commit_is_reported(self):
        """A failed chunk leaves an exact committed/uncommitted split."""
        harness = Harness(JANUARY_ROWS + FEBRUARY_ROWS, fail_on_months=["2024-03"])

        report = asyncio.run(harness.job().run(start="2024-01", end="2024-03"))

        assert report.committed_months == ["2024-01", "2024-02"]
        assert report.uncommitted_months == ["2024-03"]
        assert not report.is_complete
        assert AuditEventType.SNAPSHOT_COMMIT_FAILED in harness.event_types()
        assert asyncio.run(harness.snapshot_storage.get_snapshot("2024-03")) is None

    def test_invalid_input_writes_nothing(self):
        """Duplicate ids reject the run before anything is generated."""
        harness = Harness(JANUARY_ROWS + JANUARY_ROWS[:1])

        with pytest.raises(InvalidLedgerInputError) as exc_info:
            asyncio.run(harness.job().run(month="2024-01"))

        assert exc_info.value.result.has_errors
        summary = harness.job().validator.get_user_friendly_summary(exc_info.value.result)
        assert "appears more than once" in summary
        assert harness.snapshot_storage.batches == []
        assert AuditEventType.VALIDATION_FAILED in harness.event_types()

    def test_inverted_range_fails_before_reading(self):
        """A bad range is rejected before the job starts."""
        harness = Harness(JANUARY_ROWS)

        with pytest.raises(InvalidMonthError):
            asyncio.run(harness.job().run(start="2024-03", end="2024-01"))

        assert harness.audit_storage.events == []

    def test_cancellation_persists_nothing(self):
        """Cancelling between months raises and stores nothing."""
        harness = Harness(JANUARY_ROWS + FEBRUARY_ROWS)
        checks = []

        def should_cancel():
            checks.append(1)
            return len(checks) > 1

        with pytest.raises(SnapshotGenerationCancelled) as exc_info:
            asyncio.run(harness.job().run(start="2024-01", end="2024-03", should_cancel=should_cancel))

        assert exc_info.value.completed_months == ["2024-01"]
        assert harness.snapshot_storage.batches == []
        assert AuditEventType.SNAPSHOT_JOB_CANCELLED in harness.event_types()

    def test_rerun_is_identical(self):
        """Regenerating with a fixed clock overwrites with the same documents."""
        harness = Harness(JANUARY_ROWS + FEBRUARY_ROWS)
        job = harness.job()

        asyncio.run(job.run(months=["2024-01", "2024-02"]))
        first = [s.to_document() for s in asyncio.run(harness.snapshot_storage.list_snapshots())]
        asyncio.run(job.run(months=["2024-02", "2024-01"]))
        second = [s.to_document() for s in asyncio.run(harness.snapshot_storage.list_snapshots())]

        assert first == second

    def test_chain_check_can_be_disabled(self):
        """With the check off no mismatches are computed."""
        harness = Harness(JANUARY_ROWS + FEBRUARY_ROWS, verify_snapshot_chain=False)
        report = asyncio.run(harness.job().run(start="2024-01", end="2024-02"))
        assert report.chain_mismatches == []

    def test_job_without_storage_only_generates(self):
        """Without a snapshot store the job reports generated months only."""
        harness = Harness(JANUARY_ROWS)
        job = SnapshotJob(
            repository=harness.repository,
            validator=harness.validator,
            settings=harness.settings,
            clock=clock,
        )
        report = asyncio.run(job.run(month="2024-01"))
        assert report.generated_months == ["2024-01"]
        assert report.committed_months == []


class TestBridgeReportFlow:
    """Tests for the bridge flow."""

    def _flow(self, account_rows=ACCOUNT_ROWS, now=datetime(2024, 1, 31, 12, tzinfo=timezone.utc)):
        self.audit_storage = InMemoryAuditStorage()
        return BridgeReportFlow(
            repository=InMemoryLedgerRepository(account_rows, JANUARY_ROWS),
            validator=LedgerValidator(future_date_tolerance_days=1, clock=lambda: now),
            audit_logger=AuditLogger(self.audit_storage),
            settings=LedgerSettings(),
            clock=lambda: now,
        )

    def test_january_bridge(self):
        """The live cash balance is walked back to the period start."""
        bridge = asyncio.run(self._flow().build(period_start=datetime(2024, 1, 1, tzinfo=timezone.utc)))

        assert bridge.opening == Decimal("-700000")
        assert bridge.operating == Decimal("2000000")
        assert bridge.investing == Decimal("-800000")
        assert bridge.closing == Decimal("500000")
        assert self.audit_storage.events[-1].event_type == AuditEventType.BRIDGE_COMPUTED

    def test_preset_period(self):
        """MONTH starts at the first of the current month."""
        bridge = asyncio.run(self._flow().build(period=ReportPeriod.MONTH))
        assert bridge.period_start == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert bridge.opening == Decimal("-700000")

    def test_exactly_one_start(self):
        """Either an explicit start or a preset period is required."""
        flow = self._flow()
        with pytest.raises(ValueError):
            asyncio.run(flow.build())
        with pytest.raises(ValueError):
            asyncio.run(flow.build(period_start=datetime(2024, 1, 1, tzinfo=timezone.utc), period=ReportPeriod.WEEK))

    def test_no_cash_accounts(self):
        """Without cash accounts the flow returns an empty result."""
        rows = [dict(row, category="Wallet") if row["id"] == "cash" else row for row in ACCOUNT_ROWS]
        result = asyncio.run(self._flow(account_rows=rows).build(period=ReportPeriod.YEAR))
        assert not result.has_bridge

    def test_period_pnl_for_month(self):
        """The P&L covers the bridge window and is labelled by month."""
        pnl = asyncio.run(self._flow().period_pnl(period=ReportPeriod.MONTH))

        assert pnl.label == "2024-01"
        assert pnl.income.salary == Decimal("2000000")
        assert pnl.expense.total == Decimal("0")
        assert pnl.transaction_count == 2
        assert pnl.savings_rate == Decimal("100.00")

    def test_period_pnl_explicit_window(self):
        """An explicit start and end bound the P&L window."""
        pnl = asyncio.run(self._flow().period_pnl(
            period_start=datetime(2024, 1, 10, tzinfo=timezone.utc),
            period_end=datetime(2024, 1, 20, tzinfo=timezone.utc),
        ))
        assert pnl.label == "2024-01-10"
        assert pnl.income.total == Decimal("0")
        assert pnl.transaction_count == 1

    def test_period_pnl_needs_one_start(self):
        """The P&L shares the bridge's period rules."""
        with pytest.raises(ValueError):
            asyncio.run(self._flow().period_pnl())


class TestNetWorthReportFlow:
    """Tests for the net-worth flow."""

    def test_trend_after_job(self):
        """Stored snapshots feed the trend, followed by the live point."""
        harness = Harness(JANUARY_ROWS + FEBRUARY_ROWS)
        asyncio.run(harness.job().run(start="2024-01", end="2024-02"))

        flow = NetWorthReportFlow(
            repository=harness.repository,
            snapshot_storage=harness.snapshot_storage,
            validator=harness.validator,
            settings=LedgerSettings(forecast_months=2),
            clock=clock,
        )
        trend = asyncio.run(flow.trend())

        assert [p.label for p in trend.history] == ["2024-01", "2024-02", "Now"]
        assert trend.history[0].net_worth == Decimal("2000000")
        assert [p.label for p in trend.forecast] == ["2024-05", "2024-06"]

    def test_reconcile_flags_drift(self):
        """Live balances that the ledger does not explain are reported."""
        harness = Harness(JANUARY_ROWS + FEBRUARY_ROWS)
        flow = NetWorthReportFlow(
            repository=harness.repository,
            snapshot_storage=harness.snapshot_storage,
            validator=harness.validator,
            settings=LedgerSettings(),
            clock=clock,
        )
        reconciliation = asyncio.run(flow.reconcile())

        assert not reconciliation.is_consistent
        drifted = {d.account_id for d in reconciliation.discrepancies}
        assert drifted == {"cash", "stocks", "fund"}

    def test_pnl_comparison(self):
        """This month's P&L is compared with last month's."""
        harness = Harness(JANUARY_ROWS + FEBRUARY_ROWS)
        flow = NetWorthReportFlow(
            repository=harness.repository,
            snapshot_storage=harness.snapshot_storage,
            validator=harness.validator,
            settings=LedgerSettings(),
            expense_types={"Rent": ExpenseType.VARIABLE},
            clock=lambda: datetime(2024, 2, 20, tzinfo=timezone.utc),
        )
        comparison = asyncio.run(flow.pnl_comparison())

        assert comparison.current.label == "2024-02"
        assert comparison.current.expense.variable == Decimal("100000")
        assert comparison.current.expense.fixed == Decimal("0")
        assert comparison.previous.income.total == Decimal("2000000")
        assert comparison.savings_change == Decimal("-2100000")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
