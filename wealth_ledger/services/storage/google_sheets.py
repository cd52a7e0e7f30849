"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the storage backend because:
1. The user can view the ledger and the snapshots directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- No multi-request transactions. Each snapshot chunk is written with a
  single batch_update request so a chunk lands completely or not at all;
  there is no atomicity across chunks.
- Limited query capabilities (we filter in Python)

Reads and connection setup are retried with tenacity. Snapshot writes are
not retried here; a failed chunk is reported to the caller as failed.
"""

import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from gspread.utils import rowcol_to_a1
from tenacity import retry, stop_after_attempt, wait_exponential

from wealth_ledger.config import GoogleSheetsSettings, get_settings
from wealth_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from wealth_ledger.models.ledger import (
    AccountBalanceDetail,
    MonthlySnapshot,
    PnLPerformance,
    SnapshotSummary,
)
from wealth_ledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    LedgerRepository,
    SnapshotStorageInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)

# Column mappings for the Accounts feed sheet
ACCOUNT_COLUMNS = [
    "id",
    "name",
    "group",
    "category",
    "current_balance",
    "status",
]

# Column mappings for the Transactions feed sheet
TRANSACTION_COLUMNS = [
    "id",
    "datetime",
    "amount",
    "debit_account_id",
    "credit_account_id",
    "type",
    "group",
    "category",
    "note",
]

# Column mappings for MonthlySnapshots sheet
SNAPSHOT_COLUMNS = [
    "id",
    "snapshot_date",
    "net_worth",
    "total_assets",
    "total_liabilities",
    "total_equity",
    "income",
    "expense",
    "savings",
    "accounts_detail_json",
    "createdAt",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

read_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for connection setup.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_accounts_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(self._settings.accounts_sheet_name, ACCOUNT_COLUMNS, 500)

    def get_transactions_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(
            self._settings.transactions_sheet_name, TRANSACTION_COLUMNS, 5000
        )

    def get_snapshots_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(self._settings.snapshots_sheet_name, SNAPSHOT_COLUMNS, 500)

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            5000,  # More rows for audit log
        )


def _clean_row(record: dict[str, Any]) -> dict[str, Any]:
    """Drop blank cells so model defaults apply instead of empty strings."""
    return {
        key: value
        for key, value in record.items()
        if key and value not in ("", None)
    }


class GoogleSheetsLedgerRepository(LedgerRepository):
    """
    Reads the account registry and the transaction log from their sheets.

    Cells are read as strings (no numeric coercion) so amounts reach the
    validator exactly as typed.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @read_retry
    async def list_accounts(self) -> list[dict[str, Any]]:
        try:
            sheet = self._client.get_accounts_sheet()
            records = sheet.get_all_records(numericise_ignore=["all"])
            return [_clean_row(record) for record in records if record.get("id")]
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read accounts: {e}")

    @read_retry
    async def list_transactions(self) -> list[dict[str, Any]]:
        try:
            sheet = self._client.get_transactions_sheet()
            records = sheet.get_all_records(numericise_ignore=["all"])
            return [_clean_row(record) for record in records if record.get("id")]
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read transactions: {e}")


class GoogleSheetsSnapshotStorage(SnapshotStorageInterface):
    """
    Google Sheets implementation of snapshot storage.

    One snapshot per row, keyed by the month id in column A. The per-account
    detail is JSON-serialized into a single cell.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _snapshot_to_row(self, snapshot: MonthlySnapshot) -> list:
        """Convert a MonthlySnapshot to a spreadsheet row."""
        document = snapshot.to_document()
        return [
            snapshot.id,
            snapshot.snapshot_date.isoformat(),
            str(snapshot.summary.net_worth),
            str(snapshot.summary.total_assets),
            str(snapshot.summary.total_liabilities),
            str(snapshot.summary.total_equity),
            str(snapshot.pnl_performance.income),
            str(snapshot.pnl_performance.expense),
            str(snapshot.pnl_performance.savings),
            json.dumps(document["accounts_detail"]),
            snapshot.created_at.isoformat(),
        ]

    def _row_to_snapshot(self, row: list) -> MonthlySnapshot:
        """Convert a spreadsheet row to a MonthlySnapshot."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        detail_json = safe_get(9)
        return MonthlySnapshot(
            id=safe_get(0),
            snapshot_date=datetime.fromisoformat(safe_get(1)),
            summary=SnapshotSummary(
                net_worth=Decimal(safe_get(2, "0")),
                total_assets=Decimal(safe_get(3, "0")),
                total_liabilities=Decimal(safe_get(4, "0")),
                total_equity=Decimal(safe_get(5, "0")),
            ),
            pnl_performance=PnLPerformance(
                income=Decimal(safe_get(6, "0")),
                expense=Decimal(safe_get(7, "0")),
                savings=Decimal(safe_get(8, "0")),
            ),
            accounts_detail=[
                AccountBalanceDetail(**item)
                for item in (json.loads(detail_json) if detail_json else [])
            ],
            created_at=datetime.fromisoformat(safe_get(10)),
        )

    async def upsert_snapshots(self, snapshots: list[MonthlySnapshot]) -> None:
        """
        Overwrite or append one chunk of snapshots in a single request.
        """
        if not snapshots:
            return

        try:
            sheet = self._client.get_snapshots_sheet()
            ids = sheet.col_values(1)  # Row 1 is the header

            row_by_id = {
                value: index
                for index, value in enumerate(ids, start=1)
                if index > 1 and value
            }
            next_row = len(ids) + 1
            width = len(SNAPSHOT_COLUMNS)

            updates = []
            for snapshot in snapshots:
                row_number = row_by_id.get(snapshot.id)
                if row_number is None:
                    row_number = next_row
                    row_by_id[snapshot.id] = row_number
                    next_row += 1
                updates.append({
                    "range": f"{rowcol_to_a1(row_number, 1)}:{rowcol_to_a1(row_number, width)}",
                    "values": [self._snapshot_to_row(snapshot)],
                })

            if next_row - 1 > sheet.row_count:
                sheet.add_rows(next_row - 1 - sheet.row_count)

            sheet.batch_update(updates, value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to upsert snapshots: {e}")

    @read_retry
    async def get_snapshot(self, month: str) -> Optional[MonthlySnapshot]:
        """Retrieve a snapshot by its month id."""
        try:
            sheet = self._client.get_snapshots_sheet()
            all_rows = sheet.get_all_values()[1:]

            for row in all_rows:
                if row and row[0] == month:
                    return self._row_to_snapshot(row)

            return None
        except Exception as e:
            raise StorageError(f"Failed to get snapshot: {e}")

    @read_retry
    async def list_snapshots(self) -> list[MonthlySnapshot]:
        """List all stored snapshots, ordered by month."""
        try:
            sheet = self._client.get_snapshots_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header

            snapshots = []
            for row in all_rows:
                if not row or not row[0]:  # Skip empty rows
                    continue
                try:
                    snapshots.append(self._row_to_snapshot(row))
                except (ValueError, KeyError) as e:
                    logger.warning("snapshot_row_unreadable", month=row[0], error=str(e))

            snapshots.sort(key=lambda s: s.id)
            return snapshots
        except Exception as e:
            raise StorageError(f"Failed to list snapshots: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging must not break the main flow
            logger.warning("audit_append_failed", error=str(e), event_id=str(event.event_id))
            return False

    def _read_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError as e:
                logger.warning("audit_row_unreadable", event_id=row[0], error=str(e))
        return events

    @read_retry
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            events = [
                event for event in self._read_events()
                if event.correlation_id == correlation_id
            ]
            # Sort chronologically
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    @read_retry
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            events = self._read_events()
            # Sort newest first
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
