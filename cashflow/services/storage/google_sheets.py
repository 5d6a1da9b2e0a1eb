"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the storage backend because:
1. The user can view their ledgers directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (callers write record by record and report partial failures)
- Limited query capabilities (we filter in Python)

Each collection lives in its own worksheet. A row holds the record id,
the last write time and the record itself as JSON, so adding a field to
a model never needs a sheet migration.
"""

import json
from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cashflow.config import GoogleSheetsSettings, get_settings
from cashflow.models.audit import AuditEvent, AuditEventType, AuditSeverity
from cashflow.models.ledger import (
    CreditCard,
    DebtContract,
    Ledger,
    OpeningBalance,
    Recurrence,
    Transaction,
)
from cashflow.services.storage.interface import (
    AuditStorageInterface,
    CollectionStorageInterface,
    ConnectionError,
    LedgerStorage,
    NotFoundError,
    RecordT,
    StorageError,
)


logger = structlog.get_logger(__name__)


# Column mappings for record sheets
RECORD_COLUMNS = [
    "id",
    "updated_at",
    "record_json",
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


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
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

    def get_worksheet(
        self,
        title: str,
        columns: list[str],
        rows: int = 1000,
    ) -> gspread.Worksheet:
        """Get or create a worksheet, writing the header row on creation."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self.get_worksheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )


class GoogleSheetsCollection(CollectionStorageInterface[RecordT]):
    """
    Google Sheets implementation of one record collection.

    One record per row; the record body is the model's JSON dump.
    """

    def __init__(
        self,
        model: type[RecordT],
        sheet_name: str,
        client: Optional[GoogleSheetsClient] = None,
    ):
        self._model = model
        self._sheet_name = sheet_name
        self._client = client or GoogleSheetsClient()

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(self._sheet_name, RECORD_COLUMNS)

    def _record_to_row(self, record: RecordT) -> list:
        """Convert a record to a spreadsheet row."""
        return [
            record.id,
            datetime.utcnow().isoformat(),
            record.model_dump_json(),
        ]

    def _row_to_record(self, row: list) -> RecordT:
        """Convert a spreadsheet row to a record."""
        return self._model.model_validate_json(row[2])

    def _find_row(self, sheet: gspread.Worksheet, record_id: str) -> Optional[int]:
        """Return the 1-based sheet row holding this id (row 1 is the header)."""
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):
            if row and row[0] == record_id:
                return idx
        return None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def add(self, record: RecordT) -> str:
        """Append a new record and return its generated id."""
        record_id = uuid4().hex
        try:
            sheet = self._sheet()
            stored = record.model_copy(update={"id": record_id})
            sheet.append_row(self._record_to_row(stored), value_input_option="RAW")
            return record_id
        except Exception as e:
            raise StorageError(f"Failed to add to {self._sheet_name}: {e}")

    @retry(
        retry=retry_if_not_exception_type(NotFoundError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def update(self, record: RecordT) -> None:
        """Rewrite the row holding this record."""
        try:
            sheet = self._sheet()
            idx = self._find_row(sheet, record.id)
            if idx is None:
                raise NotFoundError(f"{self._sheet_name} record not found: {record.id}")
            sheet.update(
                range_name=f"A{idx}:C{idx}",
                values=[self._record_to_row(record)],
                value_input_option="RAW",
            )
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {self._sheet_name}: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def delete(self, record_id: str) -> None:
        """Delete the row holding this id, if any."""
        try:
            sheet = self._sheet()
            idx = self._find_row(sheet, record_id)
            if idx is not None:
                sheet.delete_rows(idx)
        except Exception as e:
            raise StorageError(f"Failed to delete from {self._sheet_name}: {e}")

    async def list_all(self) -> list[RecordT]:
        """Read every record in the worksheet."""
        try:
            all_rows = self._sheet().get_all_values()[1:]  # Skip header
        except Exception as e:
            raise StorageError(f"Failed to list {self._sheet_name}: {e}")

        records = []
        for row in all_rows:
            if not row or not row[0] or len(row) < 3:
                continue
            try:
                records.append(self._row_to_record(row))
            except ValueError as e:
                # Skip malformed rows
                logger.warning(
                    "malformed_row_skipped",
                    sheet=self._sheet_name,
                    record_id=row[0],
                    error=str(e),
                )
        return records


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

    def _read_events(self) -> list[AuditEvent]:
        try:
            all_rows = self._client.get_audit_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except ValueError:
                    continue
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging should not break the main flow
            logger.warning("audit_append_failed", error=str(e))
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        events = [e for e in self._read_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        events = [
            e for e in self._read_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        events = self._read_events()
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]


def create_sheets_storage(client: Optional[GoogleSheetsClient] = None) -> LedgerStorage:
    """Build one Sheets-backed collection per entity type."""
    client = client or GoogleSheetsClient()
    names = client.settings
    return LedgerStorage(
        ledgers=GoogleSheetsCollection(Ledger, names.ledgers_sheet_name, client),
        cards=GoogleSheetsCollection(CreditCard, names.cards_sheet_name, client),
        transactions=GoogleSheetsCollection(Transaction, names.transactions_sheet_name, client),
        recurrences=GoogleSheetsCollection(Recurrence, names.recurrences_sheet_name, client),
        debt_contracts=GoogleSheetsCollection(DebtContract, names.debt_contracts_sheet_name, client),
        opening_balances=GoogleSheetsCollection(
            OpeningBalance, names.opening_balances_sheet_name, client
        ),
    )
