"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the ledger users can open and read
directly. Each committed entry becomes one row.

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions: an append either lands or it doesn't
- Rate limits (HTTP 429) and server errors are common, so the store
  reports them as retryable and lets the orchestrator back off

The implementation follows the abstract interface, so the pipeline never
knows which backend it is writing to.
"""

import json
from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from bookkeeper.config import get_settings
from bookkeeper.models.audit import AuditEvent, AuditEventType, AuditSeverity
from bookkeeper.models.transaction import CommitResult, TransactionDraft
from bookkeeper.services.storage.interface import (
    AuditStorageInterface,
    LedgerStoreInterface,
    StorageError,
    TransientStorageError,
    UnsupportedPaymentMethodError,
    normalize_payment_method,
)


# Column mappings for Entries sheet
ENTRY_COLUMNS = [
    "entry_id",
    "user_classification",
    "date",
    "time",
    "major_code",
    "sub_code",
    "payment_method",
    "sub_name",
    "user_id",
    "remark",
    "income",
    "expense",
    "typed_subject",
    "process_id",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "entity_id",
    "correlation_id",
    "process_id",
    "description",
    "details_json",
    "error_code",
    "error_message",
]


def is_retryable_api_error(error: gspread.exceptions.APIError) -> bool:
    """Rate limiting and server-side failures are worth retrying."""
    response = getattr(error, "response", None)
    status = getattr(response, "status_code", None)
    return status is not None and (status == 429 or status >= 500)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for connecting.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        retry=retry_if_exception_type(TransientStorageError),
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
                raise StorageError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise TransientStorageError(f"Failed to connect to Google Sheets: {e}")

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
                raise StorageError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int,
    ) -> gspread.Worksheet:
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

    def get_entries_sheet(self) -> gspread.Worksheet:
        """Get or create the Entries worksheet."""
        return self._get_or_create_sheet(
            self._settings.entries_sheet_name, ENTRY_COLUMNS, rows=1000
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


class GoogleSheetsLedgerStore(LedgerStoreInterface):
    """
    Google Sheets implementation of the ledger store.

    Entries are stored one per row. Exactly one of income/expense is filled.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        timezone: Optional[str] = None,
    ):
        self._client = client or GoogleSheetsClient()
        self._tz = ZoneInfo(timezone or get_settings().app.timezone)

    def _new_entry_id(self, draft: TransactionDraft) -> str:
        return f"{draft.recorded_at.strftime('%Y%m%d')}-{uuid4().hex[:8]}"

    def _draft_to_row(
        self,
        entry_id: str,
        draft: TransactionDraft,
        payment_method: str,
    ) -> list:
        """Convert a TransactionDraft to a spreadsheet row."""
        local = draft.recorded_at.astimezone(self._tz)
        return [
            entry_id,
            draft.user_classification.value,
            local.strftime("%Y/%m/%d"),
            local.strftime("%H:%M"),
            draft.major_code,
            draft.sub_code,
            payment_method,
            draft.category_name,
            draft.user_id,
            draft.remark_text,
            str(draft.income) if draft.income is not None else "",
            str(draft.expense) if draft.expense is not None else "",
            draft.original_subject_text,
            draft.process_id,
        ]

    async def commit(self, draft: TransactionDraft) -> CommitResult:
        """Append the draft to the Entries sheet."""
        try:
            payment_method = normalize_payment_method(
                draft.payment_method,
                draft.major_code,
            )
        except UnsupportedPaymentMethodError as e:
            return CommitResult(success=False, error=str(e), retryable=False)

        entry_id = self._new_entry_id(draft)
        try:
            sheet = self._client.get_entries_sheet()
            sheet.append_row(
                self._draft_to_row(entry_id, draft, payment_method),
                value_input_option="RAW",
            )
        except gspread.exceptions.APIError as e:
            return CommitResult(
                success=False,
                error=f"Google Sheets API error: {e}",
                retryable=is_retryable_api_error(e),
            )
        except TransientStorageError as e:
            return CommitResult(success=False, error=str(e), retryable=True)
        except OSError as e:
            # Network-level failures (requests raises OSError subclasses)
            return CommitResult(success=False, error=f"Network error: {e}", retryable=True)

        return CommitResult(
            success=True,
            entry_id=entry_id,
            payment_method=payment_method,
        )


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
            user_id=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            correlation_id=safe_get(6) or None,
            process_id=safe_get(7) or None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_code=safe_get(10) or None,
            error_message=safe_get(11) or None,
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except (gspread.exceptions.APIError, StorageError, OSError) as e:
            raise StorageError(f"Failed to write audit event: {e}") from e

    async def get_events_by_correlation_id(
        self,
        correlation_id: str,
    ) -> list[AuditEvent]:
        """Get events by correlation token."""
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]
        except (gspread.exceptions.APIError, OSError) as e:
            raise StorageError(f"Failed to get audit events: {e}") from e

        events = []
        for row in all_rows:
            if row and len(row) > 6 and row[6] == correlation_id:
                try:
                    events.append(self._row_to_event(row))
                except ValueError:
                    continue  # Skip malformed rows

        # Sort chronologically
        events.sort(key=lambda e: e.timestamp)
        return events
