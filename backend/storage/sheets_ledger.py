# storage/sheets_ledger.py
# ============================================================================
# FOUNDER LEDGER WEBHOOK - GOOGLE SHEETS LEDGER
# ============================================================================
# Append-only founder ledger backed by a Google Sheets tab. One row per
# processed checkout, fixed 11-column layout, single append call per row.
# ============================================================================

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import google_auth_httplib2
import httplib2
import structlog
from google.oauth2 import service_account
from googleapiclient.discovery import build

from pipeline.errors import ConfigurationMissing, LedgerUnavailable
from schemas.ledger_models import FounderLedgerRecord

logger = structlog.get_logger(component="ledger")


SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

# Sheet layout, columns A..K
LEDGER_COLUMNS = (
    "Timestamp-UTC",
    "Timestamp-Local",
    "Email",
    "Tier",
    "AmountPaidUSD",
    "Credits",
    "SessionID",
    "CustomerID",
    "Notes",
    "Status",
    "AgreementVersion",
)


def serialize_row(record: FounderLedgerRecord) -> List[Any]:
    """Lay a record out in ledger column order. Status is always blank."""
    return [
        record.timestamp_utc,
        record.timestamp_local,
        record.email or "",
        record.tier or "",
        record.amount_paid or 0,
        record.credits or 0,
        record.session_id or "",
        record.customer_id or "",
        record.notes or "",
        "",  # Status: managed by hand in the sheet
        record.agreement_version or "",
    ]


def a1_range(tab_name: str) -> str:
    """Full-width A1 range for a tab, quoted so spaces and symbols are safe."""
    escaped = tab_name.replace("'", "''")
    return f"'{escaped}'!A:K"


def load_credentials(service_account_info: Dict[str, Any]):
    """Service-account credentials scoped to Sheets; a malformed key is a config error."""
    try:
        return service_account.Credentials.from_service_account_info(
            service_account_info,
            scopes=SHEETS_SCOPES,
        )
    except (ValueError, KeyError) as e:
        raise ConfigurationMissing(
            "GOOGLE_SERVICE_ACCOUNT_KEY", "service account key is not usable"
        ) from e


# ============================================================================
# INTERFACE
# ============================================================================

class ILedgerStore(ABC):
    """Append-only ledger of founder records."""

    @abstractmethod
    async def append(self, record: FounderLedgerRecord) -> None:
        """Append one row. Raises LedgerUnavailable on any failure."""
        pass

    @abstractmethod
    async def check_access(self) -> List[str]:
        """Confirm the ledger is reachable without writing to it."""
        pass


# ============================================================================
# GOOGLE SHEETS
# ============================================================================

class GoogleSheetsLedger(ILedgerStore):
    """
    Google Sheets ledger using a service account.

    Credentials and the discovery service are built once. Every call gets
    its own httplib2 transport, since httplib2.Http is not thread-safe, and
    that transport carries the socket timeout so a stalled call aborts
    instead of finishing after the webhook has already answered. Failures
    are not retried: the caller answers 500 and Stripe redelivers the event.
    """

    def __init__(
        self,
        spreadsheet_id: str,
        tab_name: str,
        service_account_info: Optional[Dict[str, Any]] = None,
        timeout_seconds: float = 15.0,
        service: Any = None,
        credentials: Any = None,
    ):
        if not spreadsheet_id:
            raise ConfigurationMissing("GOOGLE_SHEETS_SPREADSHEET_ID")
        if service is None and not service_account_info:
            raise ConfigurationMissing("GOOGLE_SERVICE_ACCOUNT_KEY")

        self.spreadsheet_id = spreadsheet_id
        self.tab_name = tab_name
        self._timeout = timeout_seconds

        if service is None:
            credentials = load_credentials(service_account_info)
            service = build("sheets", "v4", credentials=credentials, cache_discovery=False)
        self._credentials = credentials
        self._service = service

    def _new_http(self):
        """Fresh transport for one call, bounded by the ledger timeout."""
        http = httplib2.Http(timeout=self._timeout)
        if self._credentials is None:
            return http
        return google_auth_httplib2.AuthorizedHttp(self._credentials, http=http)

    async def _run(self, operation: str, call):
        """Run a blocking Sheets call off the event loop, mapping every failure."""
        loop = asyncio.get_running_loop()

        def execute():
            http = self._new_http()
            try:
                return call(self._service, http)
            finally:
                http.close()

        try:
            return await loop.run_in_executor(None, execute)
        except TimeoutError as e:
            logger.error("ledger_timeout", operation=operation, timeout=self._timeout)
            raise LedgerUnavailable(f"Ledger {operation} timed out after {self._timeout}s") from e
        except Exception as e:
            logger.error(
                "ledger_call_failed",
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise LedgerUnavailable(f"Ledger {operation} failed: {type(e).__name__}") from e

    async def append(self, record: FounderLedgerRecord) -> None:
        row = serialize_row(record)
        logger.info(
            "ledger_row_appending",
            session_id=record.session_id,
            tier=record.tier,
            amount_paid=record.amount_paid,
            credits=record.credits,
        )

        def append_row(service, http):
            return service.spreadsheets().values().append(
                spreadsheetId=self.spreadsheet_id,
                range=a1_range(self.tab_name),
                valueInputOption="USER_ENTERED",
                insertDataOption="INSERT_ROWS",
                body={"values": [row]},
            ).execute(http=http)

        result = await self._run("append", append_row)
        updated_range = (result or {}).get("updates", {}).get("updatedRange")
        logger.info("ledger_row_appended", session_id=record.session_id, updated_range=updated_range)

    async def check_access(self) -> List[str]:
        """
        Read spreadsheet metadata and confirm the ledger tab exists.

        Returns:
            Titles of all tabs in the spreadsheet
        """
        def fetch_titles(service, http):
            return service.spreadsheets().get(
                spreadsheetId=self.spreadsheet_id,
                fields="sheets.properties.title",
            ).execute(http=http)

        result = await self._run("metadata read", fetch_titles)
        titles = [
            sheet.get("properties", {}).get("title", "")
            for sheet in (result or {}).get("sheets", [])
        ]
        if self.tab_name not in titles:
            raise ConfigurationMissing(
                "GOOGLE_SHEETS_TAB_NAME", f"tab {self.tab_name!r} not found in spreadsheet"
            )
        return titles


# ============================================================================
# IN-MEMORY (tests and dry runs)
# ============================================================================

class InMemoryLedger(ILedgerStore):
    """Append-only in-memory ledger"""

    def __init__(self):
        self.rows: List[List[Any]] = []
        self.records: List[FounderLedgerRecord] = []
        self._lock = asyncio.Lock()

    async def append(self, record: FounderLedgerRecord) -> None:
        async with self._lock:
            self.records.append(record)
            self.rows.append(serialize_row(record))
        logger.info("ledger_row_appended", session_id=record.session_id, backend="memory")

    async def check_access(self) -> List[str]:
        return ["memory"]


def build_ledger(settings) -> ILedgerStore:
    """Ledger for the configured backend."""
    if settings.ledger_backend == "memory":
        return InMemoryLedger()
    return GoogleSheetsLedger(
        spreadsheet_id=settings.spreadsheet_id,
        tab_name=settings.sheet_tab_name,
        service_account_info=settings.service_account_info,
        timeout_seconds=settings.ledger_timeout_seconds,
    )
