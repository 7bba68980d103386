"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the persistent backend because:
1. Owners and accountants can look at the books directly in Sheets
2. No database setup required
3. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (fine for a small business)
- No transactions and no server-side conditional writes. Conditional
  updates are serialized through a lock per worksheet, so the
  one-claim-per-transaction guarantee holds for a single writer process.
  Deployments with several writers need a backend with a real
  conditional UPDATE behind the same interface.
- Limited query capabilities (we filter in Python)

Each worksheet stores one model per row, one column per model field.
"""

import asyncio
import json
from typing import Any, Optional, Type
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from pydantic import BaseModel
from tenacity import retry, stop_after_attempt, wait_exponential

from bookkeeper.config import get_settings
from bookkeeper.models.audit import AuditEvent
from bookkeeper.models.ledger import (
    BankTransaction,
    Company,
    Document,
    DocumentStatus,
    Entry,
    EntryStatus,
)
from bookkeeper.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    ModelT,
    Patch,
    Predicate,
    StorageError,
    apply_patch,
)


# Column mappings follow model field order
COMPANY_COLUMNS = list(Company.model_fields)
DOCUMENT_COLUMNS = list(Document.model_fields)
TRANSACTION_COLUMNS = list(BankTransaction.model_fields)
ENTRY_COLUMNS = list(Entry.model_fields)
AUDIT_COLUMNS = list(AuditEvent.model_fields)

# Columns holding nested JSON payloads
JSON_COLUMNS = {"parsed", "details", "old_value", "new_value"}


def model_to_row(model: BaseModel, columns: list[str]) -> list[str]:
    """Serialize a model into a spreadsheet row (all cells are strings)."""
    data = model.model_dump(mode="json")
    row = []
    for column in columns:
        value = data.get(column)
        if value is None:
            row.append("")
        elif isinstance(value, bool):
            row.append("true" if value else "false")
        elif isinstance(value, (dict, list)):
            row.append(json.dumps(value))
        else:
            row.append(str(value))
    return row


def row_to_model(row: list[str], columns: list[str], model_cls: Type[ModelT]) -> ModelT:
    """Parse a spreadsheet row back into a model, letting pydantic coerce types."""
    data: dict[str, Any] = {}
    for idx, column in enumerate(columns):
        cell = row[idx] if idx < len(row) else ""
        if cell == "":
            continue
        data[column] = json.loads(cell) if column in JSON_COLUMNS else cell
    return model_cls.model_validate(data)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

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

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get a worksheet, creating it with a header row if missing."""
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


class _SheetTable:
    """One worksheet holding one model type."""

    def __init__(
        self,
        client: GoogleSheetsClient,
        title: str,
        columns: list[str],
        model_cls: Type[BaseModel],
    ):
        self._client = client
        self._title = title
        self._columns = columns
        self._model_cls = model_cls
        self._lock = asyncio.Lock()

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(self._title, self._columns)

    def _rows(self, sheet: Optional[gspread.Worksheet] = None) -> list[list[str]]:
        sheet = sheet or self._sheet()
        return sheet.get_all_values()[1:]  # Skip header

    def _find(self, sheet: gspread.Worksheet, row_id: UUID) -> tuple[Optional[int], Optional[list[str]]]:
        for idx, row in enumerate(self._rows(sheet), start=2):  # Row 1 is header
            if row and row[0] == str(row_id):
                return idx, row
        return None, None

    def all(self) -> list:
        try:
            models = []
            for row in self._rows():
                if not row or not row[0]:
                    continue
                models.append(row_to_model(row, self._columns, self._model_cls))
            return models
        except Exception as e:
            raise StorageError(f"Failed to read {self._title}: {e}")

    def get(self, row_id: UUID):
        try:
            _, row = self._find(self._sheet(), row_id)
        except Exception as e:
            raise StorageError(f"Failed to read {self._title}: {e}")
        if row is None:
            return None
        return row_to_model(row, self._columns, self._model_cls)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def append(self, models: list[BaseModel]) -> int:
        try:
            sheet = self._sheet()
            sheet.append_rows(
                [model_to_row(m, self._columns) for m in models],
                value_input_option="RAW",
            )
            return len(models)
        except Exception as e:
            raise StorageError(f"Failed to write {self._title}: {e}")

    async def insert(self, models: list[BaseModel]) -> int:
        async with self._lock:
            existing = {row[0] for row in self._rows() if row}
            for model in models:
                if str(model.id) in existing:
                    raise DuplicateError(f"{self._title} row already exists: {model.id}")
            return self.append(models)

    async def update_if(
        self,
        company_id: UUID,
        row_id: UUID,
        predicate: Predicate,
        patch: Patch,
    ):
        async with self._lock:
            try:
                sheet = self._sheet()
                idx, row = self._find(sheet, row_id)
            except Exception as e:
                raise StorageError(f"Failed to read {self._title}: {e}")
            if row is None:
                return None
            current = row_to_model(row, self._columns, self._model_cls)
            if current.company_id != company_id or not predicate(current):
                return None
            updated = apply_patch(current, patch)
            try:
                sheet.update(
                    range_name=f"A{idx}",
                    values=[model_to_row(updated, self._columns)],
                    value_input_option="RAW",
                )
            except Exception as e:
                raise StorageError(f"Failed to update {self._title}: {e}")
            return updated


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of the ledger tables.

    One worksheet per table: Companies, Documents, Transactions, Entries.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        settings = get_settings().google_sheets
        self._companies = _SheetTable(self._client, settings.companies_sheet_name, COMPANY_COLUMNS, Company)
        self._documents = _SheetTable(self._client, settings.documents_sheet_name, DOCUMENT_COLUMNS, Document)
        self._transactions = _SheetTable(
            self._client, settings.transactions_sheet_name, TRANSACTION_COLUMNS, BankTransaction
        )
        self._entries = _SheetTable(self._client, settings.entries_sheet_name, ENTRY_COLUMNS, Entry)

    @staticmethod
    def _scoped(model, company_id: UUID):
        if model is None or model.company_id != company_id:
            return None
        return model

    # Companies

    async def save_company(self, company: Company) -> bool:
        await self._companies.insert([company])
        return True

    async def get_company(self, company_id: UUID) -> Optional[Company]:
        return self._companies.get(company_id)

    # Documents

    async def save_document(self, document: Document) -> bool:
        await self._documents.insert([document])
        return True

    async def get_document(self, company_id: UUID, document_id: UUID) -> Optional[Document]:
        return self._scoped(self._documents.get(document_id), company_id)

    async def list_documents(
        self,
        company_id: UUID,
        status: Optional[DocumentStatus] = None,
    ) -> list[Document]:
        documents = [
            d for d in self._documents.all()
            if d.company_id == company_id and (status is None or d.status == status)
        ]
        documents.sort(key=lambda d: d.created_at, reverse=True)
        return documents

    async def update_document_if(
        self,
        company_id: UUID,
        document_id: UUID,
        predicate: Predicate[Document],
        patch: Patch,
    ) -> Optional[Document]:
        return await self._documents.update_if(company_id, document_id, predicate, patch)

    # Transactions

    async def save_transactions(self, transactions: list[BankTransaction]) -> int:
        if not transactions:
            return 0
        return await self._transactions.insert(transactions)

    async def get_transaction(
        self,
        company_id: UUID,
        transaction_id: UUID,
    ) -> Optional[BankTransaction]:
        return self._scoped(self._transactions.get(transaction_id), company_id)

    async def list_transactions(
        self,
        company_id: UUID,
        unmatched_only: bool = False,
    ) -> list[BankTransaction]:
        transactions = [
            t for t in self._transactions.all()
            if t.company_id == company_id and not (unmatched_only and t.is_matched)
        ]
        transactions.sort(key=lambda t: (t.transaction_date, t.created_at), reverse=True)
        return transactions

    async def update_transaction_if(
        self,
        company_id: UUID,
        transaction_id: UUID,
        predicate: Predicate[BankTransaction],
        patch: Patch,
    ) -> Optional[BankTransaction]:
        return await self._transactions.update_if(company_id, transaction_id, predicate, patch)

    # Entries

    async def save_entry(self, entry: Entry) -> bool:
        await self._entries.insert([entry])
        return True

    async def get_entry(self, company_id: UUID, entry_id: UUID) -> Optional[Entry]:
        return self._scoped(self._entries.get(entry_id), company_id)

    async def list_entries(
        self,
        company_id: UUID,
        status: Optional[EntryStatus] = None,
    ) -> list[Entry]:
        entries = [
            e for e in self._entries.all()
            if e.company_id == company_id and (status is None or e.status == status)
        ]
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries

    async def update_entry_if(
        self,
        company_id: UUID,
        entry_id: UUID,
        predicate: Predicate[Entry],
        patch: Patch,
    ) -> Optional[Entry]:
        return await self._entries.update_if(company_id, entry_id, predicate, patch)


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._table = _SheetTable(
            self._client,
            get_settings().google_sheets.audit_sheet_name,
            AUDIT_COLUMNS,
            AuditEvent,
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        self._table.append([event])
        return True

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        events = [e for e in self._table.all() if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        events = [
            e for e in self._table.all()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, company_id: UUID, limit: int = 100) -> list[AuditEvent]:
        events = [e for e in self._table.all() if e.company_id == company_id]
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
