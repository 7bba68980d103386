"""
In-Memory Storage Implementation

Backs tests and single-process deployments. Conditional updates run the
predicate and the write under one lock with no suspension point in
between, which gives the same guarantee a database conditional UPDATE
gives: concurrent claims on one row produce exactly one winner.
"""

import threading
from typing import Optional
from uuid import UUID

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
    DuplicateError,
    LedgerStorageInterface,
    ModelT,
    Patch,
    Predicate,
    apply_patch,
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Dict-backed storage for companies, documents, transactions and entries."""

    def __init__(self):
        self._lock = threading.Lock()
        self._companies: dict[UUID, Company] = {}
        self._documents: dict[UUID, Document] = {}
        self._transactions: dict[UUID, BankTransaction] = {}
        self._entries: dict[UUID, Entry] = {}

    def _scoped_get(self, table: dict, company_id: UUID, row_id: UUID):
        row = table.get(row_id)
        if row is None or row.company_id != company_id:
            return None
        return row

    def _insert(self, table: dict, row) -> None:
        if row.id in table:
            raise DuplicateError(f"{type(row).__name__} already exists: {row.id}")
        table[row.id] = row

    def _update_if(
        self,
        table: dict,
        company_id: UUID,
        row_id: UUID,
        predicate: Predicate[ModelT],
        patch: Patch,
    ) -> Optional[ModelT]:
        with self._lock:
            current = self._scoped_get(table, company_id, row_id)
            if current is None or not predicate(current):
                return None
            updated = apply_patch(current, patch)
            table[row_id] = updated
            return updated

    # Companies

    async def save_company(self, company: Company) -> bool:
        with self._lock:
            self._companies[company.id] = company
        return True

    async def get_company(self, company_id: UUID) -> Optional[Company]:
        return self._companies.get(company_id)

    # Documents

    async def save_document(self, document: Document) -> bool:
        with self._lock:
            self._insert(self._documents, document)
        return True

    async def get_document(self, company_id: UUID, document_id: UUID) -> Optional[Document]:
        return self._scoped_get(self._documents, company_id, document_id)

    async def list_documents(
        self,
        company_id: UUID,
        status: Optional[DocumentStatus] = None,
    ) -> list[Document]:
        documents = [
            d for d in self._documents.values()
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
        return self._update_if(self._documents, company_id, document_id, predicate, patch)

    # Transactions

    async def save_transactions(self, transactions: list[BankTransaction]) -> int:
        with self._lock:
            for tx in transactions:
                if tx.id in self._transactions:
                    raise DuplicateError(f"BankTransaction already exists: {tx.id}")
            for tx in transactions:
                self._transactions[tx.id] = tx
        return len(transactions)

    async def get_transaction(
        self,
        company_id: UUID,
        transaction_id: UUID,
    ) -> Optional[BankTransaction]:
        return self._scoped_get(self._transactions, company_id, transaction_id)

    async def list_transactions(
        self,
        company_id: UUID,
        unmatched_only: bool = False,
    ) -> list[BankTransaction]:
        transactions = [
            t for t in self._transactions.values()
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
        return self._update_if(self._transactions, company_id, transaction_id, predicate, patch)

    # Entries

    async def save_entry(self, entry: Entry) -> bool:
        with self._lock:
            self._insert(self._entries, entry)
        return True

    async def get_entry(self, company_id: UUID, entry_id: UUID) -> Optional[Entry]:
        return self._scoped_get(self._entries, company_id, entry_id)

    async def list_entries(
        self,
        company_id: UUID,
        status: Optional[EntryStatus] = None,
    ) -> list[Entry]:
        entries = [
            e for e in self._entries.values()
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
        return self._update_if(self._entries, company_id, entry_id, predicate, patch)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, company_id: UUID, limit: int = 100) -> list[AuditEvent]:
        events = [e for e in self._events if e.company_id == company_id]
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
