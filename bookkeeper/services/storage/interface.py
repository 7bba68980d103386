"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

Every row is tenant-scoped: all reads and writes take the company id,
and a row belonging to another company behaves as if it did not exist.

The one primitive beyond CRUD is the conditional update
(`update_*_if`): apply a patch only if a predicate holds on the current
row, atomically with respect to other conditional updates on that row.
Claiming a transaction and moving an entry out of `suggested` are both
built on it.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel

from bookkeeper.errors import BookkeepingError
from bookkeeper.models.audit import AuditEvent
from bookkeeper.models.ledger import (
    BankTransaction,
    Company,
    Document,
    DocumentStatus,
    Entry,
    EntryStatus,
    utc_now,
)

ModelT = TypeVar("ModelT", bound=BaseModel)

Predicate = Callable[[ModelT], bool]
Patch = dict[str, Any]


def apply_patch(model: ModelT, patch: Patch) -> ModelT:
    """
    Return a copy of `model` with `patch` applied and `updated_at` bumped.

    The copy is re-validated, so a patch that would break a model
    invariant raises instead of being stored.
    """
    data = model.model_dump()
    data.update(patch)
    if "updated_at" in data:
        data["updated_at"] = utc_now()
    return type(model).model_validate(data)


class CompanyStorageInterface(ABC):
    """Read access to companies. Membership is managed elsewhere."""

    @abstractmethod
    async def save_company(self, company: Company) -> bool:
        pass

    @abstractmethod
    async def get_company(self, company_id: UUID) -> Optional[Company]:
        pass


class DocumentStorageInterface(ABC):
    """Abstract interface for uploaded documents."""

    @abstractmethod
    async def save_document(self, document: Document) -> bool:
        """
        Insert a new document.

        Raises:
            DuplicateError: If a document with this id already exists
        """
        pass

    @abstractmethod
    async def get_document(
        self,
        company_id: UUID,
        document_id: UUID,
    ) -> Optional[Document]:
        pass

    @abstractmethod
    async def list_documents(
        self,
        company_id: UUID,
        status: Optional[DocumentStatus] = None,
    ) -> list[Document]:
        """List a company's documents, newest first."""
        pass

    @abstractmethod
    async def update_document_if(
        self,
        company_id: UUID,
        document_id: UUID,
        predicate: Predicate[Document],
        patch: Patch,
    ) -> Optional[Document]:
        """
        Conditionally update a document.

        Returns:
            The updated document, or None if it does not exist
            or the predicate did not hold
        """
        pass


class TransactionStorageInterface(ABC):
    """Abstract interface for imported bank transactions."""

    @abstractmethod
    async def save_transactions(self, transactions: list[BankTransaction]) -> int:
        """
        Insert a batch of transactions.

        Returns:
            Number of transactions stored
        """
        pass

    @abstractmethod
    async def get_transaction(
        self,
        company_id: UUID,
        transaction_id: UUID,
    ) -> Optional[BankTransaction]:
        pass

    @abstractmethod
    async def list_transactions(
        self,
        company_id: UUID,
        unmatched_only: bool = False,
    ) -> list[BankTransaction]:
        """List a company's transactions, newest transaction date first."""
        pass

    @abstractmethod
    async def update_transaction_if(
        self,
        company_id: UUID,
        transaction_id: UUID,
        predicate: Predicate[BankTransaction],
        patch: Patch,
    ) -> Optional[BankTransaction]:
        """
        Conditionally update a transaction.

        This is the claim primitive: two concurrent calls with the
        predicate "not matched" can never both succeed.
        """
        pass


class EntryStorageInterface(ABC):
    """
    Abstract interface for ledger entries.

    Entries are never deleted - they form the audit trail of the books.
    """

    @abstractmethod
    async def save_entry(self, entry: Entry) -> bool:
        pass

    @abstractmethod
    async def get_entry(
        self,
        company_id: UUID,
        entry_id: UUID,
    ) -> Optional[Entry]:
        pass

    @abstractmethod
    async def list_entries(
        self,
        company_id: UUID,
        status: Optional[EntryStatus] = None,
    ) -> list[Entry]:
        """List a company's entries, newest first."""
        pass

    @abstractmethod
    async def update_entry_if(
        self,
        company_id: UUID,
        entry_id: UUID,
        predicate: Predicate[Entry],
        patch: Patch,
    ) -> Optional[Entry]:
        pass


class LedgerStorageInterface(
    CompanyStorageInterface,
    DocumentStorageInterface,
    TransactionStorageInterface,
    EntryStorageInterface,
):
    """All ledger tables behind one backend."""
    pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Events of one operation (e.g., one reconciliation run), oldest first."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        company_id: UUID,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events of a company, newest first."""
        pass


class StorageError(BookkeepingError):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
