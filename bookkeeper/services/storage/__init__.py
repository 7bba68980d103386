"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the persistent backend; the in-memory backend serves
tests and single-process use. Both sit behind the same interfaces.
"""

from bookkeeper.services.storage.interface import (
    AuditStorageInterface,
    CompanyStorageInterface,
    ConnectionError,
    DocumentStorageInterface,
    DuplicateError,
    EntryStorageInterface,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
    apply_patch,
)
from bookkeeper.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)
from bookkeeper.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "CompanyStorageInterface",
    "DocumentStorageInterface",
    "EntryStorageInterface",
    "LedgerStorageInterface",
    "TransactionStorageInterface",
    "apply_patch",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
]
