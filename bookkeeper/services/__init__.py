"""Services package."""

from bookkeeper.services.files import (
    CloudinaryFileStorage,
    FileNotFoundInStorageError,
    FileStorageError,
    FileStorageInterface,
    FileUploadError,
    InMemoryFileStorage,
)
from bookkeeper.services.ocr import (
    ExtractionFailure,
    MindeeExtractionService,
    OCRError,
)
from bookkeeper.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)

__all__ = [
    # File storage
    "CloudinaryFileStorage",
    "FileNotFoundInStorageError",
    "FileStorageError",
    "FileStorageInterface",
    "FileUploadError",
    "InMemoryFileStorage",
    # Extraction
    "ExtractionFailure",
    "MindeeExtractionService",
    "OCRError",
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "LedgerStorageInterface",
    "NotFoundError",
    "StorageError",
]
