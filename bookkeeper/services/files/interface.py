"""
Abstract File Storage Interface

Uploaded documents are stored outside the ledger tables. The pipeline
only ever sees an opaque file reference, scoped to the owning company:
a reference stored for one company cannot be read through another.
"""

from abc import ABC, abstractmethod
from uuid import UUID

from bookkeeper.errors import BookkeepingError


class FileStorageInterface(ABC):
    """Store and read back raw document files."""

    @abstractmethod
    async def store(
        self,
        company_id: UUID,
        file_name: str,
        content: bytes,
        mime_type: str,
    ) -> str:
        """
        Store a file for a company.

        Returns:
            Opaque file reference to persist on the Document

        Raises:
            FileUploadError: If the backend rejects the file
        """
        pass

    @abstractmethod
    async def read(self, company_id: UUID, file_ref: str) -> bytes:
        """
        Read a stored file back.

        Raises:
            FileNotFoundInStorageError: If the reference is unknown
                or belongs to another company
            FileStorageError: If the backend cannot be reached
        """
        pass


class FileStorageError(BookkeepingError):
    """Base exception for file storage errors."""
    pass


class FileUploadError(FileStorageError):
    """Failed to upload a file."""
    pass


class FileNotFoundInStorageError(FileStorageError):
    """No such file for this company."""
    pass
