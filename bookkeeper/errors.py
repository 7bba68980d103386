"""
Domain errors for Bookkeeper.

Service-specific errors (extraction, storage, file storage) live next to
the services that raise them and derive from BookkeepingError as well.
A failed match is not an error: the matcher returns None.
"""

from typing import Optional


class BookkeepingError(Exception):
    """Base exception for all bookkeeping errors."""
    pass


class UnresolvableAccounts(BookkeepingError):
    """No (debit, credit) pair could be chosen for a document/transaction."""

    def __init__(self, category: str, direction: str, message: Optional[str] = None):
        self.category = category
        self.direction = direction
        super().__init__(
            message
            or f"No account pair for category '{category}' with direction '{direction}'"
        )


class InvalidTransition(BookkeepingError):
    """An entry was asked to move to a state it cannot reach from its current one."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot {requested} an entry that is already {current}")


class DocumentStateError(BookkeepingError):
    """The document is not in a state that allows reconciliation to start."""

    def __init__(self, status: str, message: Optional[str] = None):
        self.status = status
        super().__init__(message or f"Document in status '{status}' cannot be reconciled")


class UploadRejectedError(BookkeepingError):
    """Uploaded file violates the size or media type limits."""
    pass


class EmptyBatchError(BookkeepingError):
    """A bank statement contained no data rows after the header."""
    pass
