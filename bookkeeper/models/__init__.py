"""
Data Models Package

This package contains all Pydantic models used in Bookkeeper.
All data flowing through the system must conform to these schemas.
"""

from bookkeeper.models.ledger import (
    DOCUMENT_TRANSITIONS,
    BankTransaction,
    Company,
    Document,
    DocumentCategory,
    DocumentStatus,
    Entry,
    EntryStatus,
    ExtractedFields,
    ImportResult,
    MatchResult,
    ReconciliationOutcome,
    ReconciliationReport,
    RejectReason,
    RejectedRow,
    TaxRegime,
    utc_now,
)
from bookkeeper.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "DOCUMENT_TRANSITIONS",
    "BankTransaction",
    "Company",
    "Document",
    "DocumentCategory",
    "DocumentStatus",
    "Entry",
    "EntryStatus",
    "ExtractedFields",
    "ImportResult",
    "MatchResult",
    "ReconciliationOutcome",
    "ReconciliationReport",
    "RejectReason",
    "RejectedRow",
    "TaxRegime",
    "utc_now",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
