"""
Audit events.

The trail is append-only: an event is never edited or removed once
written. Events that change something carry its old and new value, and
events of one user action share a correlation ID, so the history of a
document, transaction or entry can be replayed from the log alone.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from bookkeeper.models.ledger import utc_now


class AuditEventType(str, Enum):
    """One per reconciliation stage, review action and import."""
    # Documents
    DOCUMENT_UPLOADED = "document_uploaded"
    EXTRACTION_STARTED = "extraction_started"
    EXTRACTION_COMPLETED = "extraction_completed"
    EXTRACTION_FAILED = "extraction_failed"

    # Matching
    TRANSACTION_MATCHED = "transaction_matched"
    NO_MATCH = "no_match"

    # Entries
    ENTRY_SUGGESTED = "entry_suggested"
    ENTRY_WITHHELD = "entry_withheld"
    SYNTHESIS_FAILED = "synthesis_failed"
    ENTRY_CONFIRMED = "entry_confirmed"
    ENTRY_REJECTED = "entry_rejected"

    # Bank statements
    TRANSACTIONS_IMPORTED = "transactions_imported"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """Something that happened to the books, who did it, and what changed."""

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Tenant and actor
    company_id: Optional[UUID] = None
    user_id: Optional[UUID] = Field(
        default=None,
        description="User who triggered the event, if any"
    )

    # What entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'document', 'transaction', 'entry')"
    )
    entity_id: Optional[UUID] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one reconciliation run)"
    )

    description: str = Field(..., max_length=500)

    # Additional data (event-specific)
    details: dict[str, Any] = Field(default_factory=dict)
    old_value: Optional[dict[str, Any]] = None
    new_value: Optional[dict[str, Any]] = None

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict[str, Any]:
        """Flat JSON-safe fields for the structured log (unset fields dropped)."""
        return self.model_dump(mode="json", exclude_none=True)


class AuditEventBuilder:
    """
    Named constructors, one per event the pipeline emits.

    Usage:
        event = AuditEventBuilder.document_uploaded(company_id, document_id, ...)
        event = AuditEventBuilder.entry_confirmed(company_id, entry_id, user_id, ...)
    """

    @staticmethod
    def document_uploaded(
        company_id: UUID,
        document_id: UUID,
        user_id: UUID,
        file_name: str,
        file_size: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DOCUMENT_UPLOADED,
            company_id=company_id,
            user_id=user_id,
            entity_type="document",
            entity_id=document_id,
            correlation_id=correlation_id,
            description=f"Document uploaded: {file_name}",
            details={
                "file_name": file_name,
                "file_size_bytes": file_size,
            },
            is_user_action=True,
        )

    @staticmethod
    def extraction_started(
        company_id: UUID,
        document_id: UUID,
        previous_status: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_STARTED,
            company_id=company_id,
            entity_type="document",
            entity_id=document_id,
            correlation_id=correlation_id,
            description="Document extraction started",
            old_value={"status": previous_status},
            new_value={"status": "processing"},
        )

    @staticmethod
    def extraction_completed(
        company_id: UUID,
        document_id: UUID,
        category: str,
        amount: str,
        currency: str,
        confidence: float,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_COMPLETED,
            company_id=company_id,
            entity_type="document",
            entity_id=document_id,
            correlation_id=correlation_id,
            description=f"Extraction completed with {confidence:.0%} confidence",
            details={"confidence_score": confidence},
            old_value={"status": "processing"},
            new_value={
                "status": "done",
                "category": category,
                "amount": amount,
                "currency": currency,
            },
        )

    @staticmethod
    def extraction_failed(
        company_id: UUID,
        document_id: UUID,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_FAILED,
            severity=AuditSeverity.WARNING,
            company_id=company_id,
            entity_type="document",
            entity_id=document_id,
            correlation_id=correlation_id,
            description="Extraction failed, document marked as error",
            error_message=error_message,
            old_value={"status": "processing"},
            new_value={"status": "error"},
        )

    @staticmethod
    def transaction_matched(
        company_id: UUID,
        transaction_id: UUID,
        document_id: UUID,
        confidence: float,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_MATCHED,
            company_id=company_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction matched to document with {confidence:.0%} confidence",
            details={"confidence_score": confidence},
            old_value={"is_matched": False, "matched_document_id": None},
            new_value={"is_matched": True, "matched_document_id": str(document_id)},
        )

    @staticmethod
    def no_match(
        company_id: UUID,
        document_id: UUID,
        candidates_considered: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NO_MATCH,
            company_id=company_id,
            entity_type="document",
            entity_id=document_id,
            correlation_id=correlation_id,
            description="No bank transaction matched the document",
            details={"candidates_considered": candidates_considered},
        )

    @staticmethod
    def entry_suggested(
        company_id: UUID,
        entry_id: UUID,
        debit_account: str,
        credit_account: str,
        amount: str,
        currency: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_SUGGESTED,
            company_id=company_id,
            entity_type="entry",
            entity_id=entry_id,
            correlation_id=correlation_id,
            description=f"Entry suggested: Dt {debit_account} / Ct {credit_account} {amount} {currency}",
            new_value={
                "status": "suggested",
                "debit_account": debit_account,
                "credit_account": credit_account,
                "amount": amount,
                "currency": currency,
            },
        )

    @staticmethod
    def entry_withheld(
        company_id: UUID,
        document_id: UUID,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_WITHHELD,
            company_id=company_id,
            entity_type="document",
            entity_id=document_id,
            correlation_id=correlation_id,
            description="Entry withheld until a matching transaction is imported",
        )

    @staticmethod
    def synthesis_failed(
        company_id: UUID,
        document_id: UUID,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNTHESIS_FAILED,
            severity=AuditSeverity.WARNING,
            company_id=company_id,
            entity_type="document",
            entity_id=document_id,
            correlation_id=correlation_id,
            description="Could not suggest an entry for the document",
            error_message=error_message,
        )

    @staticmethod
    def entry_confirmed(
        company_id: UUID,
        entry_id: UUID,
        user_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_CONFIRMED,
            company_id=company_id,
            user_id=user_id,
            entity_type="entry",
            entity_id=entry_id,
            correlation_id=correlation_id,
            description="User confirmed suggested entry",
            old_value={"status": "suggested"},
            new_value={"status": "confirmed", "confirmed_by": str(user_id)},
            is_user_action=True,
        )

    @staticmethod
    def entry_rejected(
        company_id: UUID,
        entry_id: UUID,
        user_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_REJECTED,
            company_id=company_id,
            user_id=user_id,
            entity_type="entry",
            entity_id=entry_id,
            correlation_id=correlation_id,
            description="User rejected suggested entry",
            old_value={"status": "suggested"},
            new_value={"status": "rejected"},
            is_user_action=True,
        )

    @staticmethod
    def transactions_imported(
        company_id: UUID,
        user_id: UUID,
        accepted: int,
        rejected: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_IMPORTED,
            severity=AuditSeverity.WARNING if rejected else AuditSeverity.INFO,
            company_id=company_id,
            user_id=user_id,
            entity_type="bank_statement",
            correlation_id=correlation_id,
            description=f"Imported {accepted} transactions, rejected {rejected} rows",
            details={"accepted": accepted, "rejected": rejected},
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        company_id: Optional[UUID] = None,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            company_id=company_id,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: UUID,
        company_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            company_id=company_id,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
