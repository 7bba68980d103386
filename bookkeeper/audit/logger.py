"""
Audit trail for the books.

Every step of a reconciliation run, every import and every review decision
becomes an AuditEvent. Events always go to the structured log; when audit
storage is configured they are appended there too, so a company can see
who confirmed what and why a document ended in error.

A failing audit store is logged and otherwise ignored: the books must not
stop because the trail could not be written.
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from bookkeeper.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from bookkeeper.models.ledger import Entry
from bookkeeper.services.storage import AuditStorageInterface


def configure_logging() -> None:
    """JSON lines through stdlib logging, one object per event."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


class AuditLogger:
    """Writes audit events to the log and, if given, to audit storage."""

    def __init__(self, storage: Optional[AuditStorageInterface] = None):
        self._storage = storage
        self._logger = structlog.get_logger("bookkeeper.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Record one event.

        Returns False only when audit storage rejected the write.
        """
        fields = event.to_log_dict()
        level = {
            AuditSeverity.CRITICAL: "critical",
            AuditSeverity.ERROR: "error",
            AuditSeverity.WARNING: "warning",
            AuditSeverity.DEBUG: "debug",
        }.get(event.severity, "info")
        getattr(self._logger, level)("audit_event", **fields)

        if self._storage is None:
            return True
        try:
            return await self._storage.append_event(event)
        except Exception as e:
            self._logger.error(
                "audit_write_failed",
                error=str(e),
                event_id=str(event.event_id),
                event_type=event.event_type.value,
            )
            return False

    async def log_document_uploaded(
        self,
        company_id: UUID,
        document_id: UUID,
        user_id: UUID,
        file_name: str,
        file_size: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.document_uploaded(
            company_id=company_id,
            document_id=document_id,
            user_id=user_id,
            file_name=file_name,
            file_size=file_size,
            correlation_id=correlation_id,
        ))

    async def log_extraction_started(
        self,
        company_id: UUID,
        document_id: UUID,
        previous_status: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.extraction_started(
            company_id=company_id,
            document_id=document_id,
            previous_status=previous_status,
            correlation_id=correlation_id,
        ))

    async def log_extraction_completed(
        self,
        company_id: UUID,
        document_id: UUID,
        category: str,
        amount: str,
        currency: str,
        confidence: float,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.extraction_completed(
            company_id=company_id,
            document_id=document_id,
            category=category,
            amount=amount,
            currency=currency,
            confidence=confidence,
            correlation_id=correlation_id,
        ))

    async def log_extraction_failed(
        self,
        company_id: UUID,
        document_id: UUID,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.extraction_failed(
            company_id=company_id,
            document_id=document_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_transaction_matched(
        self,
        company_id: UUID,
        transaction_id: UUID,
        document_id: UUID,
        confidence: float,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_matched(
            company_id=company_id,
            transaction_id=transaction_id,
            document_id=document_id,
            confidence=confidence,
            correlation_id=correlation_id,
        ))

    async def log_no_match(
        self,
        company_id: UUID,
        document_id: UUID,
        candidates_considered: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.no_match(
            company_id=company_id,
            document_id=document_id,
            candidates_considered=candidates_considered,
            correlation_id=correlation_id,
        ))

    async def log_entry_suggested(self, entry: Entry, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.entry_suggested(
            company_id=entry.company_id,
            entry_id=entry.id,
            debit_account=entry.debit_account,
            credit_account=entry.credit_account,
            amount=str(entry.amount),
            currency=entry.currency,
            correlation_id=correlation_id,
        ))

    async def log_entry_withheld(
        self,
        company_id: UUID,
        document_id: UUID,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.entry_withheld(
            company_id=company_id,
            document_id=document_id,
            correlation_id=correlation_id,
        ))

    async def log_synthesis_failed(
        self,
        company_id: UUID,
        document_id: UUID,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.synthesis_failed(
            company_id=company_id,
            document_id=document_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_entry_confirmed(
        self,
        entry: Entry,
        user_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.entry_confirmed(
            company_id=entry.company_id,
            entry_id=entry.id,
            user_id=user_id,
            correlation_id=correlation_id,
        ))

    async def log_entry_rejected(
        self,
        entry: Entry,
        user_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.entry_rejected(
            company_id=entry.company_id,
            entry_id=entry.id,
            user_id=user_id,
            correlation_id=correlation_id,
        ))

    async def log_transactions_imported(
        self,
        company_id: UUID,
        user_id: UUID,
        accepted: int,
        rejected: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.transactions_imported(
            company_id=company_id,
            user_id=user_id,
            accepted=accepted,
            rejected=rejected,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        company_id: Optional[UUID] = None,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            company_id=company_id,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: UUID,
        company_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
            company_id=company_id,
        ))


def create_correlation_id() -> UUID:
    """One per user action; every event the action causes carries it."""
    return uuid4()
