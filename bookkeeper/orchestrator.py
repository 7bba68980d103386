"""
Reconciliation and bookkeeping flows.

ReconciliationFlow runs one document through
upload → extract → match → suggest entry.
BookkeepingService is what callers use: it adds statement import,
entry review, listings and the entry summary on top.

Rules kept here:
- Entries are only ever suggested; confirmation is a user action
- A failing stage ends up on the document and in the report,
  it is not raised out of reconcile()
- All events of one run share a correlation ID
"""

from typing import Optional, Union
from uuid import UUID

import structlog

from bookkeeper.agents import BookkeepingAssistant
from bookkeeper.audit import AuditLogger, create_correlation_id
from bookkeeper.config import (
    AppSettings,
    UnmatchedEntryPolicy,
    get_settings,
    validate_all_settings,
)
from bookkeeper.errors import DocumentStateError, UploadRejectedError
from bookkeeper.importer import TransactionImporter
from bookkeeper.ledger import EntryReviewer, EntrySynthesizer
from bookkeeper.matching import TransactionMatcher
from bookkeeper.models.ledger import (
    BankTransaction,
    Document,
    DocumentStatus,
    Entry,
    EntryStatus,
    ExtractedFields,
    ImportResult,
    MatchResult,
    ReconciliationOutcome,
    ReconciliationReport,
)
from bookkeeper.services.files import CloudinaryFileStorage, FileStorageInterface
from bookkeeper.services.ocr import MindeeExtractionService
from bookkeeper.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
)


CLAIMABLE_STATUSES = frozenset({DocumentStatus.UPLOADED, DocumentStatus.ERROR})


class ReconciliationFlow:
    """
    Orchestrates the document reconciliation flow.

    Flow:
    1. Register → Validate and store the file, create an UPLOADED document
    2. Claim → UPLOADED/ERROR → PROCESSING (conditional, so only one run wins)
    3. Extract → Mindee; failure marks the document ERROR and stops
    4. Match → Claim the best unmatched transaction, if any
    5. Suggest → Synthesize a SUGGESTED entry (or withhold it, per policy)

    The entry is never confirmed here. That is always a user action.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        file_storage: FileStorageInterface,
        extractor: Optional[MindeeExtractionService] = None,
        matcher: Optional[TransactionMatcher] = None,
        synthesizer: Optional[EntrySynthesizer] = None,
        audit_logger: Optional[AuditLogger] = None,
        app_settings: Optional[AppSettings] = None,
    ):
        self._storage = storage
        self._file_storage = file_storage
        self._app_settings = app_settings or get_settings().app
        self._extractor = extractor or MindeeExtractionService(app_settings=self._app_settings)
        self._matcher = matcher or TransactionMatcher(storage)
        self._synthesizer = synthesizer or EntrySynthesizer()
        self._audit_logger = audit_logger or AuditLogger()

    # =========================================================================
    # UPLOAD
    # =========================================================================

    def validate_upload(self, file_name: str, content: bytes, mime_type: str) -> None:
        """
        Check an upload against the size and media type limits.

        Raises:
            UploadRejectedError: With a message suitable for the user
        """
        if not file_name or not file_name.strip():
            raise UploadRejectedError("File name is required")
        if not content:
            raise UploadRejectedError("File is empty")
        if mime_type.lower() not in self._app_settings.supported_mime_types_list:
            raise UploadRejectedError(
                f"Unsupported file type '{mime_type}'. "
                f"Supported: {', '.join(self._app_settings.supported_mime_types_list)}"
            )
        if len(content) > self._app_settings.max_upload_size_bytes:
            raise UploadRejectedError(
                f"File is larger than {self._app_settings.max_upload_size_mb} MB"
            )

    async def register_upload(
        self,
        company_id: UUID,
        user_id: UUID,
        file_name: str,
        content: bytes,
        mime_type: str,
        correlation_id: Optional[UUID] = None,
    ) -> Document:
        """
        Store an uploaded file and create its UPLOADED document.

        Raises:
            UploadRejectedError: If the file breaks the upload limits
            FileStorageError: If the file could not be stored
        """
        correlation_id = correlation_id or create_correlation_id()
        self.validate_upload(file_name, content, mime_type)

        try:
            file_ref = await self._file_storage.store(company_id, file_name, content, mime_type)
        except Exception as e:
            await self._audit_logger.log_external_service_error(
                service="file_storage",
                error_message=str(e),
                correlation_id=correlation_id,
                company_id=company_id,
            )
            raise

        document = Document(
            company_id=company_id,
            uploaded_by=user_id,
            file_name=file_name,
            file_ref=file_ref,
            file_size=len(content),
            mime_type=mime_type.lower(),
        )
        await self._storage.save_document(document)

        await self._audit_logger.log_document_uploaded(
            company_id=company_id,
            document_id=document.id,
            user_id=user_id,
            file_name=file_name,
            file_size=len(content),
            correlation_id=correlation_id,
        )
        return document

    # =========================================================================
    # RECONCILIATION
    # =========================================================================

    async def _claim_document(self, company_id: UUID, document_id: UUID) -> tuple[Document, str]:
        current = await self._storage.get_document(company_id, document_id)
        if current is None:
            raise NotFoundError(f"Document not found: {document_id}")

        claimed = await self._storage.update_document_if(
            company_id,
            document_id,
            lambda d: d.status in CLAIMABLE_STATUSES,
            {"status": DocumentStatus.PROCESSING},
        )
        if claimed is None:
            latest = await self._storage.get_document(company_id, document_id) or current
            raise DocumentStateError(latest.status.value)
        return claimed, current.status.value

    async def _extract(
        self,
        document: Document,
        correlation_id: UUID,
    ) -> Union[ExtractedFields, str]:
        """Read the file and extract. Returns the fields or an error message."""
        try:
            content = await self._file_storage.read(document.company_id, document.file_ref)
            return await self._extractor.extract(document, content)
        except Exception as e:
            await self._audit_logger.log_external_service_error(
                service=type(e).__name__,
                error_message=str(e),
                correlation_id=correlation_id,
                company_id=document.company_id,
            )
            return str(e) or type(e).__name__

    async def _mark_failed(
        self,
        document: Document,
        error_message: str,
        correlation_id: UUID,
    ) -> Document:
        failed = await self._storage.update_document_if(
            document.company_id,
            document.id,
            lambda d: d.status == DocumentStatus.PROCESSING,
            {"status": DocumentStatus.ERROR},
        )
        await self._audit_logger.log_extraction_failed(
            company_id=document.company_id,
            document_id=document.id,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        return failed or document

    async def _mark_done(
        self,
        document: Document,
        fields: ExtractedFields,
        correlation_id: UUID,
    ) -> Document:
        done = await self._storage.update_document_if(
            document.company_id,
            document.id,
            lambda d: d.status == DocumentStatus.PROCESSING,
            {
                "status": DocumentStatus.DONE,
                "category": fields.category,
                "amount": fields.amount,
                "currency": fields.currency,
                "document_date": fields.document_date,
                "counterparty": fields.counterparty,
                "confidence": fields.confidence,
                "parsed": fields.raw,
            },
        )
        if done is None:
            latest = await self._storage.get_document(document.company_id, document.id)
            raise DocumentStateError(
                latest.status.value if latest else "missing",
                "Document left processing while it was being extracted",
            )

        await self._audit_logger.log_extraction_completed(
            company_id=done.company_id,
            document_id=done.id,
            category=fields.category.value,
            amount=str(fields.amount),
            currency=fields.currency,
            confidence=fields.confidence,
            correlation_id=correlation_id,
        )
        return done

    async def reconcile(
        self,
        company_id: UUID,
        document_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> ReconciliationReport:
        """
        Run extraction, matching and entry suggestion for one document.

        Returns:
            ReconciliationReport describing how far the pipeline got

        Raises:
            NotFoundError: If the company has no such document
            DocumentStateError: If the document is done or already processing
        """
        correlation_id = correlation_id or create_correlation_id()

        document, previous_status = await self._claim_document(company_id, document_id)
        await self._audit_logger.log_extraction_started(
            company_id=company_id,
            document_id=document_id,
            previous_status=previous_status,
            correlation_id=correlation_id,
        )

        # Step 1: Extract
        extracted = await self._extract(document, correlation_id)
        if isinstance(extracted, str):
            failed = await self._mark_failed(document, extracted, correlation_id)
            return ReconciliationReport(
                document=failed,
                outcome=ReconciliationOutcome.EXTRACTION_FAILED,
                errors=[extracted],
                correlation_id=correlation_id,
            )

        document = await self._mark_done(document, extracted, correlation_id)

        # Step 2: Match
        try:
            match = await self._matcher.match(company_id, document)
            considered = 0
            if match is None:
                pool = await self._storage.list_transactions(company_id, unmatched_only=True)
                considered = self._matcher.candidates_considered(document, pool)
        except Exception as e:
            await self._audit_logger.log_error(
                error_type="matching_failed",
                error_message=str(e),
                company_id=company_id,
                details={"document_id": str(document.id)},
                correlation_id=correlation_id,
            )
            return ReconciliationReport(
                document=document,
                outcome=ReconciliationOutcome.PARTIAL,
                errors=[f"Matching failed: {e}"],
                correlation_id=correlation_id,
            )

        if match is not None:
            await self._audit_logger.log_transaction_matched(
                company_id=company_id,
                transaction_id=match.transaction.id,
                document_id=document.id,
                confidence=match.confidence,
                correlation_id=correlation_id,
            )
            return await self._suggest(
                document,
                match,
                ReconciliationOutcome.MATCHED,
                correlation_id,
                transaction=match.transaction,
                confidence=min(match.confidence, document.confidence),
            )

        await self._audit_logger.log_no_match(
            company_id=company_id,
            document_id=document.id,
            candidates_considered=considered,
            correlation_id=correlation_id,
        )

        # Step 3: No transaction, follow the policy
        if self._app_settings.unmatched_entry_policy == UnmatchedEntryPolicy.SKIP:
            await self._audit_logger.log_entry_withheld(
                company_id=company_id,
                document_id=document.id,
                correlation_id=correlation_id,
            )
            return ReconciliationReport(
                document=document,
                outcome=ReconciliationOutcome.ENTRY_WITHHELD,
                correlation_id=correlation_id,
            )

        return await self._suggest(
            document,
            None,
            ReconciliationOutcome.UNMATCHED,
            correlation_id,
            confidence=document.confidence * self._app_settings.unmatched_entry_confidence_factor,
        )

    async def _suggest(
        self,
        document: Document,
        match: Optional[MatchResult],
        outcome: ReconciliationOutcome,
        correlation_id: UUID,
        transaction: Optional[BankTransaction] = None,
        confidence: Optional[float] = None,
    ) -> ReconciliationReport:
        try:
            entry = self._synthesizer.synthesize(
                document.company_id,
                document=document,
                transaction=transaction,
                confidence=confidence,
            )
            await self._storage.save_entry(entry)
        except Exception as e:
            await self._audit_logger.log_synthesis_failed(
                company_id=document.company_id,
                document_id=document.id,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            return ReconciliationReport(
                document=document,
                outcome=ReconciliationOutcome.PARTIAL,
                match=match,
                errors=[f"Entry synthesis failed: {e}"],
                correlation_id=correlation_id,
            )

        await self._audit_logger.log_entry_suggested(entry, correlation_id)
        return ReconciliationReport(
            document=document,
            outcome=outcome,
            match=match,
            entry=entry,
            correlation_id=correlation_id,
        )

    async def retry_document(
        self,
        company_id: UUID,
        document_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> ReconciliationReport:
        """
        Re-run reconciliation on a document whose extraction failed.

        Raises:
            NotFoundError: If the company has no such document
            DocumentStateError: If the document is not in ERROR
        """
        document = await self._storage.get_document(company_id, document_id)
        if document is None:
            raise NotFoundError(f"Document not found: {document_id}")
        if document.status != DocumentStatus.ERROR:
            raise DocumentStateError(
                document.status.value,
                f"Only failed documents can be retried, this one is '{document.status.value}'",
            )
        return await self.reconcile(company_id, document_id, correlation_id)


class BookkeepingService:
    """
    Entry point for callers (API handlers, jobs, the assistant).

    The caller has already authenticated the user and checked company
    membership; every method takes both IDs explicitly.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        file_storage: FileStorageInterface,
        extractor: Optional[MindeeExtractionService] = None,
        audit_logger: Optional[AuditLogger] = None,
        matcher: Optional[TransactionMatcher] = None,
        app_settings: Optional[AppSettings] = None,
    ):
        self._storage = storage
        self._app_settings = app_settings or get_settings().app
        self._audit_logger = audit_logger or AuditLogger()
        self._reconciliation = ReconciliationFlow(
            storage=storage,
            file_storage=file_storage,
            extractor=extractor,
            matcher=matcher,
            audit_logger=self._audit_logger,
            app_settings=self._app_settings,
        )
        self._reviewer = EntryReviewer(storage)
        self._importer = TransactionImporter()

    @property
    def reconciliation(self) -> ReconciliationFlow:
        return self._reconciliation

    # Documents

    async def upload_and_reconcile(
        self,
        file_name: str,
        content: bytes,
        mime_type: str,
        company_id: UUID,
        user_id: UUID,
    ) -> ReconciliationReport:
        """
        Register an upload and reconcile it in one go.

        Raises:
            UploadRejectedError: If the file breaks the upload limits
        """
        correlation_id = create_correlation_id()
        document = await self._reconciliation.register_upload(
            company_id, user_id, file_name, content, mime_type, correlation_id
        )
        return await self._reconciliation.reconcile(company_id, document.id, correlation_id)

    async def retry_document(self, company_id: UUID, document_id: UUID) -> ReconciliationReport:
        return await self._reconciliation.retry_document(company_id, document_id)

    async def list_documents(
        self,
        company_id: UUID,
        status: Optional[DocumentStatus] = None,
    ) -> list[Document]:
        return await self._storage.list_documents(company_id, status)

    # Transactions

    async def import_transactions(
        self,
        raw: Union[str, bytes, list[list[str]]],
        company_id: UUID,
        user_id: UUID,
    ) -> ImportResult:
        """
        Import a bank statement and persist the accepted rows.

        Rows that omit a currency fall back to the company base currency.

        Raises:
            EmptyBatchError: If the statement has no data rows
        """
        correlation_id = create_correlation_id()
        company = await self._storage.get_company(company_id)
        base_currency = company.currency if company else self._app_settings.default_currency

        result = self._importer.import_batch(raw, company_id, user_id, base_currency)
        if result.accepted:
            await self._storage.save_transactions(result.accepted)

        await self._audit_logger.log_transactions_imported(
            company_id=company_id,
            user_id=user_id,
            accepted=result.accepted_count,
            rejected=result.rejected_count,
            correlation_id=correlation_id,
        )
        return result

    async def list_transactions(
        self,
        company_id: UUID,
        unmatched_only: bool = False,
    ) -> list[BankTransaction]:
        return await self._storage.list_transactions(company_id, unmatched_only)

    # Entries

    async def confirm_entry(self, company_id: UUID, entry_id: UUID, user_id: UUID) -> Entry:
        """
        Confirm a suggested entry.

        Raises:
            NotFoundError: If the company has no such entry
            InvalidTransition: If the entry is not suggested
        """
        entry = await self._reviewer.confirm_entry(company_id, entry_id, user_id)
        await self._audit_logger.log_entry_confirmed(entry, user_id)
        return entry

    async def reject_entry(
        self,
        company_id: UUID,
        entry_id: UUID,
        user_id: Optional[UUID] = None,
    ) -> Entry:
        """
        Reject a suggested entry.

        Raises:
            NotFoundError: If the company has no such entry
            InvalidTransition: If the entry is not suggested
        """
        entry = await self._reviewer.reject_entry(company_id, entry_id)
        await self._audit_logger.log_entry_rejected(entry, user_id)
        return entry

    async def list_entries(
        self,
        company_id: UUID,
        status: Optional[EntryStatus] = None,
    ) -> list[Entry]:
        return await self._storage.list_entries(company_id, status)

    async def entry_summary(self, company_id: UUID) -> dict[EntryStatus, int]:
        """Count entries per status. Every status is present, zero or not."""
        summary = {status: 0 for status in EntryStatus}
        for entry in await self._storage.list_entries(company_id):
            summary[entry.status] += 1
        return summary


def create_app_components(
    use_storage: bool = True,
) -> tuple[BookkeepingService, BookkeepingAssistant, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to run on in-memory storage.

    On Google Sheets, conditional updates (transaction claims, entry
    reviews) are serialized by in-process locks only. Run a single worker
    process against one spreadsheet.

    Returns:
        (bookkeeping_service, assistant, sheets_client)
    """
    logger = structlog.get_logger("bookkeeper.orchestrator")
    sections = validate_all_settings()
    logger.info(
        "settings_checked",
        configured=sorted(k for k, v in sections.items() if v is True),
        missing=sorted(k for k, v in sections.items() if v is False),
    )

    sheets_client = None
    ledger_storage: LedgerStorageInterface = InMemoryLedgerStorage()
    audit_storage = InMemoryAuditStorage()

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            sheets_client.connect()
            ledger_storage = GoogleSheetsLedgerStorage(sheets_client)
            audit_storage = GoogleSheetsAuditStorage(sheets_client)
            logger.warning(
                "conditional_writes_single_process",
                backend="google_sheets",
            )
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None

    service = BookkeepingService(
        storage=ledger_storage,
        file_storage=CloudinaryFileStorage(),
        extractor=MindeeExtractionService(),
        audit_logger=AuditLogger(audit_storage),
    )
    return service, BookkeepingAssistant(ledger_storage), sheets_client
