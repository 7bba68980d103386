"""
Core Data Models for Bookkeeper

These models define the strict schemas for everything the reconciliation
pipeline reads and writes:
1. Companies (tenant partition)
2. Documents and their extracted fields
3. Bank transactions imported from statements
4. Double-entry ledger records ("entries")

Every model validates its own invariants, and the storage layer
re-validates on every update, so an invariant violation can never be
persisted silently.

DESIGN DECISION: We use Pydantic v2 models with model validators for the
cross-field rules (status vs. extracted fields, match flag vs. matched
document, confirmation metadata vs. entry status).
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TaxRegime(str, Enum):
    """Company tax regime (simplified or general)."""
    USN = "USN"
    OSN = "OSN"


class DocumentStatus(str, Enum):
    """
    Document processing status.

    Monotonic: uploaded → processing → done | error.
    The only way back is a manual retry, error → processing.
    """
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


DOCUMENT_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    DocumentStatus.UPLOADED: frozenset({DocumentStatus.PROCESSING}),
    DocumentStatus.PROCESSING: frozenset({DocumentStatus.DONE, DocumentStatus.ERROR}),
    DocumentStatus.DONE: frozenset(),
    DocumentStatus.ERROR: frozenset({DocumentStatus.PROCESSING}),
}


class DocumentCategory(str, Enum):
    """Kind of financial document, as detected by extraction."""
    INVOICE = "invoice"
    RECEIPT = "receipt"
    CONTRACT = "contract"
    STATEMENT = "statement"
    OTHER = "other"


class EntryStatus(str, Enum):
    """
    Entry review status.

    CRITICAL: Entries only leave SUGGESTED by explicit user action.
    CONFIRMED and REJECTED are terminal.
    """
    SUGGESTED = "suggested"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class RejectReason(str, Enum):
    """Why a bank statement row was not imported."""
    INVALID_DATE = "InvalidDate"
    INVALID_AMOUNT = "InvalidAmount"
    MISSING_FIELDS = "MissingFields"


class ReconciliationOutcome(str, Enum):
    """How far the reconciliation pipeline got for one document."""
    MATCHED = "matched"                      # Transaction claimed, entry suggested
    UNMATCHED = "unmatched"                  # No transaction, document-only entry suggested
    ENTRY_WITHHELD = "entry_withheld"        # No transaction, policy says wait
    PARTIAL = "partial"                      # Document done, matching or synthesis failed
    EXTRACTION_FAILED = "extraction_failed"  # Document in error


def _normalize_currency(v: str) -> str:
    v = v.strip().upper()
    if len(v) != 3 or not v.isalpha():
        raise ValueError(f"Invalid currency code: {v!r}")
    return v


# =============================================================================
# COMPANY
# =============================================================================

class Company(BaseModel):
    """A tenant. Every other entity belongs to exactly one company."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=200)
    bin_iin: Optional[str] = Field(
        default=None,
        max_length=12,
        description="Business or individual identification number"
    )
    tax_regime: TaxRegime = TaxRegime.USN
    currency: str = Field(
        default="KZT",
        description="Base currency, used when a statement row has none"
    )
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return _normalize_currency(v)


# =============================================================================
# DOCUMENTS
# =============================================================================

class ExtractedFields(BaseModel):
    """
    Structured fields returned by the extraction service.

    CRITICAL: This is PROPOSED data, NOT verified. Low confidence
    extractions are advisory and must be reviewed by a human.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    category: DocumentCategory = DocumentCategory.OTHER
    amount: Decimal = Field(..., gt=0, description="Document total, always positive")
    currency: str
    document_date: date
    counterparty: Optional[str] = Field(default=None, max_length=200)
    confidence: float = Field(..., ge=0.0, le=1.0)
    raw: dict[str, Any] = Field(
        default_factory=dict,
        description="Raw extraction payload for debugging"
    )

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return _normalize_currency(v)


class Document(BaseModel):
    """
    An uploaded financial document.

    Extracted fields are present iff status is DONE.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    company_id: UUID
    uploaded_by: UUID
    file_name: str = Field(..., min_length=1, max_length=255)
    file_ref: str = Field(..., min_length=1, description="Reference returned by file storage")
    file_size: int = Field(..., ge=0)
    mime_type: str
    status: DocumentStatus = DocumentStatus.UPLOADED

    # Extracted fields (only when DONE)
    category: Optional[DocumentCategory] = None
    amount: Optional[Decimal] = Field(default=None, gt=0)
    currency: Optional[str] = None
    document_date: Optional[date] = None
    counterparty: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    parsed: Optional[dict[str, Any]] = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode='after')
    def validate_extracted_fields(self) -> 'Document':
        required = (self.category, self.amount, self.currency, self.document_date)
        if self.status == DocumentStatus.DONE:
            if any(v is None for v in required):
                raise ValueError("A done document must carry category, amount, currency and date")
        elif any(v is not None for v in required + (self.counterparty, self.confidence)):
            raise ValueError(
                f"A document in status '{self.status.value}' cannot carry extracted fields"
            )
        return self

    def can_transition_to(self, status: DocumentStatus) -> bool:
        return status in DOCUMENT_TRANSITIONS[self.status]

    def extracted_fields(self) -> Optional[ExtractedFields]:
        """Rebuild the extraction result from a DONE document."""
        if self.status != DocumentStatus.DONE:
            return None
        return ExtractedFields(
            category=self.category,
            amount=self.amount,
            currency=self.currency,
            document_date=self.document_date,
            counterparty=self.counterparty,
            confidence=self.confidence if self.confidence is not None else 0.0,
            raw=self.parsed or {},
        )


# =============================================================================
# BANK TRANSACTIONS
# =============================================================================

class BankTransaction(BaseModel):
    """
    One line of an imported bank statement.

    Amount is signed: positive is an inflow, negative an outflow.
    A transaction is claimed by at most one document.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    company_id: UUID
    imported_by: UUID
    transaction_date: date
    description: str = Field(default="", max_length=500)
    amount: Decimal
    currency: str
    is_matched: bool = False
    matched_document_id: Optional[UUID] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return _normalize_currency(v)

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        if not v.is_finite() or v == 0:
            raise ValueError("Transaction amount must be a finite, non-zero number")
        return v

    @model_validator(mode='after')
    def validate_match_flag(self) -> 'BankTransaction':
        if self.is_matched != (self.matched_document_id is not None):
            raise ValueError("is_matched must be set exactly when matched_document_id is set")
        return self

    @property
    def is_inflow(self) -> bool:
        return self.amount > 0


# =============================================================================
# ENTRIES
# =============================================================================

class Entry(BaseModel):
    """
    A proposed or confirmed double-entry bookkeeping record.

    Direction is encoded by which account is debit and which is credit,
    never by the sign of the amount.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    company_id: UUID
    transaction_id: Optional[UUID] = None
    document_id: Optional[UUID] = None
    debit_account: str = Field(..., min_length=1, max_length=20)
    credit_account: str = Field(..., min_length=1, max_length=20)
    amount: Decimal = Field(..., gt=0)
    currency: str
    description: Optional[str] = Field(default=None, max_length=500)
    status: EntryStatus = EntryStatus.SUGGESTED
    confidence: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="How much the suggestion can be trusted (low for transaction-less entries)"
    )
    confirmed_by: Optional[UUID] = None
    confirmed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return _normalize_currency(v)

    @model_validator(mode='after')
    def validate_entry(self) -> 'Entry':
        if self.debit_account == self.credit_account:
            raise ValueError("Debit and credit accounts must differ")

        has_confirmation = self.confirmed_by is not None or self.confirmed_at is not None
        if self.status == EntryStatus.CONFIRMED:
            if self.confirmed_by is None or self.confirmed_at is None:
                raise ValueError("A confirmed entry needs confirmed_by and confirmed_at")
        elif has_confirmation:
            raise ValueError(f"A {self.status.value} entry cannot carry confirmation metadata")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status != EntryStatus.SUGGESTED


# =============================================================================
# PIPELINE RESULTS
# =============================================================================

class MatchResult(BaseModel):
    """The transaction chosen for a document and how sure we are."""

    transaction: BankTransaction
    confidence: float = Field(..., ge=0.0, le=1.0)
    scoring_breakdown: dict[str, float] = Field(default_factory=dict)


class RejectedRow(BaseModel):
    """A statement row that failed validation."""

    line_number: int = Field(..., ge=1, description="1-based line in the source, header included")
    row: list[str]
    reason: RejectReason
    message: str


class ImportResult(BaseModel):
    """Outcome of a bulk import. Both lists may be non-empty."""

    accepted: list[BankTransaction] = Field(default_factory=list)
    rejected: list[RejectedRow] = Field(default_factory=list)

    @property
    def accepted_count(self) -> int:
        return len(self.accepted)

    @property
    def rejected_count(self) -> int:
        return len(self.rejected)


class ReconciliationReport(BaseModel):
    """
    Structured result of reconciling one document.

    Stage failures end up here instead of being raised.
    """

    document: Document
    outcome: ReconciliationOutcome
    match: Optional[MatchResult] = None
    entry: Optional[Entry] = None
    errors: list[str] = Field(default_factory=list)
    correlation_id: Optional[UUID] = None

    @property
    def is_partial(self) -> bool:
        return self.outcome == ReconciliationOutcome.PARTIAL
