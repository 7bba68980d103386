"""Builders for test data and fakes for external services."""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from bookkeeper.models.ledger import (
    BankTransaction,
    Document,
    DocumentCategory,
    DocumentStatus,
    ExtractedFields,
)


class FakeExtractor:
    """Stands in for MindeeExtractionService."""

    def __init__(
        self,
        fields: Optional[ExtractedFields] = None,
        error: Optional[Exception] = None,
    ):
        self.fields = fields
        self.error = error
        self.calls: list[tuple[Document, bytes]] = []

    async def extract(self, document: Document, content: bytes) -> ExtractedFields:
        self.calls.append((document, content))
        if self.error is not None:
            raise self.error
        return self.fields


def extracted_fields(
    amount: str = "15000",
    currency: str = "KZT",
    document_date: date = date(2024, 3, 10),
    category: DocumentCategory = DocumentCategory.RECEIPT,
    counterparty: Optional[str] = "Kazakhtelecom",
    confidence: float = 0.9,
) -> ExtractedFields:
    return ExtractedFields(
        category=category,
        amount=Decimal(amount),
        currency=currency,
        document_date=document_date,
        counterparty=counterparty,
        confidence=confidence,
        raw={"source": "test"},
    )


def done_document(
    company_id: UUID,
    amount: str = "15000",
    currency: str = "KZT",
    document_date: date = date(2024, 3, 10),
    category: DocumentCategory = DocumentCategory.RECEIPT,
    counterparty: Optional[str] = "Kazakhtelecom",
    confidence: float = 0.9,
) -> Document:
    return Document(
        company_id=company_id,
        uploaded_by=uuid4(),
        file_name="receipt.pdf",
        file_ref=f"{company_id}/receipt.pdf",
        file_size=1024,
        mime_type="application/pdf",
        status=DocumentStatus.DONE,
        category=category,
        amount=Decimal(amount),
        currency=currency,
        document_date=document_date,
        counterparty=counterparty,
        confidence=confidence,
    )


def bank_transaction(
    company_id: UUID,
    amount: str = "-15000",
    currency: str = "KZT",
    transaction_date: date = date(2024, 3, 11),
    description: str = "Payment Kazakhtelecom JSC",
) -> BankTransaction:
    return BankTransaction(
        company_id=company_id,
        imported_by=uuid4(),
        transaction_date=transaction_date,
        description=description,
        amount=Decimal(amount),
        currency=currency,
    )

