"""
Document Extraction using Mindee

DESIGN DECISION: We use Mindee's financial document API because:
1. It handles both invoices and receipts with one product
2. Returns STRUCTURED data, not just raw text
3. Provides per-field confidence scores

This service handles:
1. Sending stored document bytes to Mindee
2. Parsing the structured prediction
3. Converting it to our ExtractedFields model

CRITICAL: Extraction either yields a complete result (amount, currency,
date) or raises ExtractionFailure. We never return half-filled fields, and
we never touch storage from here.
"""

import asyncio
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from mindee import Client, PredictResponse
from mindee.product import FinancialDocumentV1
from tenacity import retry, stop_after_attempt, wait_exponential

from bookkeeper.config import AppSettings, MindeeSettings, get_settings
from bookkeeper.errors import BookkeepingError
from bookkeeper.models.ledger import Document, DocumentCategory, ExtractedFields


class OCRError(BookkeepingError):
    """Base exception for extraction errors."""
    pass


class ExtractionFailure(OCRError):
    """
    Extraction produced no usable result.

    Covers an unreachable service, a timeout and a response without
    amount, currency or date. Recoverable by retrying the document.
    """
    pass


# Mindee document_type classification -> our category
DOCUMENT_TYPE_MAP: dict[str, DocumentCategory] = {
    "INVOICE": DocumentCategory.INVOICE,
    "EXPENSE RECEIPT": DocumentCategory.RECEIPT,
    "CREDIT NOTE": DocumentCategory.OTHER,
}


def _field_value(prediction: Any, name: str) -> Any:
    field = getattr(prediction, name, None)
    return getattr(field, "value", None) if field is not None else None


def _field_confidence(prediction: Any, name: str) -> Optional[float]:
    field = getattr(prediction, name, None)
    if field is None or getattr(field, "value", None) is None:
        return None
    return getattr(field, "confidence", None)


def _safe_decimal(value) -> Optional[Decimal]:
    """Safely convert a value to Decimal."""
    if value is None:
        return None
    try:
        # Mindee returns float/None
        return Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, TypeError, ValueError):
        return None


def _safe_date(value) -> Optional[date]:
    """Safely convert a value to date."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        for fmt in ["%Y-%m-%d", "%d.%m.%Y", "%d/%m/%Y"]:
            try:
                return datetime.strptime(value, fmt).date()
            except ValueError:
                continue
    return None


def parse_prediction(prediction: Any) -> ExtractedFields:
    """
    Convert a Mindee FinancialDocumentV1 prediction into ExtractedFields.

    Raises:
        ExtractionFailure: If amount, currency or date is missing or invalid
    """
    amount = _safe_decimal(_field_value(prediction, "total_amount"))
    # Credit notes come back negative; the ledger side is chosen later.
    if amount is not None:
        amount = abs(amount)
    document_date = _safe_date(_field_value(prediction, "date"))
    locale = getattr(prediction, "locale", None)
    currency = getattr(locale, "currency", None) if locale is not None else None

    missing = [
        name for name, value in (
            ("amount", amount or None),
            ("currency", currency),
            ("date", document_date),
        )
        if value is None
    ]
    if missing:
        raise ExtractionFailure(
            f"Extraction response is missing {', '.join(missing)}"
        )

    document_type = _field_value(prediction, "document_type")
    category = DOCUMENT_TYPE_MAP.get(
        str(document_type).upper() if document_type else "",
        DocumentCategory.OTHER,
    )

    counterparty = (
        _field_value(prediction, "supplier_name")
        or _field_value(prediction, "customer_name")
    )

    confidences = [
        c for c in (
            _field_confidence(prediction, "total_amount"),
            _field_confidence(prediction, "date"),
            _field_confidence(prediction, "supplier_name"),
        )
        if c is not None
    ]
    overall_confidence = sum(confidences) / len(confidences) if confidences else 0.0

    raw = {
        "document_type": document_type,
        "total_amount": str(amount),
        "date": document_date.isoformat(),
        "currency": currency,
        "supplier_name": _field_value(prediction, "supplier_name"),
        "customer_name": _field_value(prediction, "customer_name"),
    }

    try:
        return ExtractedFields(
            category=category,
            amount=amount,
            currency=currency,
            document_date=document_date,
            counterparty=str(counterparty)[:200] if counterparty else None,
            confidence=max(0.0, min(1.0, overall_confidence)),
            raw=raw,
        )
    except ValueError as e:
        raise ExtractionFailure(f"Extraction response is invalid: {e}")


class MindeeExtractionService:
    """
    Extraction adapter over Mindee.

    IMPORTANT BOUNDARIES:
    1. This service ONLY extracts data, it does NOT persist anything
    2. Every call is bounded by extraction_timeout_seconds
    3. Confidence scores are preserved for downstream entry suggestions
    """

    def __init__(
        self,
        settings: Optional[MindeeSettings] = None,
        app_settings: Optional[AppSettings] = None,
        client: Optional[Client] = None,
    ):
        self._settings = settings
        self._app_settings = app_settings or get_settings().app
        self._client = client

    def _get_client(self) -> Client:
        """Get or create Mindee client."""
        if self._client is None:
            settings = self._settings or get_settings().mindee
            self._client = Client(api_key=settings.api_key)
        return self._client

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _predict(self, file_name: str, content: bytes) -> Any:
        client = self._get_client()
        input_doc = client.source_from_bytes(content, file_name)
        result: PredictResponse = await asyncio.wait_for(
            asyncio.to_thread(client.parse, FinancialDocumentV1, input_doc),
            timeout=self._app_settings.extraction_timeout_seconds,
        )
        return result.document.inference.prediction

    async def extract(self, document: Document, content: bytes) -> ExtractedFields:
        """
        Extract structured fields from a stored document.

        Args:
            document: The document record (name and media type are used)
            content: The file bytes read from file storage

        Returns:
            ExtractedFields with amount, currency, date and confidence

        Raises:
            ExtractionFailure: On timeout, service error or unusable response
        """
        try:
            prediction = await self._predict(document.file_name, content)
        except asyncio.TimeoutError:
            raise ExtractionFailure(
                f"Extraction timed out after {self._app_settings.extraction_timeout_seconds}s"
            )
        except Exception as e:
            raise ExtractionFailure(f"Extraction service error: {e}")

        return parse_prediction(prediction)
