"""Tests for the Mindee extraction adapter (no API calls)."""

import time
from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest
from tenacity import wait_none

from bookkeeper.config import AppSettings
from bookkeeper.models.ledger import Document, DocumentCategory
from bookkeeper.services.ocr import ExtractionFailure, MindeeExtractionService, parse_prediction


def field(value, confidence=0.9):
    return SimpleNamespace(value=value, confidence=confidence)


def prediction(
    total=15000.0,
    currency="KZT",
    doc_date="2024-03-10",
    document_type="EXPENSE RECEIPT",
    supplier="Kazakhtelecom",
):
    return SimpleNamespace(
        total_amount=field(total),
        date=field(doc_date, 0.8),
        document_type=field(document_type),
        supplier_name=field(supplier, 0.7),
        customer_name=field(None),
        locale=SimpleNamespace(currency=currency),
    )


class FakeMindeeClient:
    """Mimics Client.source_from_bytes / Client.parse."""

    def __init__(self, result=None, error=None, delay=0.0):
        self.result = result
        self.error = error
        self.delay = delay
        self.parse_calls = 0

    def source_from_bytes(self, content, file_name):
        return (content, file_name)

    def parse(self, product, input_doc):
        self.parse_calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(document=SimpleNamespace(inference=SimpleNamespace(prediction=self.result)))


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch):
    monkeypatch.setattr(MindeeExtractionService._predict.retry, "wait", wait_none())


@pytest.fixture
def document():
    return Document(
        company_id=uuid4(),
        uploaded_by=uuid4(),
        file_name="receipt.pdf",
        file_ref="ref",
        file_size=10,
        mime_type="application/pdf",
    )


class TestParsePrediction:
    """Tests for turning a prediction into ExtractedFields."""

    def test_complete_receipt(self):
        fields = parse_prediction(prediction())

        assert fields.amount == Decimal("15000.00")
        assert fields.currency == "KZT"
        assert fields.document_date == date(2024, 3, 10)
        assert fields.category == DocumentCategory.RECEIPT
        assert fields.counterparty == "Kazakhtelecom"
        assert fields.confidence == pytest.approx(0.8)
        assert fields.raw["document_type"] == "EXPENSE RECEIPT"

    def test_negative_total_is_made_positive(self):
        """Test credit notes with negative totals still yield a positive amount."""
        fields = parse_prediction(prediction(total=-250.5, document_type="CREDIT NOTE"))
        assert fields.amount == Decimal("250.50")
        assert fields.category == DocumentCategory.OTHER

    def test_unknown_type_is_other(self):
        assert parse_prediction(prediction(document_type=None)).category == DocumentCategory.OTHER

    def test_invoice_type(self):
        assert parse_prediction(prediction(document_type="INVOICE")).category == DocumentCategory.INVOICE

    def test_lowercase_currency_normalized(self):
        assert parse_prediction(prediction(currency="usd")).currency == "USD"

    @pytest.mark.parametrize("kwargs,missing", [
        ({"total": None}, "amount"),
        ({"total": 0.0}, "amount"),
        ({"currency": None}, "currency"),
        ({"doc_date": None}, "date"),
        ({"doc_date": "sometime"}, "date"),
    ])
    def test_missing_required_field(self, kwargs, missing):
        """Test an incomplete response is a failure, not a partial result."""
        with pytest.raises(ExtractionFailure, match=f"missing {missing}"):
            parse_prediction(prediction(**kwargs))

    def test_invalid_currency_is_failure(self):
        with pytest.raises(ExtractionFailure, match="invalid"):
            parse_prediction(prediction(currency="TENGE"))


class TestMindeeExtractionService:
    """Tests for the async adapter with a fake Mindee client."""

    @pytest.mark.asyncio
    async def test_extract(self, document):
        client = FakeMindeeClient(result=prediction())
        service = MindeeExtractionService(app_settings=AppSettings(), client=client)

        fields = await service.extract(document, b"%PDF")

        assert fields.amount == Decimal("15000.00")
        assert client.parse_calls == 1

    @pytest.mark.asyncio
    async def test_service_error_is_failure(self, document):
        """Test API errors are retried, then surfaced as ExtractionFailure."""
        client = FakeMindeeClient(error=RuntimeError("503 Service Unavailable"))
        service = MindeeExtractionService(app_settings=AppSettings(), client=client)

        with pytest.raises(ExtractionFailure, match="503"):
            await service.extract(document, b"%PDF")
        assert client.parse_calls == 3

    @pytest.mark.asyncio
    async def test_timeout_is_failure(self, document):
        client = FakeMindeeClient(result=prediction(), delay=0.3)
        service = MindeeExtractionService(
            app_settings=AppSettings(extraction_timeout_seconds=0.01),
            client=client,
        )

        with pytest.raises(ExtractionFailure, match="timed out"):
            await service.extract(document, b"%PDF")

    @pytest.mark.asyncio
    async def test_incomplete_response_is_failure(self, document):
        client = FakeMindeeClient(result=prediction(currency=None))
        service = MindeeExtractionService(app_settings=AppSettings(), client=client)

        with pytest.raises(ExtractionFailure, match="missing currency"):
            await service.extract(document, b"%PDF")
