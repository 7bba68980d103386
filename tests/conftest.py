"""
Shared fixtures.

External services (Mindee, Cloudinary, Google Sheets, Gemini) are replaced
by in-memory stand-ins, so no test touches the network.
"""

from uuid import uuid4

import pytest

from bookkeeper.audit import AuditLogger
from bookkeeper.config import AppSettings, MatchingSettings
from bookkeeper.models.ledger import Company
from bookkeeper.services.files import InMemoryFileStorage
from bookkeeper.services.ocr import ExtractionFailure
from bookkeeper.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage

from tests.factories import FakeExtractor


@pytest.fixture
def company_id():
    return uuid4()


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def company(company_id):
    return Company(id=company_id, name="Sana LLP", bin_iin="123456789012", currency="KZT")


@pytest.fixture
def storage():
    return InMemoryLedgerStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def file_storage():
    return InMemoryFileStorage()


@pytest.fixture
def app_settings():
    return AppSettings()


@pytest.fixture
def matching_settings():
    return MatchingSettings()


@pytest.fixture
def failing_extractor():
    return FakeExtractor(error=ExtractionFailure("Extraction timed out after 30.0s"))
