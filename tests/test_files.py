"""Tests for document file storage (Cloudinary is faked)."""

from uuid import uuid4

import cloudinary.uploader
import httpx
import pytest

from bookkeeper.config import CloudinarySettings
from bookkeeper.services.files import (
    CloudinaryFileStorage,
    FileNotFoundInStorageError,
    FileStorageError,
    InMemoryFileStorage,
)


@pytest.fixture
def cloudinary_storage():
    settings = CloudinarySettings(cloud_name="demo", api_key="key", api_secret="secret")
    return CloudinaryFileStorage(settings=settings)


class TestInMemoryFileStorage:

    @pytest.mark.asyncio
    async def test_store_and_read(self, company_id):
        storage = InMemoryFileStorage()
        ref = await storage.store(company_id, "receipt.pdf", b"%PDF", "application/pdf")
        assert await storage.read(company_id, ref) == b"%PDF"

    @pytest.mark.asyncio
    async def test_other_company_cannot_read(self, company_id):
        storage = InMemoryFileStorage()
        ref = await storage.store(company_id, "receipt.pdf", b"%PDF", "application/pdf")
        with pytest.raises(FileNotFoundInStorageError):
            await storage.read(uuid4(), ref)


class TestCloudinaryFileStorage:
    """Tests for CloudinaryFileStorage without network access."""

    @pytest.mark.asyncio
    async def test_store_uses_company_folder(self, cloudinary_storage, company_id, monkeypatch):
        """Test uploads go to the company's folder as raw assets."""
        calls = []

        def fake_upload(content, **kwargs):
            calls.append(kwargs)
            return {"public_id": kwargs["public_id"]}

        monkeypatch.setattr(cloudinary.uploader, "upload", fake_upload)

        ref = await cloudinary_storage.store(company_id, "receipt.pdf", b"%PDF", "application/pdf")

        assert ref.startswith(f"companies/{company_id}/documents/")
        assert calls[0]["resource_type"] == "raw"
        assert calls[0]["context"]["mime_type"] == "application/pdf"

    @pytest.mark.asyncio
    async def test_read_outside_company_folder(self, cloudinary_storage, company_id, monkeypatch):
        """Test a foreign reference is refused before anything is downloaded."""
        async def fail_download(url):
            raise AssertionError("must not download")

        monkeypatch.setattr(cloudinary_storage, "_download", fail_download)

        with pytest.raises(FileNotFoundInStorageError):
            await cloudinary_storage.read(company_id, f"companies/{uuid4()}/documents/x_1234")

    @pytest.mark.asyncio
    async def test_read_downloads_content(self, cloudinary_storage, company_id, monkeypatch):
        urls = []

        async def fake_download(url):
            urls.append(url)
            return httpx.Response(200, content=b"%PDF")

        monkeypatch.setattr(cloudinary_storage, "_download", fake_download)

        ref = f"companies/{company_id}/documents/abc_1234"
        assert await cloudinary_storage.read(company_id, ref) == b"%PDF"
        assert "/raw/upload/" in urls[0]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,error", [
        (404, FileNotFoundInStorageError),
        (500, FileStorageError),
    ])
    async def test_read_error_status(self, cloudinary_storage, company_id, monkeypatch, status, error):
        async def fake_download(url):
            return httpx.Response(status)

        monkeypatch.setattr(cloudinary_storage, "_download", fake_download)

        with pytest.raises(error):
            await cloudinary_storage.read(company_id, f"companies/{company_id}/documents/abc_1234")
