"""
Document File Storage using Cloudinary

DESIGN DECISION: Uploaded documents go to Cloudinary as raw assets:
1. PDFs and images are stored byte-for-byte, no transformations
2. Each company gets its own folder, companies/{company_id}/documents/
3. The public ID is the file reference persisted on the Document

Reads resolve the public ID to its delivery URL and download it with
httpx. A reference outside the caller's company folder is reported as
missing, never fetched.
"""

import hashlib
from typing import Optional
from uuid import UUID, uuid4

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader
import cloudinary.utils
import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from bookkeeper.config import CloudinarySettings, get_settings
from bookkeeper.services.files.interface import (
    FileNotFoundInStorageError,
    FileStorageError,
    FileStorageInterface,
    FileUploadError,
)


class CloudinaryFileStorage(FileStorageInterface):
    """
    Company-scoped document storage on Cloudinary.

    Flow:
    1. store() uploads the bytes as a raw asset and returns its public ID
    2. read() checks the public ID belongs to the company, then downloads it
    """

    def __init__(
        self,
        settings: Optional[CloudinarySettings] = None,
        download_timeout: float = 30.0,
    ):
        self._settings = settings
        self._download_timeout = download_timeout
        self._configured = False

    @property
    def settings(self) -> CloudinarySettings:
        if self._settings is None:
            self._settings = get_settings().cloudinary
        return self._settings

    def _configure(self):
        """Configure Cloudinary SDK."""
        if not self._configured:
            cloudinary.config(
                cloud_name=self.settings.cloud_name,
                api_key=self.settings.api_key,
                api_secret=self.settings.api_secret,
                secure=True,
            )
            self._configured = True

    def _company_folder(self, company_id: UUID) -> str:
        return f"{self.settings.root_folder}/{company_id}/documents"

    def _generate_public_id(self, company_id: UUID, file_name: str) -> str:
        """
        Generate a unique public ID for Cloudinary.

        Format: {root}/{company_id}/documents/{uuid}_{name_hash}
        """
        name_hash = hashlib.md5(file_name.encode()).hexdigest()[:8]
        return f"{self._company_folder(company_id)}/{uuid4()}_{name_hash}"

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def store(
        self,
        company_id: UUID,
        file_name: str,
        content: bytes,
        mime_type: str,
    ) -> str:
        """
        Upload a document to the company's folder.

        Returns:
            The Cloudinary public ID

        Raises:
            FileUploadError: If Cloudinary rejects the upload
        """
        self._configure()
        public_id = self._generate_public_id(company_id, file_name)

        try:
            result = cloudinary.uploader.upload(
                content,
                public_id=public_id,
                resource_type="raw",
                use_filename=False,
                overwrite=False,
                context={"file_name": file_name, "mime_type": mime_type},
            )
        except cloudinary.exceptions.Error as e:
            raise FileUploadError(f"Cloudinary error: {e}")

        stored_id = result.get("public_id")
        if not stored_id:
            raise FileUploadError("No public ID returned from Cloudinary")
        return stored_id

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _download(self, url: str) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self._download_timeout) as client:
            return await client.get(url)

    async def read(self, company_id: UUID, file_ref: str) -> bytes:
        """
        Download a stored document.

        Raises:
            FileNotFoundInStorageError: If the reference is outside the
                company's folder or Cloudinary has no such asset
            FileStorageError: If the download fails
        """
        if not file_ref.startswith(self._company_folder(company_id) + "/"):
            raise FileNotFoundInStorageError(f"File not found: {file_ref}")

        self._configure()
        url, _ = cloudinary.utils.cloudinary_url(file_ref, resource_type="raw", secure=True)

        try:
            response = await self._download(url)
        except httpx.HTTPError as e:
            raise FileStorageError(f"Failed to download {file_ref}: {e}")

        if response.status_code == 404:
            raise FileNotFoundInStorageError(f"File not found: {file_ref}")
        if response.status_code != 200:
            raise FileStorageError(
                f"Failed to download {file_ref}: HTTP {response.status_code}"
            )
        return response.content
