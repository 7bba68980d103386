"""In-memory file storage for tests and local runs."""

from uuid import UUID, uuid4

from bookkeeper.services.files.interface import (
    FileNotFoundInStorageError,
    FileStorageInterface,
)


class InMemoryFileStorage(FileStorageInterface):

    def __init__(self):
        self._files: dict[tuple[UUID, str], bytes] = {}

    async def store(
        self,
        company_id: UUID,
        file_name: str,
        content: bytes,
        mime_type: str,
    ) -> str:
        file_ref = f"{company_id}/{uuid4()}_{file_name}"
        self._files[(company_id, file_ref)] = content
        return file_ref

    async def read(self, company_id: UUID, file_ref: str) -> bytes:
        try:
            return self._files[(company_id, file_ref)]
        except KeyError:
            raise FileNotFoundInStorageError(f"File not found: {file_ref}")
