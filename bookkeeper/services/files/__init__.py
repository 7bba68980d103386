"""Document file storage package."""

from bookkeeper.services.files.cloudinary_service import CloudinaryFileStorage
from bookkeeper.services.files.interface import (
    FileNotFoundInStorageError,
    FileStorageError,
    FileStorageInterface,
    FileUploadError,
)
from bookkeeper.services.files.memory import InMemoryFileStorage

__all__ = [
    "CloudinaryFileStorage",
    "FileNotFoundInStorageError",
    "FileStorageError",
    "FileStorageInterface",
    "FileUploadError",
    "InMemoryFileStorage",
]
