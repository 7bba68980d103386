"""
Configuration for Bookkeeper, read from the environment (and .env).

Each external service has its own settings class with its own env prefix,
so a deployment can leave out a service it does not use. Service sections
are only built when first asked for; a missing MINDEE_API_KEY fails the
first extraction, not the import of this module.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Union
import warnings

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class UnmatchedEntryPolicy(str, Enum):
    """What the reconciliation flow does when no transaction matches."""
    SUGGEST = "suggest"  # Create a low-confidence, transaction-less entry
    SKIP = "skip"        # Create no entry until a transaction shows up


class CloudinarySettings(BaseSettings):
    """Where uploaded documents are kept."""

    model_config = SettingsConfigDict(env_prefix="CLOUDINARY_", extra="ignore")

    cloud_name: str
    api_key: str
    api_secret: str
    root_folder: str = Field(
        default="companies",
        description="Folder under which every company gets its own documents folder"
    )


class MindeeSettings(BaseSettings):
    """Credentials for the document extraction service."""

    model_config = SettingsConfigDict(env_prefix="MINDEE_", extra="ignore")

    api_key: str


class GoogleSheetsSettings(BaseSettings):
    """
    Spreadsheet used as the ledger database.

    One worksheet per table; worksheets are created on first use.
    """

    model_config = SettingsConfigDict(env_prefix="GOOGLE_SHEETS_", extra="ignore")

    credentials_path: str = Field(
        ...,
        description="Service account key file with access to the spreadsheet"
    )
    spreadsheet_id: str

    companies_sheet_name: str = "Companies"
    documents_sheet_name: str = "Documents"
    transactions_sheet_name: str = "Transactions"
    entries_sheet_name: str = "Entries"
    audit_sheet_name: str = "AuditLog"

    @field_validator('credentials_path')
    @classmethod
    def check_credentials_file(cls, v: str) -> str:
        # Secrets are often mounted after the process starts
        if not Path(v).is_file():
            warnings.warn(f"Service account key not found at {v}; Sheets calls will fail until it exists.")
        return v


class GeminiSettings(BaseSettings):
    """Language model behind the bookkeeping assistant."""

    model_config = SettingsConfigDict(env_prefix="GEMINI_", extra="ignore")

    api_key: str
    model_name: str = "gemini-1.5-flash"
    max_tokens: int = Field(default=2048, ge=100, le=8192)
    temperature: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Kept low: answers quote the company's own figures"
    )


class MatchingSettings(BaseSettings):
    """
    Document-to-transaction matching policy.

    The weights are tunable. The defaults make an exact amount inside the
    date window enough to clear the threshold on its own, while date and
    text similarity together can never match without some amount agreement.
    """

    model_config = SettingsConfigDict(
        env_prefix="MATCHING_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    date_window_days: int = Field(
        default=5,
        ge=0,
        le=60,
        description="Transactions further than this from the document date are ineligible"
    )
    amount_weight: float = Field(default=0.6, ge=0.0, le=1.0)
    date_weight: float = Field(default=0.3, ge=0.0, le=1.0)
    text_weight: float = Field(default=0.1, ge=0.0, le=1.0)
    min_score: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Minimum combined score for a candidate to count as a match"
    )
    claim_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="How often to re-read the pool after losing a claim race"
    )

    @model_validator(mode='after')
    def validate_weights(self) -> 'MatchingSettings':
        total = self.amount_weight + self.date_weight + self.text_weight
        if total <= 0:
            raise ValueError("At least one matching weight must be positive")
        return self


class AppSettings(BaseSettings):
    """Upload limits and reconciliation policy."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    max_upload_size_mb: int = Field(default=10, ge=1, le=50)
    supported_mime_types: str = Field(
        default="application/pdf,image/jpeg,image/png",
        description="Comma-separated list of accepted document media types"
    )

    extraction_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Upper bound on a single extraction call"
    )

    unmatched_entry_policy: UnmatchedEntryPolicy = Field(
        default=UnmatchedEntryPolicy.SUGGEST,
        description="Whether to suggest an entry for documents without a matching transaction"
    )
    unmatched_entry_confidence_factor: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Multiplier applied to extraction confidence for transaction-less entries"
    )

    # Currency used when neither the row nor the company says otherwise
    default_currency: str = Field(default="KZT", min_length=3, max_length=3)

    @property
    def supported_mime_types_list(self) -> list[str]:
        return [t.strip().lower() for t in self.supported_mime_types.split(",")]

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024


class Settings(BaseSettings):
    """Entry point to every settings section; each is built on access."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def cloudinary(self) -> CloudinarySettings:
        return CloudinarySettings()

    @property
    def mindee(self) -> MindeeSettings:
        return MindeeSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def matching(self) -> MatchingSettings:
        return MatchingSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


SECTIONS = ("cloudinary", "mindee", "google_sheets", "gemini", "matching", "app")


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings. get_settings.cache_clear() forces a reload."""
    return Settings()


def validate_all_settings() -> dict[str, Union[bool, str]]:
    """
    Report which settings sections can be loaded.

    Returns {section: loaded}, plus a `<section>_error` message for each
    section that failed.
    """
    report: dict[str, Union[bool, str]] = {}
    settings = get_settings()

    for section in SECTIONS:
        try:
            getattr(settings, section)
        except Exception as e:
            report[section] = False
            report[f"{section}_error"] = str(e)
        else:
            report[section] = True

    return report
