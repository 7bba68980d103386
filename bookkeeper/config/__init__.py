"""Configuration package."""

from bookkeeper.config.settings import (
    AppSettings,
    CloudinarySettings,
    GeminiSettings,
    GoogleSheetsSettings,
    MatchingSettings,
    MindeeSettings,
    Settings,
    UnmatchedEntryPolicy,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "CloudinarySettings",
    "GeminiSettings",
    "GoogleSheetsSettings",
    "MatchingSettings",
    "MindeeSettings",
    "Settings",
    "UnmatchedEntryPolicy",
    "get_settings",
    "validate_all_settings",
]
