"""Document extraction services package."""

from bookkeeper.services.ocr.mindee_service import (
    ExtractionFailure,
    MindeeExtractionService,
    OCRError,
    parse_prediction,
)

__all__ = [
    "ExtractionFailure",
    "MindeeExtractionService",
    "OCRError",
    "parse_prediction",
]
