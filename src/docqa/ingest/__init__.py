"""Document ingestion: extraction, normalisation and coordination."""

from .coordinator import IngestionCoordinator, IngestItem, SourceDocument
from .extractors import ExtractorRegistry, guess_mime_type
from .language import LanguageDetector
from .normalization import normalize_text

__all__ = [
    "ExtractorRegistry",
    "IngestItem",
    "IngestionCoordinator",
    "LanguageDetector",
    "SourceDocument",
    "guess_mime_type",
    "normalize_text",
]
