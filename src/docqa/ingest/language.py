"""Language detection for extracted documents."""
from __future__ import annotations

import logging
from typing import Optional

from langdetect import DetectorFactory, LangDetectException, detect

LOGGER = logging.getLogger(__name__)
DetectorFactory.seed = 0

# langdetect only needs a sample; long documents are cut to keep detection fast.
_SAMPLE_CHARS = 5000


class LanguageDetector:
    """Thin wrapper around langdetect returning ``None`` when undecidable."""

    def __init__(self, sample_chars: int = _SAMPLE_CHARS) -> None:
        self.sample_chars = sample_chars

    def detect(self, text: str) -> Optional[str]:
        cleaned = text.strip()[: self.sample_chars]
        if not cleaned:
            return None
        try:
            language = detect(cleaned)
        except LangDetectException:
            LOGGER.info("Unable to determine language for text of length %s", len(text))
            return None
        LOGGER.debug("Detected language: %s", language)
        return language


__all__ = ["LanguageDetector"]
