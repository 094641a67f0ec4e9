"""Text normalisation applied to every extracted document."""
from __future__ import annotations

import re
import unicodedata

_HORIZONTAL_SPACE_RE = re.compile(r"[ \t\f\v\u00a0]+")
_TRAILING_SPACE_RE = re.compile(r" +\n")
_LEADING_SPACE_RE = re.compile(r"\n +")
_MULTIPLE_NEWLINES_RE = re.compile(r"\n{3,}")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0e-\x1f\x7f]")


def normalize_text(text: str) -> str:
    """Return *text* in NFC form with unified newlines and collapsed spaces.

    Paragraph breaks survive as a single blank line; runs of horizontal
    whitespace become one space and lines lose their surrounding spaces.
    """

    if not text:
        return ""
    normalized = unicodedata.normalize("NFC", text)
    normalized = normalized.replace("\r\n", "\n").replace("\r", "\n")
    normalized = _CONTROL_CHARS_RE.sub("", normalized)
    normalized = _HORIZONTAL_SPACE_RE.sub(" ", normalized)
    normalized = _TRAILING_SPACE_RE.sub("\n", normalized)
    normalized = _LEADING_SPACE_RE.sub("\n", normalized)
    normalized = _MULTIPLE_NEWLINES_RE.sub("\n\n", normalized)
    return normalized.strip()


__all__ = ["normalize_text"]
