"""Extraction adapters turning raw document bytes into text.

Adapters are looked up by mime type in an :class:`ExtractorRegistry`. Every
adapter returns raw text; the registry normalises it before handing it to
the ingestion coordinator. Parser errors and unknown mime types surface as
:class:`~docqa.errors.ExtractionFailed`.
"""
from __future__ import annotations

import codecs
import csv
import io
import json
import logging
import mimetypes
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol

from docqa.errors import ExtractionFailed

from .normalization import normalize_text

LOGGER = logging.getLogger(__name__)

DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
XLSX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

_EXTRA_SUFFIXES = {
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".csv": "text/csv",
    ".json": "application/json",
    ".docx": DOCX_MIME_TYPE,
    ".xlsx": XLSX_MIME_TYPE,
}


class Extractor(Protocol):
    mime_types: tuple[str, ...]

    def extract(self, data: bytes) -> str:
        ...


def _decode(data: bytes) -> str:
    if data.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        try:
            return data.decode("utf-16")
        except UnicodeDecodeError as error:
            raise ExtractionFailed(f"Invalid UTF-16 text: {error}", cause=error) from error
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


class PlainTextExtractor:
    """Decode plain text and markdown files."""

    mime_types = ("text/plain", "text/markdown", "text/x-markdown")

    def extract(self, data: bytes) -> str:
        return _decode(data)


class CsvExtractor:
    """Render each CSV row as a ``|``-separated line."""

    mime_types = ("text/csv",)

    def extract(self, data: bytes) -> str:
        try:
            rows = list(csv.reader(io.StringIO(_decode(data))))
        except csv.Error as error:
            raise ExtractionFailed(f"CSV parsing failed: {error}", mime_type="text/csv", cause=error) from error
        lines = [" | ".join(cell.strip() for cell in row) for row in rows]
        return "\n".join(line for line in lines if line.replace("|", "").strip())


class JsonExtractor:
    """Flatten a JSON document into ``path: value`` lines."""

    mime_types = ("application/json",)

    def extract(self, data: bytes) -> str:
        try:
            payload = json.loads(_decode(data))
        except ValueError as error:
            raise ExtractionFailed(
                f"JSON parsing failed: {error}", mime_type="application/json", cause=error
            ) from error
        return "\n".join(self._flatten(payload, ""))

    def _flatten(self, value: object, prefix: str) -> Iterable[str]:
        if isinstance(value, dict):
            for key, item in value.items():
                yield from self._flatten(item, f"{prefix}.{key}" if prefix else str(key))
        elif isinstance(value, list):
            for index, item in enumerate(value):
                yield from self._flatten(item, f"{prefix}[{index}]")
        elif value is None:
            return
        elif prefix:
            yield f"{prefix}: {value}"
        else:
            yield str(value)


class PdfExtractor:
    """Extract the text layer of a PDF page by page with pypdf."""

    mime_types = ("application/pdf",)

    def extract(self, data: bytes) -> str:
        from pypdf import PdfReader
        from pypdf.errors import PyPdfError

        try:
            reader = PdfReader(io.BytesIO(data))
            pages = list(reader.pages)
        except (PyPdfError, ValueError, OSError) as error:
            raise ExtractionFailed(
                f"PDF parsing failed: {error}", mime_type="application/pdf", cause=error
            ) from error

        text_parts: List[str] = []
        for page_number, page in enumerate(pages, start=1):
            try:
                text = page.extract_text() or ""
            except (PyPdfError, ValueError, KeyError) as error:
                LOGGER.warning("Failed to extract text from PDF page %s: %s", page_number, error)
                continue
            if text.strip():
                text_parts.append(text)
        return "\n\n".join(text_parts)


class DocxExtractor:
    """Extract paragraphs and table rows from Word documents."""

    mime_types = (DOCX_MIME_TYPE,)

    def extract(self, data: bytes) -> str:
        from docx import Document as load_docx
        from docx.opc.exceptions import PackageNotFoundError

        try:
            document = load_docx(io.BytesIO(data))
        except (PackageNotFoundError, ValueError, KeyError) as error:
            raise ExtractionFailed(
                f"DOCX parsing failed: {error}", mime_type=DOCX_MIME_TYPE, cause=error
            ) from error

        text_parts = [paragraph.text for paragraph in document.paragraphs if paragraph.text.strip()]
        for table in document.tables:
            for row in table.rows:
                row_text = " | ".join(cell.text.strip() for cell in row.cells)
                if row_text.replace("|", "").strip():
                    text_parts.append(row_text)
        return "\n\n".join(text_parts)


class XlsxExtractor:
    """Extract worksheet rows from Excel workbooks with openpyxl."""

    mime_types = (XLSX_MIME_TYPE,)

    def extract(self, data: bytes) -> str:
        from openpyxl import load_workbook
        from openpyxl.utils.exceptions import InvalidFileException

        try:
            workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        except (InvalidFileException, ValueError, KeyError, OSError) as error:
            raise ExtractionFailed(
                f"XLSX parsing failed: {error}", mime_type=XLSX_MIME_TYPE, cause=error
            ) from error

        sections: List[str] = []
        try:
            for sheet in workbook.worksheets:
                lines = []
                for row in sheet.iter_rows(values_only=True):
                    cells = ["" if value is None else str(value).strip() for value in row]
                    if any(cells):
                        lines.append(" | ".join(cells))
                if lines:
                    sections.append(f"# {sheet.title}\n" + "\n".join(lines))
        finally:
            workbook.close()
        return "\n\n".join(sections)


class ExtractorRegistry:
    """Lookup table from mime type to extraction adapter."""

    def __init__(self, extractors: Optional[Iterable[Extractor]] = None) -> None:
        self._by_mime: Dict[str, Extractor] = {}
        for extractor in extractors if extractors is not None else default_extractors():
            self.register(extractor)

    def register(self, extractor: Extractor, mime_types: Optional[Iterable[str]] = None) -> None:
        for mime_type in mime_types or extractor.mime_types:
            self._by_mime[_canonical(mime_type)] = extractor

    def supports(self, mime_type: str) -> bool:
        return _canonical(mime_type) in self._by_mime

    def supported_types(self) -> List[str]:
        return sorted(self._by_mime)

    def extract(self, data: bytes, mime_type: str) -> str:
        """Return normalised text extracted from *data*."""

        extractor = self._by_mime.get(_canonical(mime_type))
        if extractor is None:
            raise ExtractionFailed(f"Unsupported mime type: {mime_type}", mime_type=mime_type)
        try:
            text = extractor.extract(data)
        except ExtractionFailed:
            raise
        except Exception as error:
            raise ExtractionFailed(
                f"Extraction failed for {mime_type}: {error}", mime_type=mime_type, cause=error
            ) from error
        return normalize_text(text)


def _canonical(mime_type: str) -> str:
    return mime_type.split(";", 1)[0].strip().lower()


def default_extractors() -> List[Extractor]:
    return [
        PlainTextExtractor(),
        CsvExtractor(),
        JsonExtractor(),
        PdfExtractor(),
        DocxExtractor(),
        XlsxExtractor(),
    ]


def guess_mime_type(file_name: str, default: str = "text/plain") -> str:
    """Guess a mime type from a file name, falling back to *default*."""

    suffix = Path(file_name).suffix.lower()
    if suffix in _EXTRA_SUFFIXES:
        return _EXTRA_SUFFIXES[suffix]
    guessed, _ = mimetypes.guess_type(file_name)
    return guessed or default


__all__ = [
    "CsvExtractor",
    "DOCX_MIME_TYPE",
    "DocxExtractor",
    "ExtractorRegistry",
    "JsonExtractor",
    "PdfExtractor",
    "PlainTextExtractor",
    "XLSX_MIME_TYPE",
    "XlsxExtractor",
    "default_extractors",
    "guess_mime_type",
]
