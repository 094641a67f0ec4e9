from __future__ import annotations

import io
import json

import pytest

from docqa.errors import ExtractionFailed
from docqa.ingest.extractors import (
    DOCX_MIME_TYPE,
    XLSX_MIME_TYPE,
    ExtractorRegistry,
    PlainTextExtractor,
    guess_mime_type,
)
from docqa.ingest.normalization import normalize_text


def test_plain_text_is_decoded_and_normalised() -> None:
    registry = ExtractorRegistry()

    text = registry.extract("Line one   with  spaces\r\n\r\n\r\n\r\nLine two\t\tend  ".encode("utf-8"), "text/plain")

    assert text == "Line one with spaces\n\nLine two end"


def test_mime_type_parameters_are_ignored() -> None:
    registry = ExtractorRegistry()

    assert registry.extract(b"hello", "text/plain; charset=utf-8") == "hello"


def test_unknown_mime_type_raises_extraction_failed() -> None:
    registry = ExtractorRegistry()

    with pytest.raises(ExtractionFailed) as excinfo:
        registry.extract(b"data", "application/x-unknown")
    assert excinfo.value.mime_type == "application/x-unknown"


def test_csv_rows_become_lines() -> None:
    registry = ExtractorRegistry()

    text = registry.extract(b"name,amount\nwidget,3\n,\n", "text/csv")

    assert text == "name | amount\nwidget | 3"


def test_json_is_flattened_to_paths() -> None:
    registry = ExtractorRegistry()
    payload = {"order": {"id": 7, "items": [{"sku": "A1"}, {"sku": "B2"}]}, "note": None}

    text = registry.extract(json.dumps(payload).encode("utf-8"), "application/json")

    assert text.splitlines() == ["order.id: 7", "order.items[0].sku: A1", "order.items[1].sku: B2"]


def test_invalid_json_raises_extraction_failed() -> None:
    with pytest.raises(ExtractionFailed):
        ExtractorRegistry().extract(b"{not json", "application/json")


def test_corrupt_pdf_raises_extraction_failed() -> None:
    with pytest.raises(ExtractionFailed):
        ExtractorRegistry().extract(b"definitely not a pdf", "application/pdf")


def test_docx_paragraphs_and_tables_are_extracted() -> None:
    docx = pytest.importorskip("docx")
    document = docx.Document()
    document.add_paragraph("Warranty terms")
    document.add_paragraph("The warranty lasts two years.")
    table = document.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "Term"
    table.rows[0].cells[1].text = "24 months"
    buffer = io.BytesIO()
    document.save(buffer)

    text = ExtractorRegistry().extract(buffer.getvalue(), DOCX_MIME_TYPE)

    assert "Warranty terms" in text
    assert "The warranty lasts two years." in text
    assert "Term | 24 months" in text


def test_corrupt_docx_raises_extraction_failed() -> None:
    with pytest.raises(ExtractionFailed):
        ExtractorRegistry().extract(b"not a zip archive", DOCX_MIME_TYPE)


def test_xlsx_rows_are_extracted_per_sheet() -> None:
    openpyxl = pytest.importorskip("openpyxl")
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = "Prices"
    sheet.append(["item", "price"])
    sheet.append(["widget", 4.5])
    buffer = io.BytesIO()
    workbook.save(buffer)

    text = ExtractorRegistry().extract(buffer.getvalue(), XLSX_MIME_TYPE)

    assert text == "# Prices\nitem | price\nwidget | 4.5"


def test_custom_registry_only_knows_registered_types() -> None:
    registry = ExtractorRegistry([PlainTextExtractor()])

    assert registry.supports("text/markdown")
    assert not registry.supports("application/pdf")


@pytest.mark.parametrize(
    "file_name, expected",
    [
        ("notes.txt", "text/plain"),
        ("README.md", "text/markdown"),
        ("report.pdf", "application/pdf"),
        ("contract.docx", DOCX_MIME_TYPE),
        ("sheet.xlsx", XLSX_MIME_TYPE),
        ("data.csv", "text/csv"),
        ("no_extension", "text/plain"),
    ],
)
def test_guess_mime_type(file_name: str, expected: str) -> None:
    assert guess_mime_type(file_name) == expected


def test_normalize_text_applies_nfc_and_collapses_whitespace() -> None:
    decomposed = "cafe\u0301   menu\r\n  item"

    assert normalize_text(decomposed) == "caf\u00e9 menu\nitem"
    assert normalize_text("") == ""


def test_non_utf8_text_falls_back_to_latin1() -> None:
    registry = ExtractorRegistry()

    assert registry.extract("café crème".encode("latin-1"), "text/plain") == "café crème"


def test_utf16_text_is_decoded_when_marked_with_bom() -> None:
    registry = ExtractorRegistry()

    assert registry.extract("naïve résumé".encode("utf-16"), "text/plain") == "naïve résumé"
