"""Tests for extractor.py.

PDF, DOCX and XLSX inputs are real documents built in memory; OCR goes
through the ``ocr`` fixture instead of a Tesseract binary.
"""

import io
import shutil
import subprocess
import threading

import fitz
import pytest

from conftest import RecordingOCR, build_docx, build_ole, build_pdf, build_xlsx, png_bytes
from document_text.config import ExtractionConfig, OCRConfig
from document_text.extractor import DocumentTextExtractor
from document_text.models import ErrorKind, ExtractionFailure, ExtractionSuccess

PLAIN = ExtractionConfig()
WITH_IMAGES = ExtractionConfig(extract_inline_images=True)


@pytest.fixture
def extractor() -> DocumentTextExtractor:
    return DocumentTextExtractor()


class TestPdf:
    def test_extracts_page_text(self, extractor):
        result = extractor.extract(build_pdf("Quarterly report", "Second page"), PLAIN)

        assert isinstance(result, ExtractionSuccess)
        assert result.mime_type == "text/plain"
        assert "Quarterly report" in result.text
        assert result.text.index("Quarterly report") < result.text.index("Second page")

    def test_inline_images_skipped_when_disabled(self, extractor, ocr):
        result = extractor.extract(build_pdf("Body", image=png_bytes()), PLAIN)

        assert isinstance(result, ExtractionSuccess)
        assert ocr.calls == []
        assert "RECOGNIZED" not in result.text

    def test_inline_images_merged_after_page_text(self, extractor, ocr):
        result = extractor.extract(build_pdf("Body", image=png_bytes()), WITH_IMAGES)

        assert isinstance(result, ExtractionSuccess)
        assert result.text.index("Body") < result.text.index("RECOGNIZED")
        assert len(ocr.calls) == 1

    def test_every_page_image_is_ocrd(self, extractor, ocr):
        image = png_bytes()
        result = extractor.extract(build_pdf("One", "Two", image=image), WITH_IMAGES)

        assert isinstance(result, ExtractionSuccess)
        assert len(ocr.calls) == 2
        assert result.text.count("RECOGNIZED") == 2

    def test_ocr_uses_english_and_preprocessing(self, extractor, ocr):
        extractor.extract(build_pdf("Body", image=png_bytes()), WITH_IMAGES)

        call = ocr.calls[0]
        assert call["lang"] == "eng"
        assert call["mode"] == "L"
        assert "--oem 1" in call["config"]

    def test_parser_error_becomes_failure(self, extractor, monkeypatch):
        def broken_open(*args, **kwargs):
            raise RuntimeError("corrupt PDF header")

        monkeypatch.setattr(fitz, "open", broken_open)
        result = extractor.extract(b"%PDF-1.7 whatever", PLAIN)

        assert result == ExtractionFailure(ErrorKind.EXTRACTION_ERROR, "corrupt PDF header")

    def test_ocr_timeout_becomes_failure(self, monkeypatch):
        import pytesseract

        monkeypatch.setattr(
            pytesseract,
            "image_to_string",
            RecordingOCR(error=RuntimeError("Tesseract process timeout")),
        )
        extractor = DocumentTextExtractor(OCRConfig(timeout_seconds=1))
        result = extractor.extract(build_pdf("Body", image=png_bytes()), WITH_IMAGES)

        assert isinstance(result, ExtractionFailure)
        assert result.cause is ErrorKind.EXTRACTION_ERROR
        assert "Tesseract process timeout" in result.detail


class TestDocx:
    def test_paragraphs_and_tables(self, extractor):
        content = build_docx(
            "Title line",
            "Body paragraph",
            table=[["Region", "Revenue"], ["North", "10"]],
        )
        result = extractor.extract(content, PLAIN)

        assert isinstance(result, ExtractionSuccess)
        assert "Title line" in result.text
        assert "Body paragraph" in result.text
        assert "Region\tRevenue" in result.text
        assert "North\t10" in result.text

    def test_inline_image_ocr(self, extractor, ocr):
        content = build_docx("Caption", image=png_bytes())

        without = extractor.extract(content, PLAIN)
        assert ocr.calls == []

        with_images = extractor.extract(content, WITH_IMAGES)
        assert isinstance(with_images, ExtractionSuccess)
        assert "RECOGNIZED" not in without.text
        assert with_images.text.endswith("RECOGNIZED")
        assert len(ocr.calls) == 1


class TestOtherFormats:
    def test_xlsx(self, extractor):
        content = build_xlsx("Q1", [["Region", "Revenue"], ["North", 10.0], [None, None]])
        result = extractor.extract(content, PLAIN)

        assert isinstance(result, ExtractionSuccess)
        assert result.text.splitlines() == ["Q1", "Region\tRevenue", "North\t10"]

    def test_plain_text_strips_bom(self, extractor):
        result = extractor.extract("\ufeffHello wörld".encode("utf-8"), PLAIN)
        assert result == ExtractionSuccess(text="Hello wörld")

    def test_standalone_image_is_always_ocrd(self, extractor, ocr):
        result = extractor.extract(png_bytes(), PLAIN)

        assert result == ExtractionSuccess(text="RECOGNIZED")
        assert len(ocr.calls) == 1

    def test_unsupported_format(self, extractor):
        result = extractor.extract(b"\x00\x01\x02\x03", PLAIN)

        assert isinstance(result, ExtractionFailure)
        assert result.cause is ErrorKind.EXTRACTION_ERROR


class TestLegacyDoc:
    @pytest.fixture
    def only_soffice(self, monkeypatch):
        monkeypatch.setattr(
            shutil, "which", lambda name: "/usr/bin/soffice" if name == "soffice" else None
        )

    def test_converter_timeout_becomes_failure(self, only_soffice, monkeypatch):
        timeouts = []

        def hanging_run(command, **kwargs):
            timeouts.append(kwargs.get("timeout"))
            raise subprocess.TimeoutExpired(command, kwargs.get("timeout"))

        monkeypatch.setattr(subprocess, "run", hanging_run)
        extractor = DocumentTextExtractor(OCRConfig(conversion_timeout_seconds=7))
        result = extractor.extract(build_ole("WordDocument"), PLAIN)

        assert isinstance(result, ExtractionFailure)
        assert result.cause is ErrorKind.EXTRACTION_ERROR
        assert "timed out after 7s" in result.detail
        assert timeouts == [7]

    def test_cancelled_before_converter_launch(self, extractor, monkeypatch):
        event = threading.Event()
        launched = []

        def which_then_cancel(name):
            event.set()
            return "/usr/bin/soffice" if name == "soffice" else None

        monkeypatch.setattr(shutil, "which", which_then_cancel)
        monkeypatch.setattr(subprocess, "run", lambda *a, **kw: launched.append(a))
        result = extractor.extract(build_ole("WordDocument"), PLAIN, cancel_event=event)

        assert result == ExtractionFailure(ErrorKind.EXTRACTION_ERROR, "Extraction cancelled")
        assert launched == []


class TestResources:
    def test_stream_is_closed(self, extractor):
        stream = io.BytesIO(b"plain text")
        extractor.extract(stream, PLAIN)
        assert stream.closed

    def test_stream_is_closed_on_failure(self, extractor):
        stream = io.BytesIO(b"\x00\xff")
        result = extractor.extract(stream, PLAIN)
        assert isinstance(result, ExtractionFailure)
        assert stream.closed

    def test_cancelled_before_start(self, extractor):
        event = threading.Event()
        event.set()

        result = extractor.extract(b"plain text", PLAIN, cancel_event=event)

        assert result == ExtractionFailure(ErrorKind.EXTRACTION_ERROR, "Extraction cancelled")

    def test_cancelled_between_pages(self, extractor, monkeypatch):
        event = threading.Event()
        original = fitz.Page.get_text

        def get_text_then_cancel(page, *args, **kwargs):
            event.set()
            return original(page, *args, **kwargs)

        monkeypatch.setattr(fitz.Page, "get_text", get_text_then_cancel)
        result = extractor.extract(build_pdf("One", "Two"), PLAIN, cancel_event=event)

        assert result == ExtractionFailure(ErrorKind.EXTRACTION_ERROR, "Extraction cancelled")
