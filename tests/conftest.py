"""Shared fixtures: stub extractors, sample records and in-memory documents.

Documents are generated with PyMuPDF, python-docx and openpyxl. Tesseract is
never invoked; tests that reach OCR patch ``pytesseract.image_to_string``.
"""

from __future__ import annotations

import io
import struct
import threading
from typing import Optional

import fitz
import openpyxl
import pytest
from docx import Document
from PIL import Image

from document_text.models import ExtractionResult, ExtractionSuccess, InputRecord


class StubExtractor:
    """Extractor double returning a fixed result or raising a fixed error."""

    def __init__(
        self,
        result: Optional[ExtractionResult] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        self.result = result or ExtractionSuccess(text="")
        self.error = error
        self.calls: list[tuple[bytes, object]] = []
        self.streams = []

    def extract(self, content, config, cancel_event: Optional[threading.Event] = None):
        self.streams.append(content)
        self.calls.append((content.read(), config))
        if self.error is not None:
            raise self.error
        return self.result


class RecordingOCR:
    """Stand-in for pytesseract.image_to_string."""

    def __init__(self, text: str = "RECOGNIZED", error: Optional[Exception] = None) -> None:
        self.text = text
        self.error = error
        self.calls: list[dict] = []
        self._lock = threading.Lock()

    def __call__(self, image, lang=None, config="", timeout=0, **kwargs):
        with self._lock:
            self.calls.append(
                {"mode": image.mode, "size": image.size, "lang": lang, "config": config}
            )
        if self.error is not None:
            raise self.error
        return f"{self.text}\n"


def png_bytes(width: int = 120, height: int = 40, color: str = "white") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def build_pdf(*pages: str, image: Optional[bytes] = None) -> bytes:
    document = fitz.open()
    for text in pages:
        page = document.new_page()
        page.insert_text((72, 72), text)
        if image is not None:
            page.insert_image(fitz.Rect(72, 100, 272, 200), stream=image)
    data = document.tobytes()
    document.close()
    return data


def build_docx(*paragraphs: str, table=None, image: Optional[bytes] = None) -> bytes:
    document = Document()
    for text in paragraphs:
        document.add_paragraph(text)
    if table:
        grid = document.add_table(rows=len(table), cols=len(table[0]))
        for r, row in enumerate(table):
            for c, value in enumerate(row):
                grid.cell(r, c).text = value
    if image is not None:
        document.add_picture(io.BytesIO(image))
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def build_xlsx(title: str, rows) -> bytes:
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = title
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


OLE_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
OLE_FREE = 0xFFFFFFFF


def _ole_entry(name: str, entry_type: int, right: int = OLE_FREE, child: int = OLE_FREE) -> bytes:
    encoded = (name + "\x00").encode("utf-16-le")
    return (
        encoded.ljust(64, b"\x00")
        + struct.pack("<HBB", len(encoded), entry_type, 1)
        + struct.pack("<III", OLE_FREE, right, child)
    ).ljust(128, b"\x00")


def build_ole(*streams: str, storages: Optional[dict] = None, trailing: bytes = b"") -> bytes:
    """Compound file with root-level ``streams`` and nested ``storages``.

    Stream bodies are empty; ``trailing`` is appended after the directory
    and FAT sectors to stand in for stream data.
    """
    storages = storages or {}
    top = [(name, 2) for name in streams] + [(name, 1) for name in storages]
    entries = [None] + [None] * len(top)
    for index, (name, entry_type) in enumerate(top, start=1):
        right = index + 1 if index < len(top) else OLE_FREE
        child = OLE_FREE
        if entry_type == 1:
            nested = storages[name]
            child = len(entries) if nested else OLE_FREE
            for offset, nested_name in enumerate(nested):
                sibling = len(entries) + 1 if offset < len(nested) - 1 else OLE_FREE
                entries.append(_ole_entry(nested_name, 2, right=sibling))
        entries[index] = _ole_entry(name, entry_type, right=right, child=child)
    entries[0] = _ole_entry("Root Entry", 5, child=1 if top else OLE_FREE)

    directory = b"".join(entries)
    directory += b"\x00" * (-len(directory) % 512)
    dir_sectors = len(directory) // 512
    fat = list(range(1, dir_sectors)) + [0xFFFFFFFE, 0xFFFFFFFD]
    fat_sector = struct.pack(f"<{len(fat)}I", *fat).ljust(512, b"\xff")

    header = bytearray(512)
    header[:8] = OLE_SIGNATURE
    struct.pack_into("<HHHHH", header, 24, 0x3E, 3, 0xFFFE, 9, 6)
    struct.pack_into("<III", header, 44, 1, 0, 0)
    struct.pack_into("<IIIII", header, 56, 4096, 0xFFFFFFFE, 0, 0xFFFFFFFE, 0)
    struct.pack_into("<109I", header, 76, dir_sectors, *([OLE_FREE] * 108))
    return bytes(header) + directory + fat_sector + trailing


@pytest.fixture
def report_record() -> InputRecord:
    return InputRecord(
        content=b"%PDF-1.7 fake body",
        attributes={"uuid": "rec-001", "filename": "report.pdf", "mime.type": "application/pdf"},
    )


@pytest.fixture
def ocr(monkeypatch) -> RecordingOCR:
    import pytesseract

    recorder = RecordingOCR()
    monkeypatch.setattr(pytesseract, "image_to_string", recorder)
    return recorder
