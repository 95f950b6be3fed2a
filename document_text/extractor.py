"""Format-detecting text extractor built on PyMuPDF, python-docx and Tesseract."""

import io
import shutil
import subprocess
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Union

import fitz  # PyMuPDF
import openpyxl
import pytesseract
import xlrd
from docx import Document
from docx.opc.constants import RELATIONSHIP_TYPE as RT
from PIL import Image, ImageEnhance, ImageOps, ImageSequence

from document_text import detector as formats
from document_text.config import ExtractionConfig, OCRConfig
from document_text.detector import FormatDetector
from document_text.exceptions import ExtractionCancelledError, ExtractionError
from document_text.logger import Timer, get_logger
from document_text.models import (
    ErrorKind,
    ExtractionFailure,
    ExtractionResult,
    ExtractionSuccess,
)

logger = get_logger(__name__)

Content = Union[bytes, bytearray, BinaryIO]


class DocumentTextExtractor:
    """Extracts plain text from binary documents.

    The format is detected from the content itself. PDFs are read with
    PyMuPDF, DOCX with python-docx, XLSX with openpyxl, XLS with xlrd and
    legacy DOC through ``textutil`` or LibreOffice. Images and, on request,
    images embedded in PDF and DOCX bodies go through Tesseract OCR.

    An instance is not safe for concurrent use; see
    :class:`document_text.pool.ExtractorPool`.
    """

    def __init__(
        self,
        ocr_config: Optional[OCRConfig] = None,
        detector: Optional[FormatDetector] = None,
    ):
        """Initialize extractor.

        Args:
            ocr_config: OCR configuration. If None, uses defaults.
            detector: Format detector. If None, creates default.
        """
        self.ocr_config = ocr_config or OCRConfig()
        self.detector = detector or FormatDetector()

        if self.ocr_config.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self.ocr_config.tesseract_cmd

        logger.debug(
            "Initializing DocumentTextExtractor",
            extra_data={
                "tesseract_cmd": self.ocr_config.tesseract_cmd,
                "languages": self.ocr_config.languages,
                "preprocessing": self.ocr_config.enable_image_preprocessing,
            },
        )

    def extract(
        self,
        content: Content,
        config: ExtractionConfig,
        cancel_event: Optional[threading.Event] = None,
    ) -> ExtractionResult:
        """Extract text from a document.

        Never raises for document problems: parse errors, OCR failures and
        timeouts, unsupported formats and cancellation all come back as an
        :class:`ExtractionFailure`.

        Args:
            content: Raw bytes or a binary stream. Streams are always closed.
            config: Extraction settings for this call
            cancel_event: Set by the host to abort between pages and images

        Returns:
            ExtractionSuccess with the text, or ExtractionFailure
        """
        mime_type = None
        try:
            file_bytes = self._read(content)
            mime_type = self.detector.detect(file_bytes)

            logger.debug(
                "Starting document extraction",
                extra_data={
                    "mime_type": mime_type,
                    "file_size_bytes": len(file_bytes),
                    "extract_inline_images": config.extract_inline_images,
                },
            )

            with Timer("extraction") as timer:
                text = self._dispatch(mime_type, file_bytes, config, cancel_event)

            if not text:
                logger.warning(
                    "No text content extracted from document",
                    extra_data={"mime_type": mime_type, "file_size_bytes": len(file_bytes)},
                )

            logger.info(
                "Successfully extracted text from document",
                extra_data={
                    "mime_type": mime_type,
                    "character_count": len(text),
                    "extraction_time_ms": timer.get_elapsed_ms(),
                },
            )
            return ExtractionSuccess(text=text)

        except ExtractionCancelledError as exc:
            logger.warning("Document extraction cancelled", extra_data={"mime_type": mime_type})
            return ExtractionFailure(ErrorKind.EXTRACTION_ERROR, str(exc))

        except Exception as exc:
            logger.error(
                "Document extraction failed",
                extra_data={
                    "mime_type": mime_type,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
                exc_info=True,
            )
            return ExtractionFailure(
                ErrorKind.EXTRACTION_ERROR, str(exc) or type(exc).__name__
            )

    @staticmethod
    def _read(content: Content) -> bytes:
        if isinstance(content, (bytes, bytearray)):
            return bytes(content)
        with content as stream:
            return stream.read()

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise ExtractionCancelledError("Extraction cancelled")

    def _dispatch(
        self,
        mime_type: str,
        file_bytes: bytes,
        config: ExtractionConfig,
        cancel_event: Optional[threading.Event],
    ) -> str:
        self._check_cancelled(cancel_event)
        if mime_type == formats.PDF:
            return self._extract_pdf(file_bytes, config, cancel_event)
        if mime_type == formats.DOCX:
            return self._extract_docx(file_bytes, config, cancel_event)
        if mime_type == formats.XLSX:
            return self._extract_xlsx(file_bytes, cancel_event)
        if mime_type == formats.XLS:
            return self._extract_xls(file_bytes, cancel_event)
        if mime_type == formats.DOC:
            return self._extract_doc(file_bytes, cancel_event)
        if mime_type in formats.IMAGE_TYPES:
            return self._extract_image(file_bytes, cancel_event)
        if mime_type == formats.TEXT:
            return file_bytes.decode("utf-8-sig")
        raise ExtractionError(f"No extractor for mime type: {mime_type}")

    def _extract_pdf(
        self,
        file_bytes: bytes,
        config: ExtractionConfig,
        cancel_event: Optional[threading.Event],
    ) -> str:
        """Extract page text, followed per page by OCR text of its images."""
        with fitz.open(stream=file_bytes, filetype="pdf") as document:
            if document.needs_pass:
                raise ExtractionError("PDF is password protected")

            parts: list[str] = []
            ocr_image_count = 0
            for page in document:
                self._check_cancelled(cancel_event)

                page_text = page.get_text("text").strip()
                if page_text:
                    parts.append(page_text)

                if config.extract_inline_images:
                    images = list(self._pdf_page_images(document, page))
                    ocr_image_count += len(images)
                    parts.extend(t for t in self._ocr_images(images, cancel_event) if t)

            logger.debug(
                "PDF extraction completed",
                extra_data={
                    "page_count": document.page_count,
                    "ocr_image_count": ocr_image_count,
                },
            )
            return "\n\n".join(parts)

    @staticmethod
    def _pdf_page_images(document: "fitz.Document", page: "fitz.Page") -> Iterator[Image.Image]:
        """Yield every image placed on the page, repeated placements included."""
        for image_info in page.get_images(full=True):
            xref = image_info[0]
            pixmap = fitz.Pixmap(document, xref)
            if pixmap.n - pixmap.alpha >= 4:  # CMYK
                pixmap = fitz.Pixmap(fitz.csRGB, pixmap)
            if pixmap.alpha:
                pixmap = fitz.Pixmap(pixmap, 0)
            yield Image.open(io.BytesIO(pixmap.tobytes("png")))

    def _extract_docx(
        self,
        file_bytes: bytes,
        config: ExtractionConfig,
        cancel_event: Optional[threading.Event],
    ) -> str:
        with Timer("docx_extraction") as timer:
            document = Document(io.BytesIO(file_bytes))

            parts = [p.text.strip() for p in document.paragraphs if p.text.strip()]
            paragraph_count = len(parts)

            for table in document.tables:
                rows = ["\t".join(cell.text.strip() for cell in row.cells) for row in table.rows]
                if rows:
                    parts.append("\n".join(rows))

            image_count = 0
            if config.extract_inline_images:
                images = list(self._docx_images(document))
                image_count = len(images)
                parts.extend(t for t in self._ocr_images(images, cancel_event) if t)

            result = "\n\n".join(parts)

        logger.debug(
            "DOCX extraction completed",
            extra_data={
                "paragraph_count": paragraph_count,
                "table_count": len(document.tables),
                "ocr_image_count": image_count,
                "characters_extracted": len(result),
                "extraction_time_ms": timer.get_elapsed_ms(),
            },
        )
        return result

    @staticmethod
    def _docx_images(document) -> Iterator[Image.Image]:
        for rel in document.part.rels.values():
            if rel.is_external or rel.reltype != RT.IMAGE:
                continue
            yield Image.open(io.BytesIO(rel.target_part.blob))

    def _extract_xlsx(self, file_bytes: bytes, cancel_event: Optional[threading.Event]) -> str:
        workbook = openpyxl.load_workbook(io.BytesIO(file_bytes), read_only=True, data_only=True)
        try:
            parts: list[str] = []
            for sheet in workbook.worksheets:
                self._check_cancelled(cancel_event)
                parts.append(sheet.title)
                for row in sheet.iter_rows(values_only=True):
                    cells = [_cell_text(value) for value in row]
                    if any(cells):
                        parts.append("\t".join(cells))
            return "\n".join(parts).strip()
        finally:
            workbook.close()

    def _extract_xls(self, file_bytes: bytes, cancel_event: Optional[threading.Event]) -> str:
        workbook = xlrd.open_workbook(file_contents=file_bytes, on_demand=True)
        try:
            parts: list[str] = []
            for sheet in workbook.sheets():
                self._check_cancelled(cancel_event)
                parts.append(sheet.name)
                for row_idx in range(sheet.nrows):
                    cells = [_cell_text(value) for value in sheet.row_values(row_idx)]
                    if any(cells):
                        parts.append("\t".join(cells))
            return "\n".join(parts).strip()
        finally:
            workbook.release_resources()

    def _extract_doc(self, file_bytes: bytes, cancel_event: Optional[threading.Event]) -> str:
        """Extract text from legacy .doc using system converters if available."""
        with tempfile.TemporaryDirectory() as tmp_dir:
            tmp_path = Path(tmp_dir) / "document.doc"
            tmp_path.write_bytes(file_bytes)

            # Prefer macOS textutil if present
            if shutil.which("textutil"):
                self._check_cancelled(cancel_event)
                result = self._run_converter(
                    ["textutil", "-convert", "txt", str(tmp_path), "-stdout"]
                )
                if result.returncode == 0 and result.stdout.strip():
                    return result.stdout.strip()

            soffice = shutil.which("soffice") or shutil.which("libreoffice")
            if soffice:
                self._check_cancelled(cancel_event)
                out_dir = Path(tmp_dir) / "out"
                conversion = self._run_converter(
                    [
                        soffice,
                        "--headless",
                        "--convert-to",
                        "txt:Text",
                        str(tmp_path),
                        "--outdir",
                        str(out_dir),
                    ]
                )
                out_path = out_dir / "document.txt"
                if conversion.returncode == 0 and out_path.exists():
                    return out_path.read_text(encoding="utf-8", errors="ignore").strip()

        raise ExtractionError(
            "Failed to extract .doc file. Install textutil (macOS) or LibreOffice."
        )

    def _run_converter(self, command: list[str]) -> subprocess.CompletedProcess:
        timeout = self.ocr_config.conversion_timeout_seconds or None
        try:
            return subprocess.run(command, capture_output=True, text=True, timeout=timeout)
        except subprocess.TimeoutExpired as exc:
            raise ExtractionError(
                f"Document conversion timed out after {exc.timeout}s"
            ) from exc

    def _extract_image(self, file_bytes: bytes, cancel_event: Optional[threading.Event]) -> str:
        """OCR a standalone image; every frame of a multi-page TIFF or GIF."""
        with Image.open(io.BytesIO(file_bytes)) as image:
            logger.debug(
                "Starting OCR on image",
                extra_data={
                    "image_format": image.format,
                    "image_dimensions": f"{image.size[0]}x{image.size[1]}",
                    "frame_count": getattr(image, "n_frames", 1),
                },
            )
            frames = [frame.copy() for frame in ImageSequence.Iterator(image)]
        texts = [self._ocr_image(frame, cancel_event) for frame in frames]
        return "\n\n".join(t for t in texts if t)

    def _ocr_images(
        self, images: list[Image.Image], cancel_event: Optional[threading.Event]
    ) -> list[str]:
        """OCR images in parallel, returning texts in input order."""
        if not images:
            return []
        if len(images) == 1 or self.ocr_config.max_workers <= 1:
            return [self._ocr_image(image, cancel_event) for image in images]

        results: dict[int, str] = {}
        with ThreadPoolExecutor(max_workers=self.ocr_config.max_workers) as executor:
            future_to_index = {
                executor.submit(self._ocr_image, image, cancel_event): index
                for index, image in enumerate(images)
            }
            for future in as_completed(future_to_index):
                results[future_to_index[future]] = future.result()
        return [results[i] for i in range(len(images))]

    def _ocr_image(self, image: Image.Image, cancel_event: Optional[threading.Event]) -> str:
        self._check_cancelled(cancel_event)

        if self.ocr_config.enable_image_preprocessing:
            image = self._preprocess(image)

        with Timer("image_ocr") as timer:
            try:
                text = pytesseract.image_to_string(
                    image,
                    lang=self.ocr_config.languages,
                    config=self._tesseract_flags(),
                    timeout=self.ocr_config.timeout_seconds,
                )
            except RuntimeError as exc:
                # pytesseract reports timeouts as a bare RuntimeError
                raise ExtractionError(f"OCR failed: {exc}") from exc

        result = text.strip()
        logger.debug(
            "Image OCR completed",
            extra_data={
                "image_dimensions": f"{image.size[0]}x{image.size[1]}",
                "characters_extracted": len(result),
                "ocr_time_ms": timer.get_elapsed_ms(),
            },
        )
        return result

    def _preprocess(self, image: Image.Image) -> Image.Image:
        """Grayscale and contrast boost ahead of OCR."""
        gray = ImageOps.grayscale(image)
        if self.ocr_config.contrast_enhancement == 1.0:
            return gray
        return ImageEnhance.Contrast(gray).enhance(self.ocr_config.contrast_enhancement)

    def _tesseract_flags(self) -> str:
        flags = [f"--psm {self.ocr_config.psm_mode}"]
        if self.ocr_config.use_oem_1:
            flags.append("--oem 1")
        if self.ocr_config.tessdata_prefix:
            flags.append(f'--tessdata-dir "{self.ocr_config.tessdata_prefix}"')
        return " ".join(flags)


def _cell_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()
