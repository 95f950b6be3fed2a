"""High-level API: pull a record, extract it, route it."""

from pathlib import Path
from typing import Mapping, Optional, Protocol

from document_text.config import ExtractionConfig, OCRConfig
from document_text.controller import ExtractionController
from document_text.extractor import DocumentTextExtractor
from document_text.logger import get_logger
from document_text.models import InputRecord, RecordState, RoutingDecision
from document_text.routing import RoutingSink

logger = get_logger(__name__)


class RecordSource(Protocol):
    def get(self) -> Optional[InputRecord]:
        """Return the next record, or None when there is nothing to do."""
        ...


def process_next(
    source: RecordSource,
    sink: RoutingSink,
    config: ExtractionConfig,
    controller: Optional[ExtractionController] = None,
) -> Optional[RoutingDecision]:
    """Take one record from ``source``, extract it and deliver the result.

    Returns:
        The delivered decision, or None if the source had no record
    """
    record = source.get()
    if record is None:
        return None

    controller = controller or ExtractionController()
    decision = controller.process(record, config)
    sink.deliver(decision, record)

    logger.debug(
        "Record routed",
        extra_data={
            "record_id": record.record_id,
            "outcome": decision.outcome.value,
            "state": RecordState.ROUTED.value,
        },
    )
    return decision


def extract_document_text(
    file_path: Optional[str] = None,
    file_bytes: Optional[bytes] = None,
    attributes: Optional[Mapping[str, str]] = None,
    config: Optional[ExtractionConfig] = None,
    ocr_config: Optional[OCRConfig] = None,
) -> RoutingDecision:
    """Extract the text of a single document.

    Accepts either a file path or raw bytes. Extraction problems do not
    raise; they come back as a failed decision.

    Args:
        file_path: Path to document file (alternative to file_bytes)
        file_bytes: Raw document bytes (alternative to file_path)
        attributes: Record attributes to carry onto the text record
        config: Extraction settings (defaults: unlimited length, no inline OCR)
        ocr_config: OCR configuration (optional, uses defaults if not provided)

    Returns:
        RoutingDecision; on success ``decision.extracted.text`` holds the text

    Raises:
        ValueError: If neither or both of file_path and file_bytes are given,
            or the file does not exist

    Examples:
        >>> decision = extract_document_text(file_path="report.pdf")
        >>> if decision.is_success:
        ...     print(decision.extracted.text)

        >>> config = ExtractionConfig(max_text_length=1000, extract_inline_images=True)
        >>> with open("scan.pdf", "rb") as f:
        ...     decision = extract_document_text(file_bytes=f.read(), config=config)
    """
    if file_path and file_bytes:
        raise ValueError("Provide either file_path or file_bytes, not both")

    if not file_path and file_bytes is None:
        raise ValueError("Must provide either file_path or file_bytes")

    attributes = dict(attributes or {})
    if file_path:
        path = Path(file_path)
        if not path.exists():
            raise ValueError(f"File not found: {file_path}")
        file_bytes = path.read_bytes()
        attributes.setdefault("filename", path.name)

    record = InputRecord(content=file_bytes, attributes=attributes)
    controller = ExtractionController(DocumentTextExtractor(ocr_config=ocr_config))
    return controller.process(record, config or ExtractionConfig())
