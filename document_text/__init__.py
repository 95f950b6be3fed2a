"""Text extraction gateway for binary document records, with OCR support."""

from document_text.config import ExtractionConfig, OCRConfig
from document_text.controller import ExtractionController
from document_text.detector import FormatDetector
from document_text.exceptions import (
    ConfigurationError,
    DocumentTextError,
    ExtractionCancelledError,
    ExtractionError,
    InternalError,
    RoutingError,
    UnsupportedFormatError,
)
from document_text.extractor import DocumentTextExtractor
from document_text.models import (
    Channel,
    ErrorKind,
    ExtractionFailure,
    ExtractionResult,
    ExtractionSuccess,
    InputRecord,
    OutputRecord,
    RecordState,
    RoutingDecision,
)
from document_text.pool import ExtractionWorkerPool, ExtractorPool
from document_text.processor import RecordSource, extract_document_text, process_next
from document_text.routing import CollectingSink, RoutingSink
from document_text.truncator import truncate

__version__ = "0.1.0"

__all__ = [
    # High-level API
    "extract_document_text",
    "process_next",
    # Core classes
    "ExtractionController",
    "DocumentTextExtractor",
    "FormatDetector",
    "ExtractorPool",
    "ExtractionWorkerPool",
    "RoutingSink",
    "CollectingSink",
    "RecordSource",
    "truncate",
    # Data models
    "InputRecord",
    "OutputRecord",
    "ExtractionResult",
    "ExtractionSuccess",
    "ExtractionFailure",
    "ErrorKind",
    "RecordState",
    "RoutingDecision",
    "Channel",
    # Configuration
    "ExtractionConfig",
    "OCRConfig",
    # Exceptions
    "DocumentTextError",
    "ExtractionError",
    "UnsupportedFormatError",
    "ExtractionCancelledError",
    "InternalError",
    "RoutingError",
    "ConfigurationError",
]
