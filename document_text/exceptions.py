"""Custom exceptions for document text extraction."""


class DocumentTextError(Exception):
    """Base exception for document text extraction errors."""

    pass


class ExtractionError(DocumentTextError):
    """Raised when the engine fails to parse a document or run OCR."""

    pass


class UnsupportedFormatError(ExtractionError):
    """Raised when the document format cannot be detected or is not supported."""

    pass


class ExtractionCancelledError(ExtractionError):
    """Raised when the hosting system cancels an extraction in progress."""

    pass


class InternalError(DocumentTextError):
    """Raised on a fault in truncation or output assembly."""

    pass


class RoutingError(DocumentTextError):
    """Raised when a routing decision does not match the records delivered."""

    pass


class ConfigurationError(DocumentTextError):
    """Raised when processor properties fail validation."""

    pass
