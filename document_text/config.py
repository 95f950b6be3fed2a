"""Configuration classes for document text extraction."""

from dataclasses import dataclass
from typing import Mapping, Optional

from document_text.exceptions import ConfigurationError

MAX_TEXT_LENGTH = "MAX_TEXT_LENGTH"
EXTRACT_INLINE_IMAGES = "EXTRACT_INLINE_IMAGES"

DEFAULT_PROPERTIES = {
    MAX_TEXT_LENGTH: "-1",
    EXTRACT_INLINE_IMAGES: "False",
}

UNLIMITED = -1


@dataclass(frozen=True)
class OCRConfig:
    """Configuration for Tesseract OCR over images.

    Examples:
        >>> # Defaults: English, preprocessing on, LSTM engine
        >>> config = OCRConfig()

        >>> # Custom binary location and a hard cap per image
        >>> config = OCRConfig(tesseract_cmd="/opt/tesseract/bin/tesseract", timeout_seconds=30)
    """

    tesseract_cmd: str = "tesseract"
    """Path to tesseract binary. Default: "tesseract" (assumes in PATH)."""

    tessdata_prefix: Optional[str] = None
    """Optional path to tessdata directory. If None, uses system default."""

    languages: str = "eng"
    """OCR languages in Tesseract format (e.g., "eng", "eng+fra")."""

    psm_mode: int = 3
    """Page segmentation mode (0-13). Default: 3 (fully automatic).

    Embedded images are usually figures or scanned fragments, so automatic
    segmentation works better than assuming a uniform text block (6).
    """

    use_oem_1: bool = True
    """Use Tesseract OEM 1 (LSTM engine only)."""

    enable_image_preprocessing: bool = True
    """Convert images to grayscale and boost contrast before OCR."""

    contrast_enhancement: float = 1.2
    """Contrast enhancement factor applied when preprocessing is enabled.

    - 1.0: No enhancement
    - 1.2: Default, 20% contrast boost (good for scanned documents)
    - 1.5: Strong enhancement (for poor quality scans)
    """

    max_workers: int = 3
    """Number of parallel OCR workers for the images of one page."""

    timeout_seconds: int = 120
    """Per-image OCR timeout in seconds. 0 disables the timeout."""

    conversion_timeout_seconds: int = 120
    """Timeout in seconds for each legacy .doc converter run (textutil, LibreOffice)."""


@dataclass(frozen=True)
class ExtractionConfig:
    """Per-invocation extraction settings.

    ``max_text_length`` is -1 for unlimited, otherwise a non-negative
    character count. Values below 1 never truncate.
    """

    max_text_length: int = UNLIMITED
    extract_inline_images: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.max_text_length, bool) or not isinstance(
            self.max_text_length, int
        ):
            raise ConfigurationError(
                f"max_text_length must be an integer, got {self.max_text_length!r}"
            )
        if self.max_text_length < UNLIMITED:
            raise ConfigurationError(
                f"max_text_length must be -1 or >= 0, got {self.max_text_length}"
            )
        if not isinstance(self.extract_inline_images, bool):
            raise ConfigurationError(
                "extract_inline_images must be a boolean, "
                f"got {self.extract_inline_images!r}"
            )

    @classmethod
    def from_properties(cls, properties: Mapping[str, Optional[str]]) -> "ExtractionConfig":
        """Build a config from processor property strings.

        Args:
            properties: Mapping of property name to raw value. Missing or
                None values fall back to the defaults.

        Returns:
            Validated ExtractionConfig

        Raises:
            ConfigurationError: If a value does not parse
        """
        raw_length = _property(properties, MAX_TEXT_LENGTH)
        raw_images = _property(properties, EXTRACT_INLINE_IMAGES)

        try:
            max_text_length = int(raw_length.strip())
        except ValueError as exc:
            raise ConfigurationError(
                f"{MAX_TEXT_LENGTH} must be an integer, got {raw_length!r}"
            ) from exc

        flag = raw_images.strip().lower()
        if flag not in ("true", "false"):
            raise ConfigurationError(
                f"{EXTRACT_INLINE_IMAGES} must be True or False, got {raw_images!r}"
            )

        return cls(
            max_text_length=max_text_length,
            extract_inline_images=flag == "true",
        )


def _property(properties: Mapping[str, Optional[str]], name: str) -> str:
    value = properties.get(name)
    if value is None or not value.strip():
        return DEFAULT_PROPERTIES[name]
    return value
