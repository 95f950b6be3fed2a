"""Document format detection from content bytes."""

import io
import struct
import zipfile

from document_text.exceptions import UnsupportedFormatError
from document_text.logger import get_logger

logger = get_logger(__name__)


PDF = "application/pdf"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
DOC = "application/msword"
XLS = "application/vnd.ms-excel"
TEXT = "text/plain"

PDF_SIGNATURE = b"%PDF-"
UTF8_BOM = b"\xef\xbb\xbf"
PDF_HEADER_WINDOW = 1024
ZIP_SIGNATURE = b"PK\x03\x04"
OLE_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"  # Legacy Office container
IMAGE_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"II*\x00", "image/tiff"),
    (b"MM\x00*", "image/tiff"),
)

# Root-level OLE2 stream names
OLE_WORD_STREAM = "WordDocument"
OLE_WORKBOOK_STREAMS = ("Workbook", "Book")

OLE_HEADER_SIZE = 512
OLE_DIR_ENTRY_SIZE = 128
OLE_HEADER_DIFAT_ENTRIES = 109
OLE_MAX_REGULAR_SECTOR = 0xFFFFFFF9  # larger values are chain markers
OLE_NO_STREAM = 0xFFFFFFFF
OLE_STREAM_ENTRY = 2

BMP = "image/bmp"
BMP_SIGNATURE = b"BM"

IMAGE_TYPES = frozenset(mime for _, mime in IMAGE_SIGNATURES) | {BMP}


class FormatDetector:
    """Detects document format from content only, never from a file name."""

    def detect(self, content: bytes) -> str:
        """Return the MIME type of ``content``.

        Raises:
            UnsupportedFormatError: If the format is unknown or unsupported
        """
        if not content:
            raise UnsupportedFormatError("Document is empty")

        mime_type = self._sniff(content)
        if mime_type is None:
            logger.warning(
                "Unsupported document format",
                extra_data={
                    "content_size_bytes": len(content),
                    "head": content[:8].hex(),
                },
            )
            raise UnsupportedFormatError("Unable to detect a supported document format")

        logger.debug(
            "Document format detected",
            extra_data={"mime_type": mime_type, "content_size_bytes": len(content)},
        )
        return mime_type

    def _sniff(self, content: bytes) -> str | None:
        if self._is_pdf(content):
            return PDF
        if content.startswith(ZIP_SIGNATURE):
            return self._sniff_zip(content)
        if content.startswith(OLE_SIGNATURE):
            return self._sniff_ole(content)
        for signature, mime_type in IMAGE_SIGNATURES:
            if content.startswith(signature):
                return mime_type
        if self._is_bmp(content):
            return BMP
        if self._looks_like_text(content):
            return TEXT
        return None

    @staticmethod
    def _sniff_zip(content: bytes) -> str | None:
        """Tell OOXML packages apart by their member layout."""
        try:
            with zipfile.ZipFile(io.BytesIO(content)) as archive:
                names = archive.namelist()
        except zipfile.BadZipFile:
            return None
        if any(name.startswith("word/") for name in names):
            return DOCX
        if any(name.startswith("xl/") for name in names):
            return XLSX
        return None

    @staticmethod
    def _is_pdf(content: bytes) -> bool:
        # A BOM or blank lines before the header are tolerated
        head = content[len(UTF8_BOM):] if content.startswith(UTF8_BOM) else content
        return head[:PDF_HEADER_WINDOW].lstrip(b" \t\r\n\x0c").startswith(PDF_SIGNATURE)

    @staticmethod
    def _sniff_ole(content: bytes) -> str | None:
        """Classify a compound file by the streams in its root storage."""
        try:
            streams = _ole_root_streams(content)
        except struct.error:
            return None
        if OLE_WORD_STREAM in streams:
            return DOC
        if any(name in streams for name in OLE_WORKBOOK_STREAMS):
            return XLS
        return None

    @staticmethod
    def _is_bmp(content: bytes) -> bool:
        # "BM" alone is common in text, so also require the zeroed reserved words
        return content.startswith(BMP_SIGNATURE) and content[6:10] == b"\x00" * 4

    @staticmethod
    def _looks_like_text(content: bytes) -> bool:
        if b"\x00" in content:
            return False
        try:
            content.decode("utf-8")
        except UnicodeDecodeError:
            return False
        return True


def _ole_root_streams(content: bytes) -> set[str]:
    """Names of the streams stored directly under a compound file's root.

    Streams nested in storages (embedded objects) and any stream data are
    ignored, so an embedded Word object or cell text naming ``WordDocument``
    does not change the container type.

    Raises:
        struct.error: If the header or a directory sector is truncated
    """
    if len(content) < OLE_HEADER_SIZE:
        return set()

    (sector_shift,) = struct.unpack_from("<H", content, 30)
    if sector_shift not in (9, 12):
        return set()
    sector_size = 1 << sector_shift
    (first_dir_sector,) = struct.unpack_from("<I", content, 48)
    first_difat_sector, difat_sector_count = struct.unpack_from("<II", content, 68)

    def read_sector(index: int) -> bytes:
        start = (index + 1) * sector_size
        return content[start:start + sector_size]

    # Locate the FAT sectors: 109 in the header, the rest in a DIFAT chain
    fat_sectors = list(struct.unpack_from(f"<{OLE_HEADER_DIFAT_ENTRIES}I", content, 76))
    per_difat = sector_size // 4 - 1
    index, seen = first_difat_sector, set()
    while (
        index <= OLE_MAX_REGULAR_SECTOR
        and index not in seen
        and len(seen) < difat_sector_count
    ):
        seen.add(index)
        data = read_sector(index)
        if len(data) < sector_size:
            break
        values = struct.unpack(f"<{per_difat + 1}I", data)
        fat_sectors.extend(values[:per_difat])
        index = values[per_difat]

    fat: list[int] = []
    for index in fat_sectors:
        if index > OLE_MAX_REGULAR_SECTOR:
            continue
        data = read_sector(index)
        fat.extend(struct.unpack(f"<{len(data) // 4}I", data[: len(data) // 4 * 4]))

    entries: list[bytes] = []
    index, seen = first_dir_sector, set()
    while index <= OLE_MAX_REGULAR_SECTOR and index not in seen:
        seen.add(index)
        data = read_sector(index)
        for offset in range(0, len(data) - OLE_DIR_ENTRY_SIZE + 1, OLE_DIR_ENTRY_SIZE):
            entries.append(data[offset:offset + OLE_DIR_ENTRY_SIZE])
        index = fat[index] if index < len(fat) else OLE_NO_STREAM
    if not entries:
        return set()

    # Root-level children form a sibling tree hanging off the root entry
    (root_child,) = struct.unpack_from("<I", entries[0], 76)
    names: set[str] = set()
    pending, visited = [root_child], set()
    while pending:
        sid = pending.pop()
        if sid >= len(entries) or sid in visited:
            continue
        visited.add(sid)
        entry = entries[sid]
        (name_length,) = struct.unpack_from("<H", entry, 64)
        if entry[66] == OLE_STREAM_ENTRY:
            name_bytes = entry[: max(min(name_length, 64) - 2, 0)]
            names.add(name_bytes.decode("utf-16-le", errors="ignore"))
        left, right = struct.unpack_from("<II", entry, 68)
        pending.extend((left, right))
    return names
