"""Data models for document text extraction."""

import io
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Union

TEXT_PLAIN = "text/plain"
MIME_TYPE_ATTRIBUTE = "mime.type"


class ErrorKind(str, Enum):
    EXTRACTION_ERROR = "ExtractionError"
    INTERNAL_ERROR = "InternalError"


class RecordState(str, Enum):
    """Lifecycle of one record through the controller."""

    RECEIVED = "received"
    EXTRACTING = "extracting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ROUTED = "routed"


class Channel(str, Enum):
    ORIGINAL = "original"
    EXTRACTED = "extracted"
    FAILURE = "failure"


class RecordRole(str, Enum):
    ORIGINAL = "original"
    EXTRACTED = "extracted"


def _freeze(attributes: Mapping[str, str]) -> Mapping[str, str]:
    return MappingProxyType(dict(attributes))


@dataclass(frozen=True)
class InputRecord:
    """Binary document received from the record source."""

    content: bytes
    attributes: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "content", bytes(self.content))
        object.__setattr__(self, "attributes", _freeze(self.attributes))

    @property
    def record_id(self) -> str:
        return (
            self.attributes.get("uuid")
            or self.attributes.get("filename")
            or "<unidentified>"
        )

    def open(self) -> io.BytesIO:
        """Open a fresh read stream over the content."""
        return io.BytesIO(self.content)


@dataclass(frozen=True)
class OutputRecord:
    """Plain-text record derived from an InputRecord."""

    content: bytes
    attributes: Mapping[str, str]

    def __post_init__(self) -> None:
        object.__setattr__(self, "attributes", _freeze(self.attributes))

    @classmethod
    def derive(cls, original: InputRecord, text: str) -> "OutputRecord":
        attributes = dict(original.attributes)
        attributes[MIME_TYPE_ATTRIBUTE] = TEXT_PLAIN
        return cls(content=text.encode("utf-8"), attributes=attributes)

    @property
    def text(self) -> str:
        return self.content.decode("utf-8")


@dataclass(frozen=True)
class ExtractionSuccess:
    text: str
    mime_type: str = TEXT_PLAIN


@dataclass(frozen=True)
class ExtractionFailure:
    cause: ErrorKind
    detail: str


ExtractionResult = Union[ExtractionSuccess, ExtractionFailure]


SUCCESS_ROUTES = (
    (RecordRole.ORIGINAL, Channel.ORIGINAL),
    (RecordRole.EXTRACTED, Channel.EXTRACTED),
)
FAILURE_ROUTES = ((RecordRole.ORIGINAL, Channel.FAILURE),)


@dataclass(frozen=True)
class RoutingDecision:
    """Terminal outcome for one record.

    Use :meth:`succeeded` or :meth:`failed` to build one; the routes are
    fixed by the outcome.
    """

    outcome: RecordState
    routes: tuple[tuple[RecordRole, Channel], ...]
    extracted: Optional[OutputRecord] = None
    failure: Optional[ExtractionFailure] = None

    @classmethod
    def succeeded(cls, extracted: OutputRecord) -> "RoutingDecision":
        return cls(
            outcome=RecordState.SUCCEEDED,
            routes=SUCCESS_ROUTES,
            extracted=extracted,
        )

    @classmethod
    def failed(cls, failure: ExtractionFailure) -> "RoutingDecision":
        return cls(
            outcome=RecordState.FAILED,
            routes=FAILURE_ROUTES,
            failure=failure,
        )

    @property
    def is_success(self) -> bool:
        return self.outcome is RecordState.SUCCEEDED

    @property
    def targets(self) -> frozenset[Channel]:
        return frozenset(channel for _, channel in self.routes)

    def channel_for(self, role: RecordRole) -> Optional[Channel]:
        for routed_role, channel in self.routes:
            if routed_role is role:
                return channel
        return None
