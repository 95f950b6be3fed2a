"""Per-record extraction orchestration."""

import threading
from typing import Optional

from document_text.config import ExtractionConfig
from document_text.exceptions import ExtractionError, InternalError
from document_text.extractor import DocumentTextExtractor
from document_text.logger import Timer, get_logger, record_context
from document_text.models import (
    ErrorKind,
    ExtractionFailure,
    ExtractionSuccess,
    InputRecord,
    OutputRecord,
    RecordState,
    RoutingDecision,
)
from document_text.truncator import truncate

logger = get_logger(__name__)


class ExtractionController:
    """Runs one extraction attempt per record and decides its routing.

    Holds no state between records. The extractor is used for one call at a
    time; callers running records concurrently give each worker its own
    controller and extractor (see :class:`document_text.pool.ExtractionWorkerPool`).
    """

    def __init__(self, extractor: Optional[DocumentTextExtractor] = None) -> None:
        self.extractor = extractor or DocumentTextExtractor()

    def process(
        self,
        record: InputRecord,
        config: ExtractionConfig,
        cancel_event: Optional[threading.Event] = None,
    ) -> RoutingDecision:
        """Extract, truncate and route one record.

        Always returns exactly one decision: the original record to
        ``original`` plus the text record to ``extracted``, or the original
        record alone to ``failure``. No exception escapes.
        """
        with record_context(record.record_id):
            state = RecordState.RECEIVED
            try:
                with Timer("process") as timer:
                    state = RecordState.EXTRACTING
                    logger.debug(
                        "Extracting record",
                        extra_data={
                            "content_size_bytes": len(record.content),
                            "max_text_length": config.max_text_length,
                            "extract_inline_images": config.extract_inline_images,
                        },
                    )
                    with record.open() as stream:
                        result = self.extractor.extract(stream, config, cancel_event=cancel_event)

                    if isinstance(result, ExtractionFailure):
                        return self._fail(record, state, result)
                    if not isinstance(result, ExtractionSuccess):
                        raise InternalError(f"Unexpected extraction result: {result!r}")

                    try:
                        text = truncate(result.text, config.max_text_length)
                        extracted = OutputRecord.derive(record, text)
                    except Exception as exc:
                        raise InternalError(f"Failed to assemble extracted record: {exc}") from exc

                state = RecordState.SUCCEEDED
                logger.info(
                    "Record extracted",
                    extra_data={
                        "state": state.value,
                        "character_count": len(text),
                        "truncated": len(text) < len(result.text),
                        "process_time_ms": timer.get_elapsed_ms(),
                    },
                )
                return RoutingDecision.succeeded(extracted)

            except Exception as exc:
                cause = (
                    ErrorKind.EXTRACTION_ERROR
                    if isinstance(exc, ExtractionError)
                    else ErrorKind.INTERNAL_ERROR
                )
                failure = ExtractionFailure(cause, str(exc) or type(exc).__name__)
                return self._fail(record, state, failure, exc_info=True)

    @staticmethod
    def _fail(
        record: InputRecord,
        state: RecordState,
        failure: ExtractionFailure,
        exc_info: bool = False,
    ) -> RoutingDecision:
        logger.error(
            "Extraction failed",
            extra_data={
                "record_id": record.record_id,
                "failed_in": state.value,
                "cause": failure.cause.value,
                "detail": failure.detail,
            },
            exc_info=exc_info,
        )
        return RoutingDecision.failed(failure)
