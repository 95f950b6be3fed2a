"""Concurrent extraction over a batch of records."""

import os
import queue
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from contextlib import contextmanager
from functools import partial
from typing import Callable, Iterable, Iterator, Optional

from document_text.config import ExtractionConfig, OCRConfig
from document_text.controller import ExtractionController
from document_text.extractor import DocumentTextExtractor
from document_text.logger import Timer, get_logger
from document_text.models import InputRecord, RecordState, RoutingDecision
from document_text.routing import RoutingSink

logger = get_logger(__name__)


class ExtractorPool:
    """Fixed set of extractors handed out for exclusive use."""

    def __init__(
        self,
        size: int,
        factory: Optional[Callable[[], DocumentTextExtractor]] = None,
    ) -> None:
        if size < 1:
            raise ValueError(f"Pool size must be at least 1, got {size}")
        factory = factory or DocumentTextExtractor
        self.size = size
        self._available: "queue.Queue[DocumentTextExtractor]" = queue.Queue(maxsize=size)
        for _ in range(size):
            self._available.put(factory())

    @contextmanager
    def checkout(self, timeout: Optional[float] = None) -> Iterator[DocumentTextExtractor]:
        """Borrow an extractor; it goes back to the pool on every exit path.

        Raises:
            queue.Empty: If none frees up within ``timeout`` seconds
        """
        extractor = self._available.get(timeout=timeout)
        try:
            yield extractor
        finally:
            self._available.put(extractor)

    def available(self) -> int:
        return self._available.qsize()


class ExtractionWorkerPool:
    """Runs extraction and delivery for many records on worker threads.

    Each worker checks an extractor out of an :class:`ExtractorPool` for the
    duration of one record, so no extractor is ever used by two records at
    once. Each ``run`` gets its own cancel event; ``cancel()`` or an expired
    ``run`` timeout sets it, in-flight extractions stop at their next page,
    image or converter launch and route to ``failure``. The pool can run
    further batches afterwards.
    """

    def __init__(
        self,
        config: ExtractionConfig,
        sink: RoutingSink,
        max_workers: Optional[int] = None,
        ocr_config: Optional[OCRConfig] = None,
        extractor_factory: Optional[Callable[[], DocumentTextExtractor]] = None,
    ) -> None:
        self.config = config
        self.sink = sink
        self.max_workers = max_workers or os.cpu_count() or 1
        if extractor_factory is None:
            extractor_factory = partial(DocumentTextExtractor, ocr_config=ocr_config)
        self.extractors = ExtractorPool(self.max_workers, extractor_factory)
        self._cancel_event = threading.Event()
        self._lock = threading.Lock()

    def cancel(self) -> None:
        """Cancel the current batch, or the next one if none is running."""
        with self._lock:
            self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def run(
        self, records: Iterable[InputRecord], timeout: Optional[float] = None
    ) -> list[RoutingDecision]:
        """Process and deliver every record.

        Args:
            records: Records to process
            timeout: Seconds to wait before cancelling whatever is still running

        Returns:
            One decision per record, in input order
        """
        records = list(records)
        if not records:
            return []

        cancel_event = self._cancel_event

        logger.info(
            "Starting batch extraction",
            extra_data={"record_count": len(records), "max_workers": self.max_workers},
        )

        try:
            with Timer("batch") as timer, ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="extract"
            ) as executor:
                futures = [
                    executor.submit(self._handle, record, cancel_event) for record in records
                ]

                _, pending = wait(futures, timeout=timeout)
                if pending:
                    logger.warning(
                        "Batch timeout expired, cancelling in-flight extractions",
                        extra_data={"pending": len(pending), "timeout_s": timeout},
                    )
                    cancel_event.set()

                decisions = [future.result() for future in futures]

        finally:
            with self._lock:
                if self._cancel_event is cancel_event:
                    self._cancel_event = threading.Event()

        failed = sum(1 for d in decisions if not d.is_success)
        logger.info(
            "Batch extraction completed",
            extra_data={
                "record_count": len(decisions),
                "failed_count": failed,
                "batch_time_ms": timer.get_elapsed_ms(),
            },
        )
        return decisions

    def _handle(self, record: InputRecord, cancel_event: threading.Event) -> RoutingDecision:
        with self.extractors.checkout() as extractor:
            decision = ExtractionController(extractor).process(
                record, self.config, cancel_event=cancel_event
            )
        self.sink.deliver(decision, record)

        logger.debug(
            "Record routed",
            extra_data={
                "record_id": record.record_id,
                "outcome": decision.outcome.value,
                "state": RecordState.ROUTED.value,
            },
        )
        return decision
