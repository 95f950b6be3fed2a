"""Delivery of routed records to named downstream channels."""

import threading
from abc import ABC, abstractmethod
from typing import Optional, Union

from document_text.exceptions import RoutingError
from document_text.logger import get_logger
from document_text.models import (
    FAILURE_ROUTES,
    SUCCESS_ROUTES,
    Channel,
    InputRecord,
    OutputRecord,
    RecordRole,
    RoutingDecision,
)

logger = get_logger(__name__)

Record = Union[InputRecord, OutputRecord]


class RoutingSink(ABC):
    """Delivers the records of one decision to the ``original``, ``extracted``
    and ``failure`` channels.

    Subclasses implement :meth:`send`. :meth:`deliver` checks the decision
    against the records first, so a call either sends to
    ``original`` + ``extracted`` or to ``failure``, never both or neither.
    """

    def deliver(
        self,
        decision: RoutingDecision,
        original: InputRecord,
        extracted: Optional[OutputRecord] = None,
    ) -> None:
        """Send the records of ``decision``.

        Args:
            decision: Terminal decision from the controller
            original: The record the decision was made for
            extracted: Derived text record. Defaults to the decision's own.

        Raises:
            RoutingError: If the decision and the records do not match
        """
        if extracted is None:
            extracted = decision.extracted

        self._validate(decision, extracted)

        records = {RecordRole.ORIGINAL: original, RecordRole.EXTRACTED: extracted}
        for role, channel in decision.routes:
            self.send(channel, records[role])

        logger.debug(
            "Decision delivered",
            extra_data={
                "record_id": original.record_id,
                "targets": ",".join(sorted(c.value for c in decision.targets)),
            },
        )

    @staticmethod
    def _validate(decision: RoutingDecision, extracted: Optional[OutputRecord]) -> None:
        if decision.is_success:
            if decision.routes != SUCCESS_ROUTES:
                raise RoutingError(f"Invalid routes for a success: {decision.routes}")
            if extracted is None:
                raise RoutingError("Success decision without an extracted record")
        else:
            if decision.routes != FAILURE_ROUTES:
                raise RoutingError(f"Invalid routes for a failure: {decision.routes}")
            if extracted is not None:
                raise RoutingError("Failure decision must not carry an extracted record")

    @abstractmethod
    def send(self, channel: Channel, record: Record) -> None:
        """Hand one record to one channel."""


class CollectingSink(RoutingSink):
    """Thread-safe sink that keeps delivered records in memory per channel."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._channels: dict[Channel, list[Record]] = {channel: [] for channel in Channel}

    def send(self, channel: Channel, record: Record) -> None:
        with self._lock:
            self._channels[channel].append(record)

    def records(self, channel: Channel) -> list[Record]:
        with self._lock:
            return list(self._channels[channel])

    @property
    def original(self) -> list[Record]:
        return self.records(Channel.ORIGINAL)

    @property
    def extracted(self) -> list[Record]:
        return self.records(Channel.EXTRACTED)

    @property
    def failure(self) -> list[Record]:
        return self.records(Channel.FAILURE)
