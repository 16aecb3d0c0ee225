"""Chunk-in / events-out pipeline over the OCPP-J stream."""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from .correlator import RequestResponseCorrelator
from .events import (
    MALFORMED_FRAME,
    SHAPE_MISMATCH,
    CallErrorReceived,
    Event,
    FrameExtracted,
    StatusNotified,
    StreamWarning,
    TransactionUpdated,
)
from .parsers.frame_extractor import DEFAULT_MAX_BUFFER, Frame, FrameExtractor
from .parsers.message_classifier import Call, CallError, CallResult, ClassifyError, classify
from .stream_health import StreamHealth
from .transactions import DEFAULT_STATUS_WINDOW_MS, Transaction, TransactionStateMachine, as_int, as_str

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MonitorPipeline:
    """
    Owns all per-stream state: extraction buffer, pending request table,
    transactions and health counters.

    feed() runs every stage synchronously and in arrival order, so a single
    writer updates the state; readers should use the snapshot accessors.
    """

    def __init__(
        self,
        status_window_ms: int = DEFAULT_STATUS_WINDOW_MS,
        max_buffer: int = DEFAULT_MAX_BUFFER,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.extractor = FrameExtractor(max_buffer=max_buffer)
        self.correlator = RequestResponseCorrelator()
        self.state = TransactionStateMachine(status_window_ms=status_window_ms)
        self.health = StreamHealth()
        self._clock = clock or utc_now

    def feed(self, chunk: str, observed_at: Optional[datetime] = None) -> List[Event]:
        """
        Push one transport chunk through the pipeline.

        Args:
            chunk: Text exactly as read from the transport
            observed_at: Arrival time; defaults to the pipeline clock

        Returns:
            Lifecycle events caused by this chunk, in stream order
        """
        observed_at = observed_at or self._clock()
        self.health.record_chunk(len(chunk))

        events: List[Event] = []
        frames = self.extractor.feed(chunk)

        for reason, text in self.extractor.drain_rejections():
            self.health.record_warning(MALFORMED_FRAME)
            events.append(StreamWarning(kind=MALFORMED_FRAME, detail=reason, text=text))

        for frame in frames:
            events.extend(self._process_frame(frame, observed_at))

        return events

    def transactions(self) -> Dict[str, Transaction]:
        return self.state.transactions()

    def pending_transactions(self) -> List[Transaction]:
        return self.state.pending_transactions()

    def search(self, term: str = "") -> List[Transaction]:
        return self.state.search(term)

    def _process_frame(self, frame: Frame, observed_at: datetime) -> List[Event]:
        try:
            message = classify(frame)
        except ClassifyError as e:
            logger.warning(f"Discarding non-OCPP frame: {e}")
            self.health.record_warning(SHAPE_MISMATCH)
            return [StreamWarning(kind=SHAPE_MISMATCH, detail=str(e), text=frame.text)]

        if isinstance(message, Call):
            self.correlator.record(message)

        label = self.correlator.describe(message)
        self.health.record_frame(label)
        events: List[Event] = [FrameExtracted(frame=frame, message=message, label=label)]

        if isinstance(message, Call):
            events.extend(self._on_call(message, observed_at))
        elif isinstance(message, CallResult):
            events.extend(self._on_call_result(message, observed_at))
        elif isinstance(message, CallError):
            request = self.correlator.resolve(message.message_id)
            self.health.record_call_error()
            logger.warning(
                f"CallError for {request.action if request else 'unknown request'} "
                f"{message.message_id}: {message.error_code} {message.error_description}"
            )
            events.append(CallErrorReceived(error=message, request=request))

        return events

    def _on_call(self, call: Call, observed_at: datetime) -> List[Event]:
        updated = None
        if call.action == 'StartTransaction':
            self.state.start_requested(call, observed_at)
        elif call.action == 'MeterValues':
            updated = self.state.meter_values(call.payload)
        elif call.action == 'StopTransaction':
            updated = self.state.stop(call.payload, observed_at)
        elif call.action == 'StatusNotification':
            self.state.status_notification(call.payload, observed_at)
            payload = call.payload if isinstance(call.payload, dict) else {}
            logger.info(f"Status: {payload.get('status')} on connector {payload.get('connectorId')}")
            return [StatusNotified(
                connector_id=as_int(payload.get('connectorId')),
                status=as_str(payload.get('status')),
                error_code=as_str(payload.get('errorCode')),
                observed_at=observed_at,
            )]

        return [TransactionUpdated(transaction=updated)] if updated else []

    def _on_call_result(self, result: CallResult, observed_at: datetime) -> List[Event]:
        request = self.correlator.resolve(result.message_id)
        if request is None:
            logger.debug(f"No request recorded for response {result.message_id}")
            return []

        if request.action == 'StartTransaction':
            created = self.state.start_confirmed(request, result, observed_at)
            if created:
                return [TransactionUpdated(transaction=created)]
        return []
