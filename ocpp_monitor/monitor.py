"""Read loop feeding the transport stream into the pipeline."""

import asyncio
import logging
from typing import List, Optional

from .drivers.base_driver import StreamDriver, TransportError, is_connection_error
from .events import Event, StreamWarning
from .pipeline import MonitorPipeline

logger = logging.getLogger(__name__)


class StreamMonitor:
    """
    Pull chunks from a driver and push them through a MonitorPipeline.

    While paused, chunks are still read (the transport stays open) but
    dropped. A connection-related transport error triggers exactly one
    reconnect attempt after reconnect_delay_ms; if that fails, or the error
    is of another kind, TransportError propagates to the caller.
    """

    def __init__(
        self,
        driver: StreamDriver,
        pipeline: MonitorPipeline,
        reconnect_delay_ms: int = 2000,
        event_queue: Optional[asyncio.Queue] = None,
    ):
        self.driver = driver
        self.pipeline = pipeline
        self.reconnect_delay_ms = reconnect_delay_ms
        self.event_queue = event_queue
        self.paused = False
        self.keep_reading = False
        self.dropped_chunks = 0
        self.reconnects = 0

    def pause(self):
        """Stop feeding the pipeline without closing the transport."""
        self.paused = True
        logger.info("Monitoring paused")

    def resume(self):
        self.paused = False
        logger.info("Monitoring resumed")

    def stop(self):
        """Leave the read loop after the current read."""
        self.keep_reading = False

    async def run(self):
        """Read until stopped or cancelled."""
        if not self.driver.is_connected and not await self.driver.connect():
            raise TransportError(f"Could not connect: {self.driver.get_connection_info()}")

        self.keep_reading = True
        logger.info("Starting read loop...")

        while self.keep_reading:
            try:
                chunk = await self.driver.read_chunk()
            except asyncio.CancelledError:
                logger.info("Read loop cancelled")
                raise
            except TransportError as e:
                logger.error(f"Read error: {e}")
                if not is_connection_error(e):
                    raise
                await self.reconnect()
                continue

            if not chunk:
                continue
            if self.paused:
                self.dropped_chunks += 1
                continue

            self.process(chunk)

        logger.info("Read loop stopped")

    def process(self, chunk: str) -> List[Event]:
        """Feed one chunk and hand its events to the queue, if any."""
        events = self.pipeline.feed(chunk)
        for event in events:
            if isinstance(event, StreamWarning):
                logger.debug(f"Discarded {event.kind}: {event.detail}")
            if self.event_queue is not None:
                self.event_queue.put_nowait(event)
        return events

    async def reconnect(self):
        """Disconnect, wait reconnect_delay_ms and connect once."""
        logger.warning(f"Connection lost. Attempting to reconnect in {self.reconnect_delay_ms} ms...")
        await self.driver.disconnect()
        await asyncio.sleep(self.reconnect_delay_ms / 1000)

        if not await self.driver.connect():
            raise TransportError(f"Reconnect failed: {self.driver.get_connection_info()}")

        self.reconnects += 1
        logger.info(f"Reconnected (reconnect #{self.reconnects})")
