import asyncio
import contextlib
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from queue_manager.domain.config import ManagerConfig
from queue_manager.domain.errors import StreamDisconnected
from queue_manager.domain.states import StreamState
from queue_manager.services.metrics import MetricsAggregator
from queue_manager.telemetry import STREAM_CLIENTS

logger = logging.getLogger(__name__)

DISCONNECT_POLL_SECONDS = 0.5


@dataclass
class StreamEvent:
    event: str
    data: dict[str, Any]

    def encode(self) -> str:
        return f"event: {self.event}\ndata: {json.dumps(self.data, default=str)}\n\n"


class LiveUpdateStream:
    """
    Periodic metrics feed for one connected client.

    The loop suspends only while waiting on the close token, after each push
    and before the next compute, so close() or a detected disconnect ends
    the stream without waiting out the refresh interval.
    """

    def __init__(
        self,
        aggregator: MetricsAggregator,
        config: ManagerConfig,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
        disconnect_poll: float = DISCONNECT_POLL_SECONDS,
    ):
        self.aggregator = aggregator
        self.config = config
        self.is_disconnected = is_disconnected
        self.disconnect_poll = disconnect_poll
        self.state = StreamState.STREAMING
        self._closed = asyncio.Event()

    def close(self):
        self._closed.set()

    async def _snapshot(self) -> StreamEvent:
        try:
            return StreamEvent("metrics", await self.aggregator.compute())
        except Exception as e:
            # Recoverable: the next poll may succeed
            logger.error(f"Live stream metrics error: {e}")
            return StreamEvent("error", {"message": "Stream error occurred", "detail": str(e)})

    async def _watch_disconnect(self):
        while not self._closed.is_set():
            try:
                gone = await self.is_disconnected()
            except Exception as e:
                # A transport that cannot be polled is treated as gone
                logger.warning("Live stream disconnect check failed: %s", e)
                gone = True
            if gone:
                logger.info("Live stream client disconnected")
                self.close()
                return
            try:
                await asyncio.wait_for(self._closed.wait(), timeout=self.disconnect_poll)
            except asyncio.TimeoutError:
                pass

    async def events(self) -> AsyncIterator[StreamEvent]:
        STREAM_CLIENTS.inc()
        watcher = None
        if self.is_disconnected is not None:
            watcher = asyncio.create_task(self._watch_disconnect())
        try:
            while not self._closed.is_set():
                yield await self._snapshot()
                try:
                    await asyncio.wait_for(self._closed.wait(), timeout=self.config.refresh_interval_seconds)
                except asyncio.TimeoutError:
                    pass
        finally:
            self.state = StreamState.CLOSED
            self._closed.set()
            STREAM_CLIENTS.dec()
            if watcher:
                watcher.cancel()
                try:
                    await watcher
                except asyncio.CancelledError:
                    pass
                except Exception as e:
                    logger.warning("Live stream watcher ended with error: %s", e)

    async def encoded(self) -> AsyncIterator[str]:
        async with contextlib.aclosing(self.events()) as events:
            async for event in events:
                yield event.encode()

    async def run(self, send: Callable[[StreamEvent], Awaitable[None]]):
        """Push events through `send` until the client goes away or close() is called."""
        async with contextlib.aclosing(self.events()) as events:
            try:
                async for event in events:
                    await send(event)
            except (StreamDisconnected, ConnectionError) as e:
                logger.info("Live stream closed by client: %s", e)
