import asyncio
import contextlib
import logging
from typing import Any, Callable, Coroutine

import httpx

from queue_manager_client.client import LiveEvent, QueueManagerClient

logger = logging.getLogger(__name__)

EventHandler = Callable[[LiveEvent], Coroutine[Any, Any, None]]


class LiveWatcher:
    """Consumes the live metrics feed, reconnecting after a delay when it drops."""

    def __init__(self, client: QueueManagerClient, handler: EventHandler, reconnect_delay: float = 5.0):
        self.client = client
        self.handler = handler
        self.reconnect_delay = reconnect_delay
        self.running = False
        self._shutdown_event = asyncio.Event()

    async def run(self):
        self.running = True
        self._shutdown_event.clear()
        logger.info("Live watcher started")

        try:
            while self.running:
                try:
                    async with contextlib.aclosing(self.client.live()) as events:
                        async for event in events:
                            await self.handler(event)
                            if not self.running:
                                break
                except (httpx.HTTPError, ValueError) as e:
                    logger.warning("Live feed dropped: %s", e)

                if not self.running:
                    break
                try:
                    await asyncio.wait_for(self._shutdown_event.wait(), timeout=self.reconnect_delay)
                except asyncio.TimeoutError:
                    pass
        finally:
            logger.info("Live watcher stopped")

    def stop(self):
        self.running = False
        self._shutdown_event.set()
