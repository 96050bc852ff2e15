import logging
from typing import Awaitable, Callable, Optional

from queue_manager.domain.config import ManagerConfig
from queue_manager.domain.errors import BackendUnavailable, InvalidQueue
from queue_manager.store.base import JobStore, queue_name_from_key

logger = logging.getLogger(__name__)


class QueueRegistry:
    """
    Single source of truth for which queues exist.

    No one discovery source is complete for every store configuration, so the
    registry unions the native listing, the membership lookup and a scan of
    per-queue state keys. A discovery pass is cached on the instance; build
    one registry per request.
    """

    def __init__(self, store: JobStore, config: ManagerConfig):
        self.store = store
        self.config = config
        self._cache: Optional[list[str]] = None

    def _strategies(self) -> list[tuple[str, Callable[[], Awaitable[list[str]]]]]:
        return [
            ("native listing", self.store.all_queue_names),
            ("membership lookup", self.store.queue_set_members),
            ("state key scan", self._names_from_keys),
        ]

    async def _names_from_keys(self) -> list[str]:
        keys = await self.store.scan_queue_keys()
        return [name for name in map(queue_name_from_key, keys) if name]

    async def list_queues(self, refresh: bool = False) -> list[str]:
        if self._cache is not None and not refresh:
            return list(self._cache)

        discovered: set[str] = set()
        failures = []
        for label, strategy in self._strategies():
            try:
                names = await strategy()
                discovered.update(name for name in names if name)
            except Exception as e:
                logger.warning("Queue discovery via %s failed: %s", label, e)
                failures.append(label)

        if len(failures) == len(self._strategies()):
            # An empty result here would read as "no queues", which is a valid state
            raise BackendUnavailable("Queue discovery failed for every source")

        self._cache = sorted(discovered)
        return list(self._cache)

    def invalidate(self):
        self._cache = None

    async def exists(self, name) -> bool:
        return isinstance(name, str) and name in await self.list_queues()

    async def require(self, name) -> str:
        if not await self.exists(name):
            raise InvalidQueue(name)
        return name
