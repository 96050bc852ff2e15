from .client import LiveEvent, QueueManagerClient
from .watcher import LiveWatcher

__all__ = [
    "LiveEvent",
    "LiveWatcher",
    "QueueManagerClient",
]
