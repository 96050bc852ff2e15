"""
Backing store adapter interface.

The management services only ever talk to the job-queue engine through this
interface. Results of `pause` / `unpause` follow the engine's native
acknowledgement codes: 1 when the state changed, 0 when it was already
applied.
"""
from abc import ABC, abstractmethod
from enum import StrEnum
from typing import Any, Optional

from queue_manager.domain.models import JobEntry
from queue_manager.domain.states import JobSetKind

QUEUE_KEY_PREFIX = "queue:"


class Capability(StrEnum):
    """Optional engine extensions a store may or may not provide."""
    LIMIT = "limit"
    PROCESS_LIMIT = "process_limit"
    BLOCKING = "blocking"


def queue_state_key(queue_name: str, attribute: str) -> str:
    return f"{QUEUE_KEY_PREFIX}{queue_name}:{attribute}"


def queue_name_from_key(key: str) -> Optional[str]:
    """`queue:<name>:<attribute>` -> `<name>`; the name itself may contain ':'."""
    if not key.startswith(QUEUE_KEY_PREFIX):
        return None
    name, sep, _attribute = key[len(QUEUE_KEY_PREFIX):].rpartition(":")
    return name if sep and name else None


class JobStore(ABC):

    # --- Queue discovery ---

    @abstractmethod
    async def all_queue_names(self) -> list[str]:
        """Native listing of every registered queue."""

    @abstractmethod
    async def queue_set_members(self) -> list[str]:
        """Queues that currently hold enqueued jobs."""

    @abstractmethod
    async def scan_queue_keys(self) -> list[str]:
        """Every per-queue state key (`queue:<name>:<attribute>`)."""

    # --- Queue state ---

    @abstractmethod
    async def queue_size(self, name: str) -> int: ...

    @abstractmethod
    async def queue_latency(self, name: str) -> float: ...

    @abstractmethod
    async def is_paused(self, name: str) -> bool: ...

    @abstractmethod
    async def pause(self, name: str) -> Any: ...

    @abstractmethod
    async def unpause(self, name: str) -> Any: ...

    @abstractmethod
    async def queue_jobs(self, name: str, offset: int, limit: int) -> list[JobEntry]: ...

    @abstractmethod
    async def find_queue_job(self, name: str, jid: str) -> Optional[JobEntry]: ...

    @abstractmethod
    async def delete_queue_job(self, name: str, jid: str) -> bool: ...

    @abstractmethod
    async def clear_queue(self, name: str) -> int:
        """Removes every enqueued job of the queue and returns the count."""

    @abstractmethod
    async def remove_queue(self, name: str) -> None:
        """Drops the queue's registration, job list and state keys."""

    # --- Workers & counters ---

    @abstractmethod
    async def busy_for_queue(self, name: str) -> int: ...

    @abstractmethod
    async def worker_count(self) -> int: ...

    @abstractmethod
    async def process_count(self) -> int: ...

    @abstractmethod
    async def stat_totals(self) -> dict[str, int]:
        """Lifetime `processed` and `failed` counters."""

    # --- Optional extensions ---

    @abstractmethod
    def capabilities(self) -> frozenset[Capability]: ...

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities()

    @abstractmethod
    async def get_limit(self, name: str) -> Optional[int]: ...

    @abstractmethod
    async def set_limit(self, name: str, limit: Optional[int]) -> None: ...

    @abstractmethod
    async def get_process_limit(self, name: str) -> Optional[int]: ...

    @abstractmethod
    async def set_process_limit(self, name: str, limit: Optional[int]) -> None: ...

    @abstractmethod
    async def is_blocked(self, name: str) -> bool: ...

    @abstractmethod
    async def set_blocked(self, name: str, blocked: bool) -> None: ...

    # --- Job sets ---

    @abstractmethod
    async def set_size(self, kind: JobSetKind) -> int: ...

    @abstractmethod
    async def set_members(self, kind: JobSetKind) -> list[JobEntry]: ...

    @abstractmethod
    async def find_in_set(self, kind: JobSetKind, jid: str) -> Optional[JobEntry]: ...

    @abstractmethod
    async def delete_from_set(self, kind: JobSetKind, jid: str) -> bool: ...

    @abstractmethod
    async def clear_set(self, kind: JobSetKind) -> int: ...

    @abstractmethod
    async def enqueue_from_set(self, kind: JobSetKind, jid: str) -> bool:
        """Moves a scheduled or retry job into its origin queue."""

    @abstractmethod
    async def kill(self, jid: str) -> bool:
        """Moves a retry job into the dead set."""

    @abstractmethod
    async def resurrect(self, jid: str) -> bool:
        """Moves a dead job back into the retry set."""

    # --- Status cache ---

    @abstractmethod
    async def cache_queue_status(self, key: str, status: str, ttl: int) -> None: ...

    @abstractmethod
    async def cached_queue_status(self, key: str) -> Optional[dict[str, Any]]: ...

    @abstractmethod
    async def drop_queue_status(self, key: str) -> None: ...