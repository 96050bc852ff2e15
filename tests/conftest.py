import json
from typing import Any, Iterable, Optional

import pytest

from queue_manager.domain.config import ManagerConfig
from queue_manager.domain.models import JobEntry
from queue_manager.domain.states import JobLocation, JobSetKind
from queue_manager.services.job_sets import JobSetService
from queue_manager.services.metrics import MetricsAggregator
from queue_manager.services.queue_control import QueueControlService
from queue_manager.services.registry import QueueRegistry
from queue_manager.store.base import QUEUE_KEY_PREFIX, Capability, JobStore, queue_state_key

NOW = 1_700_000_000.0

MUTATIONS = frozenset({
    "pause", "unpause", "delete_queue_job", "clear_queue", "remove_queue",
    "set_limit", "set_process_limit", "set_blocked", "delete_from_set",
    "clear_set", "enqueue_from_set", "kill", "resurrect", "cache_queue_status", "drop_queue_status",
})


def make_job(jid: str, location: JobLocation = JobLocation.ENQUEUED, queue: str = "default",
             job_class: str = "HardWorker", **fields: Any) -> JobEntry:
    if location == JobLocation.ENQUEUED:
        fields.setdefault("enqueued_at", NOW - 10)
    return JobEntry(jid=jid, job_class=job_class, queue=queue, location=location,
                    created_at=fields.pop("created_at", NOW - 100), **fields)


class MemoryJobStore(JobStore):
    """In-memory JobStore that records every call and can be told to fail."""

    def __init__(self, capabilities: Iterable[Capability] = tuple(Capability)):
        self.now = NOW
        self.queues: set[str] = set()
        self.jobs: dict[str, JobEntry] = {}
        self.keys: dict[str, tuple[str, Optional[float]]] = {}
        self.busy: dict[str, int] = {}
        self.processes = 0
        self.stats = {"processed": 0, "failed": 0}
        self.calls: list[str] = []
        self.failures: dict[str, Exception] = {}
        self.pause_result: Any = None
        self.unpause_result: Any = None
        self._capabilities = frozenset(capabilities)

    # --- Test helpers ---

    def add(self, *entries: JobEntry) -> "MemoryJobStore":
        for entry in entries:
            if entry.location == JobLocation.ENQUEUED:
                self.queues.add(entry.queue)
            self.jobs[entry.jid] = entry
        return self

    def fail(self, method: str, error: Optional[Exception] = None):
        self.failures[method] = error or ConnectionError(f"{method}: connection refused")

    def recover(self):
        self.failures.clear()

    def mutating_calls(self) -> list[str]:
        return [name for name in self.calls if name in MUTATIONS]

    def _call(self, name: str):
        self.calls.append(name)
        if name in self.failures:
            raise self.failures[name]

    def _at(self, location: JobLocation) -> list[JobEntry]:
        return [job for job in self.jobs.values() if job.location == location]

    def _enqueued(self, name: str) -> list[JobEntry]:
        return [job for job in self._at(JobLocation.ENQUEUED) if job.queue == name]

    def _read(self, key: str) -> Optional[str]:
        if key not in self.keys:
            return None
        value, expires_at = self.keys[key]
        if expires_at is not None and expires_at <= self.now:
            return None
        return value

    def _write(self, key: str, value: Optional[str]):
        if value is None:
            self.keys.pop(key, None)
        else:
            self.keys[key] = (value, None)

    # --- Discovery ---

    async def all_queue_names(self) -> list[str]:
        self._call("all_queue_names")
        return sorted(self.queues)

    async def queue_set_members(self) -> list[str]:
        self._call("queue_set_members")
        return sorted({job.queue for job in self._at(JobLocation.ENQUEUED)})

    async def scan_queue_keys(self) -> list[str]:
        self._call("scan_queue_keys")
        return [key for key in self.keys if key.startswith(QUEUE_KEY_PREFIX)]

    # --- Queue state ---

    async def queue_size(self, name: str) -> int:
        self._call("queue_size")
        return len(self._enqueued(name))

    async def queue_latency(self, name: str) -> float:
        self._call("queue_latency")
        jobs = self._enqueued(name)
        if not jobs:
            return 0.0
        return self.now - min(job.enqueued_at for job in jobs)

    async def is_paused(self, name: str) -> bool:
        self._call("is_paused")
        return self._read(queue_state_key(name, "paused")) is not None

    async def pause(self, name: str) -> Any:
        self._call("pause")
        if self.pause_result is not None:
            return self.pause_result
        key = queue_state_key(name, "paused")
        if key in self.keys:
            return 0
        self._write(key, "1")
        return 1

    async def unpause(self, name: str) -> Any:
        self._call("unpause")
        if self.unpause_result is not None:
            return self.unpause_result
        return 1 if self.keys.pop(queue_state_key(name, "paused"), None) else 0

    async def queue_jobs(self, name: str, offset: int, limit: int) -> list[JobEntry]:
        self._call("queue_jobs")
        jobs = sorted(self._enqueued(name), key=lambda job: (job.enqueued_at, job.jid))
        return jobs[offset:offset + limit]

    async def find_queue_job(self, name: str, jid: str) -> Optional[JobEntry]:
        self._call("find_queue_job")
        job = self.jobs.get(jid)
        return job if job and job.location == JobLocation.ENQUEUED and job.queue == name else None

    async def delete_queue_job(self, name: str, jid: str) -> bool:
        self._call("delete_queue_job")
        if await self.find_queue_job(name, jid) is None:
            return False
        del self.jobs[jid]
        return True

    async def clear_queue(self, name: str) -> int:
        self._call("clear_queue")
        jobs = self._enqueued(name)
        for job in jobs:
            del self.jobs[job.jid]
        return len(jobs)

    async def remove_queue(self, name: str) -> None:
        self._call("remove_queue")
        self.queues.discard(name)
        for job in self._enqueued(name):
            del self.jobs[job.jid]
        for key in [k for k in self.keys if k.startswith(f"{QUEUE_KEY_PREFIX}{name}:")]:
            del self.keys[key]

    # --- Workers & counters ---

    async def busy_for_queue(self, name: str) -> int:
        self._call("busy_for_queue")
        return self.busy.get(name, 0)

    async def worker_count(self) -> int:
        self._call("worker_count")
        return sum(self.busy.values())

    async def process_count(self) -> int:
        self._call("process_count")
        return self.processes

    async def stat_totals(self) -> dict[str, int]:
        self._call("stat_totals")
        return dict(self.stats)

    # --- Optional extensions ---

    def capabilities(self) -> frozenset[Capability]:
        return self._capabilities

    async def get_limit(self, name: str) -> Optional[int]:
        self._call("get_limit")
        value = self._read(queue_state_key(name, "limit"))
        return int(value) if value is not None else None

    async def set_limit(self, name: str, limit: Optional[int]) -> None:
        self._call("set_limit")
        self._write(queue_state_key(name, "limit"), None if limit is None else str(limit))

    async def get_process_limit(self, name: str) -> Optional[int]:
        self._call("get_process_limit")
        value = self._read(queue_state_key(name, "process_limit"))
        return int(value) if value is not None else None

    async def set_process_limit(self, name: str, limit: Optional[int]) -> None:
        self._call("set_process_limit")
        self._write(queue_state_key(name, "process_limit"), None if limit is None else str(limit))

    async def is_blocked(self, name: str) -> bool:
        self._call("is_blocked")
        return self._read(queue_state_key(name, "blocked")) is not None

    async def set_blocked(self, name: str, blocked: bool) -> None:
        self._call("set_blocked")
        self._write(queue_state_key(name, "blocked"), "1" if blocked else None)

    # --- Job sets ---

    async def set_size(self, kind: JobSetKind) -> int:
        self._call("set_size")
        return len(self._at(kind.location))

    async def set_members(self, kind: JobSetKind) -> list[JobEntry]:
        self._call("set_members")
        return list(self._at(kind.location))

    async def find_in_set(self, kind: JobSetKind, jid: str) -> Optional[JobEntry]:
        self._call("find_in_set")
        job = self.jobs.get(jid)
        return job if job and job.location == kind.location else None

    async def delete_from_set(self, kind: JobSetKind, jid: str) -> bool:
        self._call("delete_from_set")
        job = self.jobs.get(jid)
        if job is None or job.location != kind.location:
            return False
        del self.jobs[jid]
        return True

    async def clear_set(self, kind: JobSetKind) -> int:
        self._call("clear_set")
        jobs = self._at(kind.location)
        for job in jobs:
            del self.jobs[job.jid]
        return len(jobs)

    async def enqueue_from_set(self, kind: JobSetKind, jid: str) -> bool:
        self._call("enqueue_from_set")
        job = self.jobs.get(jid)
        if job is None or job.location != kind.location:
            return False
        job.location = JobLocation.ENQUEUED
        job.enqueued_at = self.now
        job.at = None
        job.retry_at = None
        self.queues.add(job.queue)
        return True

    async def kill(self, jid: str) -> bool:
        self._call("kill")
        job = self.jobs.get(jid)
        if job is None or job.location != JobLocation.RETRY:
            return False
        job.location = JobLocation.DEAD
        job.failed_at = job.failed_at or self.now
        job.retry_at = None
        return True

    async def resurrect(self, jid: str) -> bool:
        self._call("resurrect")
        job = self.jobs.get(jid)
        if job is None or job.location != JobLocation.DEAD:
            return False
        job.location = JobLocation.RETRY
        job.retry_at = self.now
        return True

    # --- Status cache ---

    async def cache_queue_status(self, key: str, status: str, ttl: int) -> None:
        self._call("cache_queue_status")
        value = json.dumps({"status": status, "updated_at": int(self.now)})
        self.keys[key] = (value, self.now + ttl)

    async def cached_queue_status(self, key: str) -> Optional[dict[str, Any]]:
        self._call("cached_queue_status")
        value = self._read(key)
        return json.loads(value) if value else None

    async def drop_queue_status(self, key: str) -> None:
        self._call("drop_queue_status")
        self.keys.pop(key, None)


@pytest.fixture
def store() -> MemoryJobStore:
    return MemoryJobStore().add(
        make_job("d1", queue="default", enqueued_at=NOW - 30),
        make_job("d2", queue="default", enqueued_at=NOW - 20),
        make_job("d3", queue="default", enqueued_at=NOW - 10),
        make_job("m1", queue="mailers", job_class="MailWorker", enqueued_at=NOW - 5),
        make_job("c1", queue="critical", job_class="PaymentWorker", enqueued_at=NOW - 1),
    )


@pytest.fixture
def config() -> ManagerConfig:
    return ManagerConfig(
        critical_queues=frozenset({"critical"}),
        queue_priorities={"critical": 10, "mailers": 3},
        refresh_interval_ms=10,
    ).validate()


@pytest.fixture
def registry(store, config) -> QueueRegistry:
    return QueueRegistry(store, config)


@pytest.fixture
def control(store, registry, config) -> QueueControlService:
    return QueueControlService(store, registry, config)


@pytest.fixture
def job_sets(store, config) -> JobSetService:
    return JobSetService(store, config, clock=lambda: NOW)


@pytest.fixture
def aggregator(store, registry, config) -> MetricsAggregator:
    return MetricsAggregator(store, registry, config)
