import logging
from dataclasses import asdict
from typing import Any

from queue_manager.domain.config import ManagerConfig
from queue_manager.domain.models import GlobalStats, QueueMetrics
from queue_manager.domain.results import OperationResult, utc_timestamp
from queue_manager.domain.states import JobSetKind
from queue_manager.services.base import ManagementService, operation
from queue_manager.services.registry import QueueRegistry
from queue_manager.store.base import Capability, JobStore
from queue_manager.telemetry import (
    FAILED_TOTAL,
    JOB_SET_SIZE,
    PER_QUEUE_GAUGES,
    PROCESSED_TOTAL,
    QUEUE_BUSY,
    QUEUE_LATENCY,
    QUEUE_PAUSED,
    QUEUE_SIZE,
)

logger = logging.getLogger(__name__)

# Queue label sets currently exported by the per-queue gauges
_published_queues: set[str] = set()


class MetricsAggregator(ManagementService):
    """
    Builds the global and per-queue snapshot served by /metrics and the live feed.

    compute() lets backend errors propagate; snapshot() and summary() are the
    operation-boundary wrappers used by the HTTP layer.
    """

    def __init__(self, store: JobStore, registry: QueueRegistry, config: ManagerConfig):
        super().__init__(config)
        self.store = store
        self.registry = registry

    async def queue_metrics(self, name: str) -> QueueMetrics:
        store = self.store
        metrics = QueueMetrics(
            name=name,
            size=await store.queue_size(name),
            latency=round(await store.queue_latency(name), 2),
            paused=await store.is_paused(name),
            critical=self.config.is_critical(name),
            priority=self.config.priority_for(name),
            busy=await store.busy_for_queue(name),
        )
        if store.supports(Capability.LIMIT):
            metrics.limit = await store.get_limit(name)
        if store.supports(Capability.PROCESS_LIMIT):
            metrics.process_limit = await store.get_process_limit(name)
        if store.supports(Capability.BLOCKING):
            metrics.blocked = await store.is_blocked(name)
        return metrics

    async def compute(self) -> dict[str, Any]:
        queues = [await self.queue_metrics(name) for name in await self.registry.list_queues(refresh=True)]
        totals = await self.store.stat_totals()

        stats = GlobalStats(
            processed=totals.get("processed", 0),
            failed=totals.get("failed", 0),
            busy=sum(q.busy for q in queues),
            enqueued=sum(q.size for q in queues),
            processes=await self.store.process_count(),
            workers=await self.store.worker_count(),
            retry_size=await self.store.set_size(JobSetKind.RETRY),
            dead_size=await self.store.set_size(JobSetKind.DEAD),
            scheduled_size=await self.store.set_size(JobSetKind.SCHEDULED),
        )
        publish(stats, queues)
        return {
            "global_stats": asdict(stats),
            "queues": {q.name: asdict(q) for q in queues},
            "timestamp": utc_timestamp(),
        }

    @operation("compute metrics")
    async def snapshot(self) -> OperationResult:
        return OperationResult.ok(**await self.compute())

    @operation("build queue summary")
    async def summary(self) -> OperationResult:
        queues = [await self.queue_metrics(name) for name in await self.registry.list_queues()]
        return OperationResult.ok(
            total_queues=len(queues),
            total_enqueued=sum(q.size for q in queues),
            total_busy=sum(q.busy for q in queues),
            paused_queues=sum(1 for q in queues if q.paused),
            critical_queues=sum(1 for q in queues if q.critical),
        )


def publish(stats: GlobalStats, queues: list[QueueMetrics]):
    PROCESSED_TOTAL.set(stats.processed)
    FAILED_TOTAL.set(stats.failed)
    JOB_SET_SIZE.labels(job_set=JobSetKind.RETRY).set(stats.retry_size)
    JOB_SET_SIZE.labels(job_set=JobSetKind.DEAD).set(stats.dead_size)
    JOB_SET_SIZE.labels(job_set=JobSetKind.SCHEDULED).set(stats.scheduled_size)

    current = set()
    for q in queues:
        QUEUE_SIZE.labels(queue=q.name).set(q.size)
        QUEUE_LATENCY.labels(queue=q.name).set(q.latency)
        QUEUE_BUSY.labels(queue=q.name).set(q.busy)
        QUEUE_PAUSED.labels(queue=q.name).set(1 if q.paused else 0)
        current.add(q.name)

    for name in _published_queues - current:
        for gauge in PER_QUEUE_GAUGES:
            try:
                gauge.remove(name)
            except KeyError:
                # Never exported by this gauge
                pass
    _published_queues.clear()
    _published_queues.update(current)
