import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from queue_manager.domain.config import ManagerConfig
from queue_manager.domain.errors import (
    CapabilityUnavailable,
    CriticalQueueProtected,
    InvalidJobId,
    InvalidLimit,
    JobNotFound,
    UnexpectedBackendResult,
)
from queue_manager.domain.pagination import Pagination
from queue_manager.domain.results import OperationResult
from queue_manager.domain.states import QueueSettingOp
from queue_manager.services.base import ManagementService, operation
from queue_manager.services.formatting import queue_job_view
from queue_manager.services.registry import QueueRegistry
from queue_manager.store.base import Capability, JobStore

logger = logging.getLogger(__name__)

# "OK" and 1 mean the state changed, 0 means it was already applied
ACKNOWLEDGED_RESULTS = ("OK", 1, 0)


def operation_acknowledged(result: Any) -> bool:
    return not isinstance(result, bool) and result in ACKNOWLEDGED_RESULTS


def positive_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


@dataclass(frozen=True)
class SettingHandler:
    capability: Capability
    apply: Callable[[JobStore, str, Optional[int]], Awaitable[None]]
    requires_limit: bool
    outcome: str


SETTING_HANDLERS: dict[QueueSettingOp, SettingHandler] = {
    QueueSettingOp.SET_LIMIT: SettingHandler(
        Capability.LIMIT, lambda store, name, value: store.set_limit(name, value), True, "limit set to {value}"
    ),
    QueueSettingOp.REMOVE_LIMIT: SettingHandler(
        Capability.LIMIT, lambda store, name, value: store.set_limit(name, None), False, "limit removed"
    ),
    QueueSettingOp.SET_PROCESS_LIMIT: SettingHandler(
        Capability.PROCESS_LIMIT,
        lambda store, name, value: store.set_process_limit(name, value),
        True,
        "process_limit set to {value}",
    ),
    QueueSettingOp.REMOVE_PROCESS_LIMIT: SettingHandler(
        Capability.PROCESS_LIMIT,
        lambda store, name, value: store.set_process_limit(name, None),
        False,
        "process_limit removed",
    ),
    QueueSettingOp.BLOCK: SettingHandler(
        Capability.BLOCKING, lambda store, name, value: store.set_blocked(name, True), False, "blocked successfully"
    ),
    QueueSettingOp.UNBLOCK: SettingHandler(
        Capability.BLOCKING, lambda store, name, value: store.set_blocked(name, False), False, "unblocked successfully"
    ),
}


class QueueControlService(ManagementService):
    """Per-queue mutations and protection-aware bulk pause/resume."""

    def __init__(self, store: JobStore, registry: QueueRegistry, config: ManagerConfig):
        super().__init__(config)
        self.store = store
        self.registry = registry

    # --- Pause / resume ---

    @operation("pause queue '{name}'")
    async def pause(self, name: str) -> OperationResult:
        await self.registry.require(name)
        if self.config.is_critical(name):
            raise CriticalQueueProtected(name, "pause")

        result = await self.store.pause(name)
        if not operation_acknowledged(result):
            raise UnexpectedBackendResult(f"pause queue '{name}'", result)

        await self._cache_status(name, "paused")
        self._log_operation("Queue '%s' paused - result: %s", name, result)
        return OperationResult.ok(f"Queue '{name}' paused successfully", queue=name, paused=True)

    @operation("resume queue '{name}'")
    async def resume(self, name: str) -> OperationResult:
        await self.registry.require(name)

        result = await self.store.unpause(name)
        if not operation_acknowledged(result):
            raise UnexpectedBackendResult(f"resume queue '{name}'", result)

        await self._cache_status(name, "active")
        already = " (already active)" if result == 0 else ""
        self._log_operation("Queue '%s' resumed - result: %s%s", name, result, already)
        return OperationResult.ok(f"Queue '{name}' resumed successfully", queue=name, paused=False)

    @operation("bulk pause operation")
    async def bulk_pause(self) -> OperationResult:
        return await self._bulk("pause", "paused", self.pause)

    @operation("bulk resume operation")
    async def bulk_resume(self) -> OperationResult:
        return await self._bulk("resume", "resumed", self.resume)

    async def _bulk(
        self,
        action: str,
        done: str,
        single: Callable[[str], Awaitable[OperationResult]],
    ) -> OperationResult:
        # Independent units: one queue failing never fails the batch
        succeeded, skipped = 0, 0
        failed: list[str] = []
        for name in await self.registry.list_queues(refresh=True):
            if self.config.is_critical(name):
                skipped += 1
                continue
            result = await single(name)
            if result.success:
                succeeded += 1
            else:
                failed.append(name)

        message = f"Bulk {action} completed. {done.capitalize()}: {succeeded}, Skipped: {skipped}"
        if failed:
            message += f", Failed: {', '.join(failed)}"
        self._log_operation(message)
        return OperationResult.ok(message, **{done: succeeded, "skipped": skipped, "failed": failed})

    # --- Limits & blocking ---

    @operation("{op} for queue '{name}'")
    async def apply_setting(self, name: str, op: QueueSettingOp, value: Optional[int] = None) -> OperationResult:
        handler = SETTING_HANDLERS[QueueSettingOp(op)]
        if handler.requires_limit and not positive_integer(value):
            raise InvalidLimit(value)
        await self.registry.require(name)
        if not self.store.supports(handler.capability):
            raise CapabilityUnavailable(handler.capability)

        await handler.apply(self.store, name, value if handler.requires_limit else None)
        message = f"Queue '{name}' {handler.outcome.format(value=value)}"
        self._log_operation(message)
        return OperationResult.ok(message, queue=name)

    async def set_limit(self, name: str, limit: Any) -> OperationResult:
        return await self.apply_setting(name, QueueSettingOp.SET_LIMIT, limit)

    async def remove_limit(self, name: str) -> OperationResult:
        return await self.apply_setting(name, QueueSettingOp.REMOVE_LIMIT)

    async def set_process_limit(self, name: str, limit: Any) -> OperationResult:
        return await self.apply_setting(name, QueueSettingOp.SET_PROCESS_LIMIT, limit)

    async def remove_process_limit(self, name: str) -> OperationResult:
        return await self.apply_setting(name, QueueSettingOp.REMOVE_PROCESS_LIMIT)

    async def block(self, name: str) -> OperationResult:
        return await self.apply_setting(name, QueueSettingOp.BLOCK)

    async def unblock(self, name: str) -> OperationResult:
        return await self.apply_setting(name, QueueSettingOp.UNBLOCK)

    # --- Destructive operations ---

    @operation("clear queue '{name}'")
    async def clear(self, name: str) -> OperationResult:
        await self.registry.require(name)
        if self.config.is_critical(name):
            raise CriticalQueueProtected(name, "clear")

        # Jobs enqueued after this call are not covered
        cleared = await self.store.clear_queue(name)
        self._log_operation("Queue '%s' cleared - %d jobs removed", name, cleared)
        return OperationResult.ok(f"Queue '{name}' cleared successfully", jobs_cleared=cleared)

    @operation("delete queue '{name}'")
    async def delete(self, name: str) -> OperationResult:
        await self.registry.require(name)
        if self.config.is_critical(name):
            raise CriticalQueueProtected(name, "delete")

        cleared = await self.store.clear_queue(name)
        await self.store.remove_queue(name)
        self.registry.invalidate()
        await self._drop_cached_status(name)

        self._log_operation("Queue '%s' deleted completely - %d jobs removed", name, cleared)
        return OperationResult.ok(f"Queue '{name}' deleted successfully", jobs_cleared=cleared)

    # --- Inspection ---

    @operation("get status for queue '{name}'")
    async def status(self, name: str) -> OperationResult:
        await self.registry.require(name)
        data = {
            "name": name,
            "size": await self.store.queue_size(name),
            "latency": round(await self.store.queue_latency(name), 2),
            "paused": await self.store.is_paused(name),
            "critical": self.config.is_critical(name),
            "priority": self.config.priority_for(name),
        }
        if self.config.enable_caching:
            data["last_operation"] = await self.store.cached_queue_status(self.config.status_cache_key(name))
        return OperationResult.ok("Queue status retrieved successfully", **data)

    @operation("get jobs for queue '{name}'")
    async def jobs(self, name: str, page: Any = 1, per_page: Any = 10) -> OperationResult:
        await self.registry.require(name)
        size = await self.store.queue_size(name)
        pagination = Pagination.build(page, per_page, size)

        entries = await self.store.queue_jobs(name, pagination.offset, pagination.per_page)
        jobs = [queue_job_view(job, position) for position, job in enumerate(entries, pagination.offset + 1)]
        return OperationResult.ok(
            "Queue jobs retrieved successfully",
            queue_name=name,
            size=size,
            latency=round(await self.store.queue_latency(name), 2),
            jobs=jobs,
            pagination=pagination.to_dict(),
        )

    @operation("delete job {jid} from queue '{name}'")
    async def delete_job(self, name: str, jid: Optional[str]) -> OperationResult:
        if not jid or not str(jid).strip():
            raise InvalidJobId()
        await self.registry.require(name)

        if await self.store.find_queue_job(name, jid) is None:
            raise JobNotFound(jid)
        await self.store.delete_queue_job(name, jid)

        self._log_operation("Job %s deleted from queue '%s'", jid, name)
        return OperationResult.ok(f"Job {jid} deleted successfully")

    async def _cache_status(self, name: str, status: str):
        if not self.config.enable_caching:
            return
        try:
            await self.store.cache_queue_status(self.config.status_cache_key(name), status, self.config.cache_ttl)
        except Exception as e:
            logger.error("Failed to update queue stats for '%s': %s", name, e)

    async def _drop_cached_status(self, name: str):
        if not self.config.enable_caching:
            return
        try:
            await self.store.drop_queue_status(self.config.status_cache_key(name))
        except Exception as e:
            logger.error("Failed to drop cached status for '%s': %s", name, e)
