import logging
import time
from typing import Any, Callable, Optional

from queue_manager.domain.config import ManagerConfig
from queue_manager.domain.errors import InvalidJobAction, InvalidJobId, JobNotFound
from queue_manager.domain.models import JobEntry
from queue_manager.domain.pagination import Pagination
from queue_manager.domain.results import OperationResult
from queue_manager.domain.states import JobAction, JobSetKind
from queue_manager.services.base import ManagementService, operation
from queue_manager.services.formatting import JOB_SET_VIEWS
from queue_manager.store.base import JobStore

logger = logging.getLogger(__name__)

DEFAULT_PER_PAGE = 25

SORT_KEYS: dict[JobSetKind, Callable[[JobEntry], float]] = {
    JobSetKind.SCHEDULED: lambda job: job.at or 0,
    JobSetKind.RETRY: lambda job: job.retry_at or job.failed_at or 0,
    # Most recent failure first
    JobSetKind.DEAD: lambda job: -(job.failed_at or 0),
}

ALLOWED_ACTIONS: dict[JobSetKind, frozenset[JobAction]] = {
    JobSetKind.SCHEDULED: frozenset({JobAction.DELETE, JobAction.ENQUEUE}),
    JobSetKind.RETRY: frozenset({JobAction.DELETE, JobAction.RETRY, JobAction.KILL}),
    JobSetKind.DEAD: frozenset({JobAction.DELETE, JobAction.RESURRECT}),
}

SET_LABELS = {
    JobSetKind.SCHEDULED: "Scheduled job",
    JobSetKind.RETRY: "Retry job",
    JobSetKind.DEAD: "Dead job",
}

ACTION_MESSAGES = {
    JobAction.DELETE: "Job {jid} deleted successfully",
    JobAction.ENQUEUE: "Job {jid} enqueued successfully",
    JobAction.RETRY: "Job {jid} queued for retry",
    JobAction.KILL: "Job {jid} moved to dead set",
    JobAction.RESURRECT: "Job {jid} resurrected successfully",
}


def matches_filter(job: JobEntry, filter: Optional[str]) -> bool:
    return not filter or filter in (job.job_class or "")


class JobSetService(ManagementService):
    """Paginated views and single/bulk transitions over the scheduled, retry and dead sets."""

    def __init__(self, store: JobStore, config: ManagerConfig, clock: Callable[[], float] = time.time):
        super().__init__(config)
        self.store = store
        self.clock = clock

    async def _filtered(self, kind: JobSetKind, filter: Optional[str]) -> list[JobEntry]:
        members = await self.store.set_members(kind)
        jobs = [job for job in members if matches_filter(job, filter)]
        # sorted() is stable, so ties keep the store's order
        return sorted(jobs, key=SORT_KEYS[kind])

    async def _each(self, kind: JobSetKind, filter: Optional[str], action: JobAction) -> tuple[int, list[str]]:
        # Works over a snapshot; jobs added meanwhile are not touched
        done = 0
        failed: list[str] = []
        for job in await self._filtered(kind, filter):
            try:
                moved = await self._transition(kind, action, job.jid)
            except Exception as e:
                logger.warning("Failed to %s job %s in the %s set: %s", action, job.jid, kind, e)
                moved = False
            if moved:
                done += 1
            else:
                failed.append(job.jid)
        return done, failed

    @operation("list {kind} jobs")
    async def list(
        self,
        kind: JobSetKind,
        page: Any = 1,
        per_page: Any = DEFAULT_PER_PAGE,
        filter: Optional[str] = None,
    ) -> OperationResult:
        kind = JobSetKind(kind)
        total = await self.store.set_size(kind)
        jobs = await self._filtered(kind, filter)

        pagination = Pagination.build(page, per_page, len(jobs))
        now = self.clock()
        view = JOB_SET_VIEWS[kind]
        page_jobs = [
            view(job, position, now)
            for position, job in enumerate(pagination.slice(jobs), pagination.offset + 1)
        ]
        return OperationResult.ok(
            f"{kind.capitalize()} jobs retrieved successfully",
            jobs=page_jobs,
            total_count=total,
            filtered_count=len(jobs),
            pagination=pagination.to_dict(),
        )

    # --- Single-job transitions ---

    @operation("{action} job {jid} in the {kind} set")
    async def perform(self, kind: JobSetKind, action: JobAction, jid: Optional[str]) -> OperationResult:
        kind, action = JobSetKind(kind), JobAction(action)
        if action not in ALLOWED_ACTIONS[kind]:
            raise InvalidJobAction(action, kind)
        if not jid or not str(jid).strip():
            raise InvalidJobId()

        if await self.store.find_in_set(kind, jid) is None:
            raise JobNotFound(jid, SET_LABELS[kind])

        # The job can vanish between the lookup and the transition
        if not await self._transition(kind, action, jid):
            raise JobNotFound(jid, SET_LABELS[kind])

        message = ACTION_MESSAGES[action].format(jid=jid)
        self._log_operation(message)
        return OperationResult.ok(message)

    async def _transition(self, kind: JobSetKind, action: JobAction, jid: str) -> bool:
        if action == JobAction.DELETE:
            return await self.store.delete_from_set(kind, jid)
        if action in (JobAction.ENQUEUE, JobAction.RETRY):
            return await self.store.enqueue_from_set(kind, jid)
        if action == JobAction.KILL:
            return await self.store.kill(jid)
        return await self.store.resurrect(jid)

    async def delete(self, kind: JobSetKind, jid: Optional[str]) -> OperationResult:
        return await self.perform(kind, JobAction.DELETE, jid)

    async def enqueue_now(self, jid: Optional[str]) -> OperationResult:
        return await self.perform(JobSetKind.SCHEDULED, JobAction.ENQUEUE, jid)

    async def retry_now(self, jid: Optional[str]) -> OperationResult:
        return await self.perform(JobSetKind.RETRY, JobAction.RETRY, jid)

    async def kill(self, jid: Optional[str]) -> OperationResult:
        return await self.perform(JobSetKind.RETRY, JobAction.KILL, jid)

    async def resurrect(self, jid: Optional[str]) -> OperationResult:
        return await self.perform(JobSetKind.DEAD, JobAction.RESURRECT, jid)

    # --- Bulk transitions ---

    @operation("clear the {kind} set")
    async def clear_all(self, kind: JobSetKind, filter: Optional[str] = None) -> OperationResult:
        kind = JobSetKind(kind)
        if not filter:
            cleared = await self.store.clear_set(kind)
            self._log_operation("%s set cleared - %d jobs removed", kind.capitalize(), cleared)
            return OperationResult.ok(
                f"All {kind} jobs cleared successfully", jobs_cleared=cleared, failed=[]
            )

        cleared, failed = await self._each(kind, filter, JobAction.DELETE)
        message = f"{cleared} {kind} jobs cleared"
        self._log_operation(message)
        return OperationResult.ok(message, jobs_cleared=cleared, failed=failed)

    @operation("retry all jobs in the retry set")
    async def retry_all(self, filter: Optional[str] = None) -> OperationResult:
        retried, failed = await self._each(JobSetKind.RETRY, filter, JobAction.RETRY)
        message = f"{retried} jobs queued for retry"
        self._log_operation(message)
        return OperationResult.ok(message, jobs_retried=retried, failed=failed)

    @operation("resurrect all jobs in the dead set")
    async def resurrect_all(self, filter: Optional[str] = None) -> OperationResult:
        resurrected, failed = await self._each(JobSetKind.DEAD, filter, JobAction.RESURRECT)
        message = f"{resurrected} jobs resurrected"
        self._log_operation(message)
        return OperationResult.ok(message, jobs_resurrected=resurrected, failed=failed)
