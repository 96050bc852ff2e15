from typing import Any, Optional

from queue_manager.domain.models import JobEntry
from queue_manager.domain.states import JobSetKind
from queue_manager.utils.timefmt import format_epoch, time_ago, time_until

DEFAULT_RETRY_LIMIT = 25
BACKTRACE_LINES = 5


def _base_view(job: JobEntry, position: int) -> dict[str, Any]:
    return {
        "position": position,
        "jid": job.jid,
        "class": job.job_class,
        "args": job.args,
        "queue": job.queue,
        "created_at": format_epoch(job.created_at),
        "retry_count": job.retry_count,
    }


def queue_job_view(job: JobEntry, position: int) -> dict[str, Any]:
    view = _base_view(job, position)
    view["enqueued_at"] = format_epoch(job.enqueued_at)
    return view


def scheduled_job_view(job: JobEntry, position: int, now: Optional[float] = None) -> dict[str, Any]:
    view = _base_view(job, position)
    view.update(
        scheduled_at=format_epoch(job.at),
        scheduled_at_epoch=job.at,
        time_until_execution=time_until(job.at, now),
        priority=job.priority,
    )
    return view


def retry_job_view(job: JobEntry, position: int, now: Optional[float] = None) -> dict[str, Any]:
    view = _base_view(job, position)
    view.update(
        failed_at=format_epoch(job.failed_at),
        retry_at=format_epoch(job.retry_at),
        retry_at_epoch=job.retry_at,
        retry_limit=job.retry_limit if job.retry_limit is not None else DEFAULT_RETRY_LIMIT,
        error_class=job.error_class,
        error_message=job.error_message,
        failed_at_relative=time_ago(job.failed_at, now),
        next_retry_relative=time_until(job.retry_at, now) if job.retry_at is not None else None,
    )
    return view


def dead_job_view(job: JobEntry, position: int, now: Optional[float] = None) -> dict[str, Any]:
    view = _base_view(job, position)
    view.update(
        failed_at=format_epoch(job.failed_at),
        failed_at_epoch=job.failed_at,
        error_class=job.error_class,
        error_message=job.error_message,
        backtrace=job.error_backtrace[:BACKTRACE_LINES] if job.error_backtrace else None,
        failed_at_relative=time_ago(job.failed_at, now),
    )
    return view


JOB_SET_VIEWS = {
    JobSetKind.SCHEDULED: scheduled_job_view,
    JobSetKind.RETRY: retry_job_view,
    JobSetKind.DEAD: dead_job_view,
}
