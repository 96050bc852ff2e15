from typing import Any, Optional

from fastapi import APIRouter
from pydantic import BaseModel

from queue_manager.api.deps import Metrics, QueueControl
from queue_manager.api.responses import envelope

router = APIRouter()


class LimitRequest(BaseModel):
    # Validated by the service so a bad or missing value maps to InvalidLimit
    limit: Any = None


class DeleteJobRequest(BaseModel):
    job_id: Optional[str] = None


def _limit(payload: Optional[LimitRequest]) -> Any:
    return payload.limit if payload else None


@router.post("/pause_all")
async def pause_all(control: QueueControl):
    return envelope(await control.bulk_pause())


@router.post("/resume_all")
async def resume_all(control: QueueControl):
    return envelope(await control.bulk_resume())


@router.get("/summary")
async def summary(metrics: Metrics):
    return envelope(await metrics.summary(), no_cache=True)


@router.post("/{name}/pause")
async def pause_queue(name: str, control: QueueControl):
    return envelope(await control.pause(name))


@router.post("/{name}/resume")
async def resume_queue(name: str, control: QueueControl):
    return envelope(await control.resume(name))


@router.post("/{name}/block")
async def block_queue(name: str, control: QueueControl):
    return envelope(await control.block(name))


@router.post("/{name}/unblock")
async def unblock_queue(name: str, control: QueueControl):
    return envelope(await control.unblock(name))


@router.post("/{name}/clear")
async def clear_queue(name: str, control: QueueControl):
    return envelope(await control.clear(name))


@router.delete("/{name}")
async def delete_queue(name: str, control: QueueControl):
    return envelope(await control.delete(name))


@router.get("/{name}/status")
async def queue_status(name: str, control: QueueControl):
    return envelope(await control.status(name), no_cache=True)


# Raw strings so Pagination clamps malformed values instead of rejecting them
@router.get("/{name}/jobs")
async def queue_jobs(name: str, control: QueueControl, page: str = "1", per_page: str = "10"):
    return envelope(await control.jobs(name, page, per_page))


@router.delete("/{name}/delete_job")
async def delete_queue_job(name: str, control: QueueControl, payload: Optional[DeleteJobRequest] = None):
    return envelope(await control.delete_job(name, payload.job_id if payload else None))


@router.post("/{name}/set_limit")
async def set_limit(name: str, control: QueueControl, payload: Optional[LimitRequest] = None):
    return envelope(await control.set_limit(name, _limit(payload)))


@router.delete("/{name}/remove_limit")
async def remove_limit(name: str, control: QueueControl):
    return envelope(await control.remove_limit(name))


@router.post("/{name}/set_process_limit")
async def set_process_limit(name: str, control: QueueControl, payload: Optional[LimitRequest] = None):
    return envelope(await control.set_process_limit(name, _limit(payload)))


@router.delete("/{name}/remove_process_limit")
async def remove_process_limit(name: str, control: QueueControl):
    return envelope(await control.remove_process_limit(name))
