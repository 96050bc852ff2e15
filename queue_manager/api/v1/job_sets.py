from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel

from queue_manager.api.deps import JobSets
from queue_manager.api.responses import envelope
from queue_manager.domain.states import JobSetKind
from queue_manager.services.job_sets import DEFAULT_PER_PAGE

router = APIRouter()


class FilterRequest(BaseModel):
    filter: Optional[str] = None


def _filter(payload: Optional[FilterRequest]) -> Optional[str]:
    return payload.filter if payload else None


def _register_set_routes(prefix: str, kind: JobSetKind):
    @router.get(prefix, name=f"list_{kind}")
    async def list_jobs(
        job_sets: JobSets,
        page: str = "1",
        per_page: str = str(DEFAULT_PER_PAGE),
        filter: Optional[str] = None,
    ):
        return envelope(await job_sets.list(kind, page, per_page, filter), no_cache=True)

    @router.post(f"{prefix}/clear", name=f"clear_{kind}")
    async def clear_jobs(job_sets: JobSets, payload: Optional[FilterRequest] = None):
        return envelope(await job_sets.clear_all(kind, _filter(payload)))

    @router.delete(f"{prefix}/{{jid}}", name=f"delete_{kind}_job")
    async def delete_job(jid: str, job_sets: JobSets):
        return envelope(await job_sets.delete(kind, jid))


_register_set_routes("/scheduled", JobSetKind.SCHEDULED)
_register_set_routes("/retries", JobSetKind.RETRY)
_register_set_routes("/dead", JobSetKind.DEAD)


@router.post("/retries/retry_all")
async def retry_all(job_sets: JobSets, payload: Optional[FilterRequest] = None):
    return envelope(await job_sets.retry_all(_filter(payload)))


@router.post("/dead/resurrect_all")
async def resurrect_all(job_sets: JobSets, payload: Optional[FilterRequest] = None):
    return envelope(await job_sets.resurrect_all(_filter(payload)))


@router.post("/scheduled/{jid}/enqueue")
async def enqueue_scheduled(jid: str, job_sets: JobSets):
    return envelope(await job_sets.enqueue_now(jid))


@router.post("/retries/{jid}/retry")
async def retry_job(jid: str, job_sets: JobSets):
    return envelope(await job_sets.retry_now(jid))


@router.post("/retries/{jid}/kill")
async def kill_job(jid: str, job_sets: JobSets):
    return envelope(await job_sets.kill(jid))


@router.post("/dead/{jid}/resurrect")
async def resurrect_job(jid: str, job_sets: JobSets):
    return envelope(await job_sets.resurrect(jid))
