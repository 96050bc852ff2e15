import json
import time
from typing import Any, Callable, Iterable, Optional

from sqlalchemy import delete, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from queue_manager.db.models import (
    JobRecord,
    ProcessRecord,
    QueueRecord,
    QueueStateKey,
    StatCounter,
    WorkRecord,
)
from queue_manager.domain.models import JobEntry
from queue_manager.domain.states import JobLocation, JobSetKind
from queue_manager.store.base import QUEUE_KEY_PREFIX, Capability, JobStore, queue_state_key


PAUSED = "paused"
LIMIT = "limit"
PROCESS_LIMIT = "process_limit"
BLOCKED = "blocked"


def _to_entry(row: JobRecord) -> JobEntry:
    return JobEntry(
        jid=row.jid,
        job_class=row.job_class,
        queue=row.queue,
        location=JobLocation(row.location),
        args=list(row.args or []),
        created_at=row.created_at,
        enqueued_at=row.enqueued_at,
        at=row.at,
        failed_at=row.failed_at,
        retry_at=row.retry_at,
        retry_count=row.retry_count or 0,
        retry_limit=row.retry_limit,
        error_class=row.error_class,
        error_message=row.error_message,
        error_backtrace=list(row.error_backtrace) if row.error_backtrace else None,
        priority=row.priority,
    )


class SqlJobStore(JobStore):
    """
    JobStore over the relational schema in queue_manager.db.models.

    Every call opens its own short-lived session; nothing spans two calls, so
    a size read followed by a clear is not atomic.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        capabilities: Iterable[Capability] = tuple(Capability),
        clock: Callable[[], float] = time.time,
    ):
        self._session_factory = session_factory
        self._capabilities = frozenset(capabilities)
        self._clock = clock

    # --- Queue discovery ---

    async def all_queue_names(self) -> list[str]:
        async with self._session_factory() as session:
            return list((await session.scalars(select(QueueRecord.name))).all())

    async def queue_set_members(self) -> list[str]:
        stmt = select(distinct(JobRecord.queue)).where(JobRecord.location == JobLocation.ENQUEUED)
        async with self._session_factory() as session:
            return list((await session.scalars(stmt)).all())

    async def scan_queue_keys(self) -> list[str]:
        stmt = select(QueueStateKey.key).where(
            QueueStateKey.key.startswith(QUEUE_KEY_PREFIX, autoescape=True)
        )
        async with self._session_factory() as session:
            return list((await session.scalars(stmt)).all())

    # --- Queue state ---

    def _enqueued(self, name: str):
        return (JobRecord.queue == name, JobRecord.location == JobLocation.ENQUEUED)

    async def queue_size(self, name: str) -> int:
        stmt = select(func.count()).select_from(JobRecord).where(*self._enqueued(name))
        async with self._session_factory() as session:
            return (await session.scalar(stmt)) or 0

    async def queue_latency(self, name: str) -> float:
        stmt = select(func.min(JobRecord.enqueued_at)).where(*self._enqueued(name))
        async with self._session_factory() as session:
            oldest = await session.scalar(stmt)
        if oldest is None:
            return 0.0
        return max(self._clock() - oldest, 0.0)

    async def is_paused(self, name: str) -> bool:
        return await self._read_key(queue_state_key(name, PAUSED)) is not None

    async def pause(self, name: str) -> int:
        key = queue_state_key(name, PAUSED)
        async with self._session_factory() as session:
            async with session.begin():
                if await session.get(QueueStateKey, key) is not None:
                    return 0
                session.add(QueueStateKey(key=key, value="1"))
        return 1

    async def unpause(self, name: str) -> int:
        stmt = (
            delete(QueueStateKey)
            .where(QueueStateKey.key == queue_state_key(name, PAUSED))
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(stmt)
        return result.rowcount

    async def queue_jobs(self, name: str, offset: int, limit: int) -> list[JobEntry]:
        stmt = (
            select(JobRecord)
            .where(*self._enqueued(name))
            .order_by(JobRecord.enqueued_at.asc(), JobRecord.jid.asc())
            .offset(offset)
            .limit(limit)
        )
        async with self._session_factory() as session:
            return [_to_entry(row) for row in (await session.scalars(stmt)).all()]

    async def find_queue_job(self, name: str, jid: str) -> Optional[JobEntry]:
        stmt = select(JobRecord).where(JobRecord.jid == jid, *self._enqueued(name))
        async with self._session_factory() as session:
            row = (await session.scalars(stmt)).first()
            return _to_entry(row) if row else None

    async def delete_queue_job(self, name: str, jid: str) -> bool:
        stmt = (
            delete(JobRecord)
            .where(JobRecord.jid == jid, *self._enqueued(name))
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(stmt)
        return result.rowcount > 0

    async def clear_queue(self, name: str) -> int:
        stmt = delete(JobRecord).where(*self._enqueued(name)).execution_options(synchronize_session=False)
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(stmt)
        return result.rowcount

    async def remove_queue(self, name: str) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(
                    delete(QueueRecord)
                    .where(QueueRecord.name == name)
                    .execution_options(synchronize_session=False)
                )
                await session.execute(
                    delete(JobRecord)
                    .where(*self._enqueued(name))
                    .execution_options(synchronize_session=False)
                )
                await session.execute(
                    delete(QueueStateKey)
                    .where(QueueStateKey.key.startswith(f"{QUEUE_KEY_PREFIX}{name}:", autoescape=True))
                    .execution_options(synchronize_session=False)
                )

    # --- Workers & counters ---

    async def _count(self, stmt) -> int:
        async with self._session_factory() as session:
            return (await session.scalar(stmt)) or 0

    async def busy_for_queue(self, name: str) -> int:
        return await self._count(
            select(func.count()).select_from(WorkRecord).where(WorkRecord.queue == name)
        )

    async def worker_count(self) -> int:
        return await self._count(select(func.count()).select_from(WorkRecord))

    async def process_count(self) -> int:
        return await self._count(select(func.count()).select_from(ProcessRecord))

    async def stat_totals(self) -> dict[str, int]:
        async with self._session_factory() as session:
            rows = (await session.execute(select(StatCounter.name, StatCounter.value))).all()
        totals = {"processed": 0, "failed": 0}
        totals.update({name: value or 0 for name, value in rows})
        return totals

    # --- Optional extensions ---

    def capabilities(self) -> frozenset[Capability]:
        return self._capabilities

    async def _read_int(self, key: str) -> Optional[int]:
        value = await self._read_key(key)
        return int(value) if value is not None else None

    async def get_limit(self, name: str) -> Optional[int]:
        return await self._read_int(queue_state_key(name, LIMIT))

    async def set_limit(self, name: str, limit: Optional[int]) -> None:
        await self._write_key(queue_state_key(name, LIMIT), None if limit is None else str(limit))

    async def get_process_limit(self, name: str) -> Optional[int]:
        return await self._read_int(queue_state_key(name, PROCESS_LIMIT))

    async def set_process_limit(self, name: str, limit: Optional[int]) -> None:
        await self._write_key(queue_state_key(name, PROCESS_LIMIT), None if limit is None else str(limit))

    async def is_blocked(self, name: str) -> bool:
        return await self._read_key(queue_state_key(name, BLOCKED)) is not None

    async def set_blocked(self, name: str, blocked: bool) -> None:
        await self._write_key(queue_state_key(name, BLOCKED), "1" if blocked else None)

    # --- Job sets ---

    async def set_size(self, kind: JobSetKind) -> int:
        return await self._count(
            select(func.count()).select_from(JobRecord).where(JobRecord.location == kind.location)
        )

    async def set_members(self, kind: JobSetKind) -> list[JobEntry]:
        stmt = select(JobRecord).where(JobRecord.location == kind.location)
        async with self._session_factory() as session:
            return [_to_entry(row) for row in (await session.scalars(stmt)).all()]

    async def find_in_set(self, kind: JobSetKind, jid: str) -> Optional[JobEntry]:
        async with self._session_factory() as session:
            row = await self._find_row(session, kind.location, jid)
            return _to_entry(row) if row else None

    async def delete_from_set(self, kind: JobSetKind, jid: str) -> bool:
        stmt = (
            delete(JobRecord)
            .where(JobRecord.jid == jid, JobRecord.location == kind.location)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(stmt)
        return result.rowcount > 0

    async def clear_set(self, kind: JobSetKind) -> int:
        stmt = (
            delete(JobRecord)
            .where(JobRecord.location == kind.location)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(stmt)
        return result.rowcount

    async def enqueue_from_set(self, kind: JobSetKind, jid: str) -> bool:
        now = self._clock()
        async with self._session_factory() as session:
            async with session.begin():
                row = await self._find_row(session, kind.location, jid)
                if row is None:
                    return False
                row.location = JobLocation.ENQUEUED
                row.enqueued_at = now
                row.at = None
                row.retry_at = None
                if await session.get(QueueRecord, row.queue) is None:
                    session.add(QueueRecord(name=row.queue, created_at=now))
        return True

    async def kill(self, jid: str) -> bool:
        now = self._clock()
        async with self._session_factory() as session:
            async with session.begin():
                row = await self._find_row(session, JobLocation.RETRY, jid)
                if row is None:
                    return False
                row.location = JobLocation.DEAD
                row.failed_at = row.failed_at or now
                row.retry_at = None
        return True

    async def resurrect(self, jid: str) -> bool:
        now = self._clock()
        async with self._session_factory() as session:
            async with session.begin():
                row = await self._find_row(session, JobLocation.DEAD, jid)
                if row is None:
                    return False
                row.location = JobLocation.RETRY
                row.retry_at = now
        return True

    # --- Status cache ---

    async def cache_queue_status(self, key: str, status: str, ttl: int) -> None:
        now = self._clock()
        value = json.dumps({"status": status, "updated_at": int(now)})
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(
                    delete(QueueStateKey)
                    .where(QueueStateKey.expires_at.is_not(None), QueueStateKey.expires_at <= now)
                    .execution_options(synchronize_session=False)
                )
                await session.merge(QueueStateKey(key=key, value=value, expires_at=now + ttl))

    async def cached_queue_status(self, key: str) -> Optional[dict[str, Any]]:
        value = await self._read_key(key)
        return json.loads(value) if value else None

    async def drop_queue_status(self, key: str) -> None:
        await self._write_key(key, None)

    # --- Seeding (engine-side writes used by scripts and tests) ---

    async def push(self, entry: JobEntry) -> None:
        now = self._clock()
        async with self._session_factory() as session:
            async with session.begin():
                if entry.location == JobLocation.ENQUEUED and await session.get(QueueRecord, entry.queue) is None:
                    session.add(QueueRecord(name=entry.queue, created_at=now))
                session.add(JobRecord(
                    jid=entry.jid,
                    queue=entry.queue,
                    job_class=entry.job_class,
                    location=entry.location,
                    args=list(entry.args),
                    created_at=entry.created_at or now,
                    enqueued_at=entry.enqueued_at,
                    at=entry.at,
                    failed_at=entry.failed_at,
                    retry_at=entry.retry_at,
                    retry_count=entry.retry_count,
                    retry_limit=entry.retry_limit,
                    error_class=entry.error_class,
                    error_message=entry.error_message,
                    error_backtrace=entry.error_backtrace,
                    priority=entry.priority,
                ))

    async def record_work(self, process_identity: str, queue: str, jid: str) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                if await session.get(ProcessRecord, process_identity) is None:
                    session.add(ProcessRecord(
                        identity=process_identity,
                        hostname=process_identity.split(":")[0],
                        beat=self._clock(),
                    ))
                session.add(WorkRecord(process_identity=process_identity, queue=queue, jid=jid, run_at=self._clock()))

    async def increment_stat(self, name: str, by: int = 1) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                counter = await session.get(StatCounter, name)
                if counter is None:
                    session.add(StatCounter(name=name, value=by))
                else:
                    counter.value += by

    # --- Helpers ---

    async def _find_row(self, session: AsyncSession, location: JobLocation, jid: str) -> Optional[JobRecord]:
        stmt = select(JobRecord).where(JobRecord.jid == jid, JobRecord.location == location)
        return (await session.scalars(stmt)).first()

    async def _read_key(self, key: str) -> Optional[str]:
        async with self._session_factory() as session:
            row = await session.get(QueueStateKey, key)
        if row is None:
            return None
        if row.expires_at is not None and row.expires_at <= self._clock():
            return None
        return row.value

    async def _write_key(self, key: str, value: Optional[str]) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                if value is None:
                    await session.execute(
                        delete(QueueStateKey)
                        .where(QueueStateKey.key == key)
                        .execution_options(synchronize_session=False)
                    )
                else:
                    await session.merge(QueueStateKey(key=key, value=value))
