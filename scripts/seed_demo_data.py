#!/usr/bin/env python3
"""Seeds a local database with queues, job sets and worker activity for manual testing."""
import asyncio
import logging
import random
import time
import uuid

from queue_manager.db.session import build_engine, build_session_factory, create_tables
from queue_manager.domain.models import JobEntry
from queue_manager.domain.states import JobLocation
from queue_manager.settings import settings
from queue_manager.store.sql import SqlJobStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("seed")

QUEUES = ["default", "mailers", "reports", "critical"]
JOB_CLASSES = ["HardWorker", "MailWorker", "ReportWorker", "PaymentWorker"]


def _job(location: JobLocation, now: float, **fields) -> JobEntry:
    return JobEntry(
        jid=uuid.uuid4().hex[:24],
        job_class=random.choice(JOB_CLASSES),
        queue=random.choice(QUEUES),
        location=location,
        args=[random.randint(1, 1000)],
        created_at=now - random.randint(60, 7200),
        **fields,
    )


async def seed():
    engine = build_engine(settings.SQLALCHEMY_DATABASE_URI)
    await create_tables(engine)
    store = SqlJobStore(build_session_factory(engine))
    now = time.time()

    for _ in range(40):
        await store.push(_job(JobLocation.ENQUEUED, now, enqueued_at=now - random.randint(1, 600)))
    for _ in range(15):
        await store.push(_job(JobLocation.SCHEDULED, now, at=now + random.randint(30, 86400)))
    for _ in range(12):
        await store.push(_job(
            JobLocation.RETRY, now,
            failed_at=now - random.randint(10, 3600),
            retry_at=now + random.randint(10, 1800),
            retry_count=random.randint(1, 5),
            error_class="RuntimeError",
            error_message="upstream timed out",
        ))
    for _ in range(8):
        await store.push(_job(
            JobLocation.DEAD, now,
            failed_at=now - random.randint(3600, 86400 * 3),
            retry_count=25,
            error_class="ValueError",
            error_message="invalid payload",
            error_backtrace=[f"app/workers.py:{n}:in `perform'" for n in range(10, 18)],
        ))

    for queue in QUEUES[:3]:
        await store.record_work(f"worker-{queue}:1", queue, uuid.uuid4().hex[:24])
    await store.increment_stat("processed", 1200)
    await store.increment_stat("failed", 37)

    logger.info("Seeded %d queues with demo jobs.", len(QUEUES))
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
