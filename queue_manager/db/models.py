from typing import Any, Optional

from sqlalchemy import JSON, BigInteger, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from queue_manager.db.session import Base
from queue_manager.domain.states import JobLocation


class QueueRecord(Base):
    """Queue registration written by the engine on first enqueue."""
    __tablename__ = "queues"

    name: Mapped[str] = mapped_column(String, primary_key=True)
    created_at: Mapped[float] = mapped_column(Float, nullable=False)


class QueueStateKey(Base):
    """
    Auxiliary per-queue state, one row per key:
    queue:<name>:paused, queue:<name>:limit, queue:<name>:process_limit,
    queue:<name>:blocked, plus TTL-bound status cache entries.
    """
    __tablename__ = "queue_state"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expires_at: Mapped[Optional[float]] = mapped_column(Float, nullable=True)


class JobRecord(Base):
    __tablename__ = "jobs"

    jid: Mapped[str] = mapped_column(String, primary_key=True)
    queue: Mapped[str] = mapped_column(String, nullable=False)
    job_class: Mapped[str] = mapped_column(String, nullable=False)
    location: Mapped[JobLocation] = mapped_column(String, default=JobLocation.ENQUEUED, nullable=False)
    args: Mapped[list[Any]] = mapped_column(JSON, default=list)

    # Epoch seconds
    created_at: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    enqueued_at: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    at: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    failed_at: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    retry_at: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Retry bookkeeping
    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    retry_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    error_class: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_backtrace: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    priority: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        Index("ix_jobs_location_queue", "location", "queue"),
    )


class ProcessRecord(Base):
    __tablename__ = "processes"

    identity: Mapped[str] = mapped_column(String, primary_key=True)
    hostname: Mapped[str] = mapped_column(String, nullable=False)
    concurrency: Mapped[int] = mapped_column(Integer, default=10)
    beat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)


class WorkRecord(Base):
    """A worker thread currently executing a job."""
    __tablename__ = "workers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    process_identity: Mapped[str] = mapped_column(String, index=True, nullable=False)
    queue: Mapped[str] = mapped_column(String, index=True, nullable=False)
    jid: Mapped[str] = mapped_column(String, nullable=False)
    run_at: Mapped[float] = mapped_column(Float, nullable=False)


class StatCounter(Base):
    __tablename__ = "stats"

    name: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[int] = mapped_column(BigInteger, default=0)
