from dataclasses import dataclass, field
from typing import Any, Optional

from queue_manager.domain.states import JobLocation


@dataclass
class JobEntry:
    jid: str
    job_class: str
    queue: str
    location: JobLocation
    args: list[Any] = field(default_factory=list)

    # Epoch seconds
    created_at: Optional[float] = None
    enqueued_at: Optional[float] = None
    at: Optional[float] = None
    failed_at: Optional[float] = None
    retry_at: Optional[float] = None

    retry_count: int = 0
    retry_limit: Optional[int] = None
    error_class: Optional[str] = None
    error_message: Optional[str] = None
    error_backtrace: Optional[list[str]] = None
    priority: Optional[int] = None


@dataclass
class QueueMetrics:
    name: str
    size: int
    latency: float
    paused: bool
    critical: bool
    priority: int
    busy: int
    limit: Optional[int] = None
    process_limit: Optional[int] = None
    blocked: bool = False


@dataclass
class GlobalStats:
    processed: int
    failed: int
    busy: int
    enqueued: int
    processes: int
    workers: int
    retry_size: int
    dead_size: int
    scheduled_size: int
