from enum import StrEnum, auto


class JobLocation(StrEnum):
    ENQUEUED = auto()   # Waiting in a named queue
    SCHEDULED = auto()  # Deferred until its `at` time
    RETRY = auto()      # Failed, waiting for the next attempt
    DEAD = auto()       # Retries exhausted or killed


class JobSetKind(StrEnum):
    SCHEDULED = auto()
    RETRY = auto()
    DEAD = auto()

    @property
    def location(self) -> JobLocation:
        return JobLocation(self.value)


class JobAction(StrEnum):
    DELETE = auto()
    ENQUEUE = auto()    # scheduled -> origin queue
    RETRY = auto()      # retry -> origin queue
    KILL = auto()       # retry -> dead
    RESURRECT = auto()  # dead -> retry


class QueueSettingOp(StrEnum):
    SET_LIMIT = auto()
    REMOVE_LIMIT = auto()
    SET_PROCESS_LIMIT = auto()
    REMOVE_PROCESS_LIMIT = auto()
    BLOCK = auto()
    UNBLOCK = auto()


class StreamState(StrEnum):
    STREAMING = auto()
    CLOSED = auto()
