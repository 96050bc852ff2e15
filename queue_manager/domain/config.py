from dataclasses import dataclass, field

from queue_manager.domain.errors import ConfigurationError

DEFAULT_QUEUE_PRIORITY = 1


@dataclass(frozen=True)
class ManagerConfig:
    """
    Read-only configuration handed to every component at construction.

    Nothing in the management core reads process-wide settings directly, so
    tests can build services with distinct configurations side by side.
    """
    critical_queues: frozenset[str] = frozenset()
    queue_priorities: dict[str, int] = field(default_factory=dict)
    refresh_interval_ms: int = 5000
    enable_logging: bool = True
    enable_caching: bool = True
    cache_ttl: int = 300
    key_prefix: str = "queue_manager"

    def validate(self) -> "ManagerConfig":
        if isinstance(self.refresh_interval_ms, bool) or not isinstance(self.refresh_interval_ms, int):
            raise ConfigurationError("refresh_interval_ms must be a positive integer")
        if self.refresh_interval_ms <= 0:
            raise ConfigurationError("refresh_interval_ms must be positive")
        if self.cache_ttl <= 0:
            raise ConfigurationError("cache_ttl must be positive")
        for name, priority in self.queue_priorities.items():
            if not isinstance(priority, int):
                raise ConfigurationError(f"priority for queue '{name}' must be an integer")
        return self

    def is_critical(self, queue_name: str) -> bool:
        return queue_name in self.critical_queues

    def priority_for(self, queue_name: str) -> int:
        return self.queue_priorities.get(queue_name, DEFAULT_QUEUE_PRIORITY)

    @property
    def refresh_interval_seconds(self) -> float:
        return self.refresh_interval_ms / 1000.0

    def status_cache_key(self, queue_name: str) -> str:
        return f"{self.key_prefix}:{queue_name}"
