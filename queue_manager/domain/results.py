from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from queue_manager.domain.errors import QueueManagerError


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class OperationResult:
    """Structured outcome of a management operation."""
    success: bool
    message: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    timestamp: str = field(default_factory=utc_timestamp)

    @classmethod
    def ok(cls, message: Optional[str] = None, **data: Any) -> "OperationResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def failure(cls, error: QueueManagerError, **data: Any) -> "OperationResult":
        return cls(success=False, message=str(error), data=data, error=error.code)

    def to_envelope(self) -> dict[str, Any]:
        envelope: dict[str, Any] = {"success": self.success, "timestamp": self.timestamp}
        if self.message:
            envelope["message"] = self.message
        if self.data:
            envelope["data"] = self.data
        if self.error:
            envelope["error"] = self.error
        return envelope
