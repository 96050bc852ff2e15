import functools
import inspect
import logging
from typing import Any, Awaitable, Callable

from queue_manager.domain.config import ManagerConfig
from queue_manager.domain.errors import BackendUnavailable, QueueManagerError
from queue_manager.domain.results import OperationResult
from queue_manager.telemetry import QUEUE_OPERATIONS

logger = logging.getLogger(__name__)

AsyncOperation = Callable[..., Awaitable[OperationResult]]


def operation(label: str) -> Callable[[AsyncOperation], AsyncOperation]:
    """
    Operation boundary for service methods.

    `label` is formatted with the call's arguments ("pause queue '{name}'").
    Domain errors become failed results; anything else raised by the backing
    store is logged with that label and reported as BackendUnavailable, so
    callers never see a raw backend exception.
    """
    def decorator(func: AsyncOperation) -> AsyncOperation:
        signature = inspect.signature(func)
        op_name = func.__name__

        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs) -> OperationResult:
            bound = signature.bind(self, *args, **kwargs)
            bound.apply_defaults()
            description = label.format(**bound.arguments)
            try:
                result = await func(self, *args, **kwargs)
            except QueueManagerError as e:
                QUEUE_OPERATIONS.labels(operation=op_name, outcome="failure").inc()
                self._log_failure(f"Failed to {description}: {e}")
                return OperationResult.failure(e, **e.details())
            except Exception as e:
                QUEUE_OPERATIONS.labels(operation=op_name, outcome="error").inc()
                logger.exception("Backend error during %s", description)
                return OperationResult.failure(BackendUnavailable(f"Failed to {description}: {e}"))

            outcome = "success" if result.success else "failure"
            QUEUE_OPERATIONS.labels(operation=op_name, outcome=outcome).inc()
            return result

        return wrapper

    return decorator


class ManagementService:
    """Shared plumbing for services that log operations through the config toggle."""

    def __init__(self, config: ManagerConfig):
        self.config = config

    def _log_operation(self, message: str, *args: Any):
        if self.config.enable_logging:
            logger.info("[QueueManager] " + message, *args)

    def _log_failure(self, message: str, *args: Any):
        if self.config.enable_logging:
            logger.warning("[QueueManager] " + message, *args)
