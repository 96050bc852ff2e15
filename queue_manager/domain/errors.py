class QueueManagerError(Exception):
    """Base exception for queue manager errors."""
    code = "QueueManagerError"

    def details(self) -> dict:
        return {}


class ConfigurationError(QueueManagerError):
    code = "ConfigurationError"


class InvalidQueue(QueueManagerError):
    code = "InvalidQueue"

    def __init__(self, queue_name):
        self.queue_name = queue_name
        super().__init__(f"Invalid queue name: {queue_name}")


class CriticalQueueProtected(QueueManagerError):
    code = "CriticalQueueProtected"

    def __init__(self, queue_name, action: str):
        self.queue_name = queue_name
        super().__init__(f"Cannot {action} critical queue '{queue_name}'")


class InvalidJobId(QueueManagerError):
    code = "InvalidJobId"

    def __init__(self):
        super().__init__("Invalid job ID")


class JobNotFound(QueueManagerError):
    code = "JobNotFound"

    def __init__(self, job_id, location: str = "Job"):
        self.job_id = job_id
        super().__init__(f"{location} {job_id} not found")


class InvalidLimit(QueueManagerError):
    code = "InvalidLimit"

    def __init__(self, value):
        self.value = value
        super().__init__(f"Invalid limit: {value!r} (must be a positive integer)")


class InvalidRequest(QueueManagerError):
    code = "InvalidRequest"

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("Invalid request: " + "; ".join(problems))


class InvalidJobAction(QueueManagerError):
    code = "InvalidJobAction"

    def __init__(self, action, job_set):
        super().__init__(f"Cannot {action} jobs in the {job_set} set")


class CapabilityUnavailable(QueueManagerError):
    code = "CapabilityUnavailable"

    def __init__(self, capability):
        self.capability = capability
        super().__init__(f"Backing store does not support '{capability}'")


class UnexpectedBackendResult(QueueManagerError):
    code = "UnexpectedBackendResult"

    def __init__(self, action: str, result):
        self.result = result
        super().__init__(f"Failed to {action}: unexpected result '{result}'")

    def details(self) -> dict:
        result = self.result
        if not isinstance(result, (str, int, float, bool, type(None))):
            result = repr(result)
        return {"result": result}


class BackendUnavailable(QueueManagerError):
    code = "BackendUnavailable"


class StreamDisconnected(QueueManagerError):
    code = "StreamDisconnected"
