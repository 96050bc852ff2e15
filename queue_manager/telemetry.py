from prometheus_client import Counter, Gauge

# Operation outcomes (outcome=success|failure|error)
QUEUE_OPERATIONS = Counter(
    "queue_manager_operations_total",
    "Management operations by outcome",
    ["operation", "outcome"],
)

QUEUE_SIZE = Gauge("queue_manager_queue_size", "Jobs waiting in the queue", ["queue"])
QUEUE_LATENCY = Gauge("queue_manager_queue_latency_seconds", "Age of the oldest enqueued job", ["queue"])
QUEUE_BUSY = Gauge("queue_manager_queue_busy", "Workers processing jobs from the queue", ["queue"])
QUEUE_PAUSED = Gauge("queue_manager_queue_paused", "1 when the queue is paused", ["queue"])

JOB_SET_SIZE = Gauge("queue_manager_job_set_size", "Jobs held in a job set", ["job_set"])

PROCESSED_TOTAL = Gauge("queue_manager_processed_jobs", "Lifetime processed count reported by the store")
FAILED_TOTAL = Gauge("queue_manager_failed_jobs", "Lifetime failed count reported by the store")

STREAM_CLIENTS = Gauge("queue_manager_live_stream_clients", "Open live-update streams")

PER_QUEUE_GAUGES = (QUEUE_SIZE, QUEUE_LATENCY, QUEUE_BUSY, QUEUE_PAUSED)
