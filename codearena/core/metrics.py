"""Prometheus metrics shared by the API and the grading services"""

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNT = Counter(
    "codearena_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "codearena_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)
QUEUE_DEPTH_GAUGE = Gauge("codearena_submission_queue_depth", "Number of Pending submissions")
WORKER_UP_GAUGE = Gauge("codearena_worker_up", "Worker liveness (1 running, 0 stopped)")

VERDICT_COUNT = Counter(
    "codearena_submission_verdicts_total",
    "Terminal submission states recorded",
    ["state"],
)
JUDGE_RETRY_COUNT = Counter(
    "codearena_judge_retries_total",
    "Judge calls retried after a transient failure",
)
GRADING_LATENCY = Histogram(
    "codearena_grading_duration_seconds",
    "Wall time spent grading one submission",
)
INTEGRITY_EVENTS = Counter(
    "codearena_integrity_events_total",
    "Terminal transitions rejected because another writer won",
)
