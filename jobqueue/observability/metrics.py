"""
Prometheus metrics collection.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from jobqueue.constants import (
    METRIC_API_LATENCY,
    METRIC_API_REQUESTS,
    METRIC_CLAIM_CONFLICTS,
    METRIC_JOB_DURATION,
    METRIC_JOBS_CLAIMED,
    METRIC_JOBS_ENQUEUED,
    METRIC_JOBS_FINISHED,
    METRIC_QUEUE_DEPTH,
    METRIC_TIMEOUT_RECLAIMS,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the job queue.

    Collects metrics for:
    - Queue depth
    - Enqueued, claimed and finished jobs
    - Timeout reclaims and lost claim races
    - Job execution duration
    - API requests
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.queue_depth = Gauge(
            METRIC_QUEUE_DEPTH,
            "Number of active jobs in the queue",
            ["jobtype"],
            registry=self._registry,
        )

        self.jobs_enqueued = Counter(
            METRIC_JOBS_ENQUEUED,
            "Total number of jobs enqueued",
            ["jobtype"],
            registry=self._registry,
        )

        self.jobs_claimed = Counter(
            METRIC_JOBS_CLAIMED,
            "Total number of successful claims",
            ["jobtype"],
            registry=self._registry,
        )

        self.jobs_finished = Counter(
            METRIC_JOBS_FINISHED,
            "Total number of executed jobs by outcome",
            ["jobtype", "outcome"],
            registry=self._registry,
        )

        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Job execution duration in seconds",
            ["jobtype", "outcome"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self._registry,
        )

        self.timeout_reclaims = Counter(
            METRIC_TIMEOUT_RECLAIMS,
            "Total number of timed out claims taken over by another poll",
            ["jobtype"],
            registry=self._registry,
        )

        self.claim_conflicts = Counter(
            METRIC_CLAIM_CONFLICTS,
            "Total number of claims lost to a concurrent worker",
            ["jobtype"],
            registry=self._registry,
        )

        self.api_requests = Counter(
            METRIC_API_REQUESTS,
            "Total number of API requests",
            ["method", "endpoint", "status"],
            registry=self._registry,
        )

        self.api_latency = Histogram(
            METRIC_API_LATENCY,
            "API request latency in seconds",
            ["method", "endpoint"],
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
            registry=self._registry,
        )

    def record_job_enqueued(self, jobtype: str) -> None:
        """Record a new job."""
        self.jobs_enqueued.labels(jobtype=jobtype).inc()

    def record_job_claimed(self, jobtype: str) -> None:
        """Record a successful claim."""
        self.jobs_claimed.labels(jobtype=jobtype).inc()

    def record_timeout_reclaim(self, jobtype: str) -> None:
        """Record a claim that took over a timed out job."""
        self.timeout_reclaims.labels(jobtype=jobtype).inc()

    def record_claim_conflict(self, jobtype: str) -> None:
        """Record a lost claim race."""
        self.claim_conflicts.labels(jobtype=jobtype).inc()

    def record_job_finished(
        self,
        jobtype: str,
        outcome: str,
        duration_seconds: float,
    ) -> None:
        """Record the end of an execution."""
        self.jobs_finished.labels(jobtype=jobtype, outcome=outcome).inc()
        self.job_duration.labels(jobtype=jobtype, outcome=outcome).observe(
            duration_seconds
        )

    def update_queue_depth(self, jobtype: str, depth: int) -> None:
        """Update queue depth for a job type."""
        self.queue_depth.labels(jobtype=jobtype).set(depth)

    def record_api_request(
        self,
        method: str,
        endpoint: str,
        status: int,
        duration_seconds: float,
    ) -> None:
        """Record an API request."""
        self.api_requests.labels(
            method=method,
            endpoint=endpoint,
            status=str(status),
        ).inc()
        self.api_latency.labels(method=method, endpoint=endpoint).observe(
            duration_seconds
        )

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics response."""
        return CONTENT_TYPE_LATEST


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance, creating it on first use.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
