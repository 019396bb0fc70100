"""
Prometheus metrics collection.
"""

import logging

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    start_http_server,
)

from queuectl.constants import (
    METRIC_CLAIMS,
    METRIC_JOB_DURATION,
    METRIC_JOBS_FINISHED,
    METRIC_JOBS_SUBMITTED,
    METRIC_LOCKS_RECOVERED,
    METRIC_QUEUE_DEPTH,
)

logger = logging.getLogger(__name__)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the job queue.

    Collects metrics for:
    - Queue depth per state
    - Job submissions and outcomes
    - Command execution duration
    - Claim attempts (won / lost)
    - Stale lock recovery
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
            "Number of jobs per state",
            ["state"],
            registry=self._registry,
        )

        self.jobs_submitted = Counter(
            METRIC_JOBS_SUBMITTED,
            "Total number of jobs enqueued",
            registry=self._registry,
        )

        # outcome is completed, failed_retry or dead
        self.jobs_finished = Counter(
            METRIC_JOBS_FINISHED,
            "Total number of job executions by outcome",
            ["outcome"],
            registry=self._registry,
        )

        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Command execution duration in seconds",
            ["outcome"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
            registry=self._registry,
        )

        self.claims = Counter(
            METRIC_CLAIMS,
            "Total number of claim attempts",
            ["worker_id", "result"],
            registry=self._registry,
        )

        self.locks_recovered = Counter(
            METRIC_LOCKS_RECOVERED,
            "Total number of stale locks released",
            registry=self._registry,
        )

    def record_job_submitted(self) -> None:
        """Record a job submission."""
        self.jobs_submitted.inc()

    def record_job_finished(self, outcome: str, duration_seconds: float) -> None:
        """Record the outcome of one execution."""
        self.jobs_finished.labels(outcome=outcome).inc()
        self.job_duration.labels(outcome=outcome).observe(duration_seconds)

    def record_claim(self, worker_id: str, won: bool) -> None:
        """Record a claim attempt."""
        self.claims.labels(worker_id=worker_id, result="won" if won else "lost").inc()

    def record_locks_recovered(self, count: int) -> None:
        """Record released stale locks."""
        if count > 0:
            self.locks_recovered.inc(count)

    def update_queue_depth(self, counts: dict[str, int]) -> None:
        """Update per-state gauges from a stats snapshot."""
        for state, count in counts.items():
            if state != "total":
                self.queue_depth.labels(state=state).set(count)

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)


def setup_metrics(port: int | None = None) -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Args:
        port: If given, also serve the default registry over HTTP.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    if port is not None:
        start_http_server(port)
        logger.info("Serving metrics", extra={"port": port})
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
