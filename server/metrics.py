"""
Prometheus Metrics Module

Provides instrumentation for:
- Week lifecycle (weeks opened, weeks resolved by reason)
- Votes cast
- Weekly rollover failures
- API requests and latency
- Error tracking

Usage:
    from server.metrics import metrics
    metrics.weeks_resolved.labels(reason="MAJORITY").inc()

The same object is handed to WeekLifecycleManager as its metrics sink.
"""

from prometheus_client import Counter, Histogram, generate_latest, REGISTRY


class LectioMetrics:
    """Centralized metrics for the voting core and API"""

    def __init__(self):
        # Lifecycle metrics
        self.weeks_created = Counter(
            'lectio_weeks_created_total',
            'Total voting weeks opened'
        )

        self.weeks_resolved = Counter(
            'lectio_weeks_resolved_total',
            'Total weeks resolved to a reading',
            ['reason']  # MAJORITY, TIE_RANDOM, MANUAL_PICK, ...
        )

        self.votes_cast = Counter(
            'lectio_votes_cast_total',
            'Total votes cast or changed'
        )

        self.rollover_failures = Counter(
            'lectio_rollover_failures_total',
            'Groups that failed during weekly rollover'
        )

        # API metrics
        self.api_requests = Counter(
            'lectio_api_requests_total',
            'Total API requests',
            ['endpoint', 'method', 'status_code']
        )

        self.api_request_duration = Histogram(
            'lectio_api_request_duration_seconds',
            'API request duration',
            ['endpoint', 'method'],
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
        )

        # Error metrics
        self.errors = Counter(
            'lectio_errors_total',
            'Total errors by component and type',
            ['component', 'error_type']
        )

    def record_error(self, component: str, error: Exception):
        """Record an error

        Args:
            component: Component name (api/lifecycle/database)
            error: Exception instance
        """
        error_type = type(error).__name__
        self.errors.labels(component=component, error_type=error_type).inc()


# Global metrics instance
metrics = LectioMetrics()


def get_metrics_text() -> bytes:
    """Get Prometheus metrics in text format for /metrics endpoint"""
    return generate_latest(REGISTRY)
