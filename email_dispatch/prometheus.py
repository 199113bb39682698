"""Prometheus metrics exposed by the email dispatcher."""

from prometheus_client import Counter, CollectorRegistry, generate_latest


class EmailMetrics:
    """Wrapper around the Prometheus registry used by the service."""

    def __init__(self, registry: CollectorRegistry | None = None):
        """Create counters inside the provided registry."""
        self.registry = registry or CollectorRegistry()
        self.sent = Counter("eds_sent_total", "Total emails accepted by the transport", registry=self.registry)
        self.errors = Counter("eds_errors_total", "Total transport failures", registry=self.registry)
        self.persistence_failures = Counter(
            "eds_persistence_failures_total",
            "Total dispatch attempts that could not be recorded",
            registry=self.registry,
        )

    def inc_sent(self):
        """Increase the ``sent`` counter."""
        self.sent.inc()

    def inc_error(self):
        """Increase the ``errors`` counter."""
        self.errors.inc()

    def inc_persistence_failure(self):
        self.persistence_failures.inc()

    def generate_latest(self) -> bytes:
        """Return the latest metrics snapshot in Prometheus text format."""
        return generate_latest(self.registry)
