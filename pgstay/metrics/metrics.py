from prometheus_client import Counter, Histogram, CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST

from typing import Optional

# =====================================
# METRICS COLLECTOR
# =====================================

class MetricsCollector:
    """Prometheus metrics for inventory writes, cache and HTTP latency"""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        self.version_conflicts_total = Counter(
            'version_conflicts_total',
            'Optimistic concurrency conflicts detected on aggregate writes',
            ['aggregate'],
            registry=self.registry,
        )

        self.conflict_retries_exhausted_total = Counter(
            'conflict_retries_exhausted_total',
            'Writes abandoned after exhausting conflict retries',
            ['operation'],
            registry=self.registry,
        )

        self.cache_errors_total = Counter(
            'cache_errors_total',
            'Cache operations that failed and were skipped',
            ['operation'],
            registry=self.registry,
        )

        self.mirror_failures_total = Counter(
            'mirror_failures_total',
            'Ledger movements not reflected on the property until reconcile',
            registry=self.registry,
        )

        self.claim_release_failures_total = Counter(
            'claim_release_failures_total',
            'Bed claims left on a property after a failed assignment',
            registry=self.registry,
        )

        self.request_duration = Histogram(
            'http_request_duration_seconds',
            'HTTP request duration',
            ['method', 'route', 'status'],
            registry=self.registry,
        )

    def record_conflict(self, aggregate: str):
        self.version_conflicts_total.labels(aggregate=aggregate).inc()

    def record_retries_exhausted(self, operation: str):
        self.conflict_retries_exhausted_total.labels(operation=operation).inc()

    def record_cache_error(self, operation: str):
        self.cache_errors_total.labels(operation=operation).inc()

    def record_mirror_failure(self):
        self.mirror_failures_total.inc()

    def record_claim_release_failure(self):
        self.claim_release_failures_total.inc()

    def observe_request(self, method: str, route: str, status: int, seconds: float):
        self.request_duration.labels(method=method, route=route, status=str(status)).observe(seconds)

    def export(self) -> bytes:
        return generate_latest(self.registry)


CONTENT_TYPE = CONTENT_TYPE_LATEST

_metrics: Optional[MetricsCollector] = None


def get_metrics() -> MetricsCollector:
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
