"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Admission control metrics
admission_requests = Counter(
    'queue_admissions_total',
    'Song request admission decisions',
    ['result']  # admitted, quota_exceeded, queue_full, ...
)

# Request lifecycle metrics
request_transitions = Counter(
    'request_transitions_total',
    'Song request status transitions',
    ['target']  # playing, completed, cancelled
)

# Ordinal store metrics
ordinal_operations = Counter(
    'ordinal_operations_total',
    'Position store mutations',
    ['collection', 'operation']  # insert, remove, move, repair
)

ordinal_repairs = Counter(
    'ordinal_invariant_repairs_total',
    'Partitions found with gaps, duplicates or a drifted sequence and renumbered',
    ['collection']
)

operation_latency = Histogram(
    'queue_operation_latency_seconds',
    'Latency of atomic queue operations, retries included',
    ['operation'],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Database metrics
db_retries = Counter(
    'db_retry_attempts_total',
    'Atomic operations retried after lock contention',
    ['operation']
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set/invalidate, hit/miss/ok/error
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_admission(result: str):
    """Record an admission decision: "admitted" or the rejection kind."""
    admission_requests.labels(result=result).inc()


def record_transition(target: str):
    request_transitions.labels(target=target).inc()


def record_ordinal_operation(collection: str, operation: str):
    """Operation: insert, remove, move, repair"""
    ordinal_operations.labels(collection=collection, operation=operation).inc()


def record_repair(collection: str):
    ordinal_repairs.labels(collection=collection).inc()


def record_retry(operation: str):
    db_retries.labels(operation=operation).inc()


def record_cache_operation(operation: str, result: str):
    """Result: hit, miss, ok, error"""
    cache_operations.labels(operation=operation, result=result).inc()
