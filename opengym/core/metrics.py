"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Participation metrics
participation_updates = Counter(
    'participation_updates_total',
    'Participation updates by requested intent and resulting status',
    ['intent', 'status']  # going/not_going x confirmed/waitlisted/withdrawn
)

participation_latency = Histogram(
    'participation_update_latency_seconds',
    'Participation update latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

participation_conflicts = Counter(
    'participation_conflicts_total',
    'Optimistic lock conflicts on the game row',
    ['outcome']  # retried, exhausted
)

# Capacity tracking
capacity_recomputes = Counter(
    'capacity_recomputes_total',
    'Full admission passes used to rebuild spots_left',
    ['reason']  # organizer_join, confirmed_withdrawal, claim_update, arrival_tie, capacity_change, reconcile
)

spots_left_drift = Counter(
    'spots_left_drift_total',
    'Reconciliations that found a cached spots_left out of step'
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set/delete, hit/miss/error
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_participation(intent: str, status: str):
    participation_updates.labels(intent=intent, status=status).inc()


def record_conflict(exhausted: bool):
    outcome = "exhausted" if exhausted else "retried"
    participation_conflicts.labels(outcome=outcome).inc()


def record_recompute(reason: str):
    capacity_recomputes.labels(reason=reason).inc()


def record_cache_operation(operation: str, result: str):
    """Record cache operation. Result: hit, miss, error"""
    cache_operations.labels(operation=operation, result=result).inc()
