"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Ticket metrics
purchase_attempts = Counter(
    'ticket_purchase_attempts_total',
    'Total ticket purchase attempts',
    ['status']  # success, sold_out, rejected
)

ticket_cancellations = Counter(
    'ticket_cancellations_total',
    'Tickets cancelled and returned to inventory'
)

# Inventory ledger metrics
inventory_operations = Counter(
    'inventory_operations_total',
    'Inventory ledger operations',
    ['operation', 'result']  # reserve/release/adjust, ok/insufficient/integrity
)

inventory_latency = Histogram(
    'inventory_operation_latency_seconds',
    'Inventory ledger conditional update latency',
    ['operation'],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Registration workflow metrics
registration_submissions = Counter(
    'registration_submissions_total',
    'Gated registrations submitted',
    ['result']  # accepted, duplicate, full, storage_error
)

registration_decisions = Counter(
    'registration_decisions_total',
    'Reviewer decisions on gated registrations',
    ['decision']  # approved, denied, sold_out
)

credential_collisions = Counter(
    'credential_collisions_total',
    'Credential tokens regenerated after a uniqueness collision'
)

notification_failures = Counter(
    'notification_failures_total',
    'Notification dispatch failures (non-fatal)',
    ['kind']
)

# Gate metrics
scan_results = Counter(
    'credential_scans_total',
    'Credential scans at the gate',
    ['result']  # admitted, already_scanned, not_found
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_purchase_attempt(status: str):
    """Record purchase attempt. Status: success, sold_out, rejected"""
    purchase_attempts.labels(status=status).inc()


def record_inventory_operation(operation: str, result: str):
    inventory_operations.labels(operation=operation, result=result).inc()


def record_registration_submission(result: str):
    registration_submissions.labels(result=result).inc()


def record_registration_decision(decision: str):
    registration_decisions.labels(decision=decision).inc()


def record_scan(result: str):
    scan_results.labels(result=result).inc()


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
