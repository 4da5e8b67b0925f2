"""Prometheus metrics for monitoring cancellations, refunds, transitions and webhook performance"""

from decimal import Decimal
from prometheus_client import Counter, Histogram

# Lifecycle metrics
cancellation_counter = Counter(
    "placement_cancellation_total",
    "Committed application cancellations",
    ["cancellation_type", "next_action"],
)

refund_amount_histogram = Histogram(
    "placement_refund_amount",
    "Final refund amounts granted on cancellation",
    buckets=[0, 100, 250, 500, 1000, 2500, 5000],
)

transition_counter = Counter(
    "placement_status_transition_total",
    "Committed forward status transitions",
    ["to_status"],
)

rejected_operation_counter = Counter(
    "placement_rejected_operation_total",
    "Lifecycle operations rejected with a domain error",
    ["operation", "error"],
)

# Webhook metrics
webhook_latency_histogram = Histogram(
    "webhook_latency_seconds",
    "Ledger webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

webhook_failure_counter = Counter(
    "webhook_failures_total",
    "Failed webhook deliveries",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_cancellation(cancellation_type: str, next_action: str | None, final_refund: Decimal) -> None:
    """Record cancellation metrics for monitoring refund exposure per policy"""
    cancellation_counter.labels(
        cancellation_type=cancellation_type,
        next_action=next_action or "none",
    ).inc()
    refund_amount_histogram.observe(float(final_refund))


def record_rejection(operation: str, error: Exception) -> None:
    rejected_operation_counter.labels(operation=operation, error=type(error).__name__).inc()
