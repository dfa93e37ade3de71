"""Prometheus metrics for monitoring reminder volume, delivery failures, and run latency"""

from prometheus_client import Counter, Histogram

# Delivery metrics
reminders_sent_counter = Counter(
    "card_reminders_sent_total",
    "Reminder deliveries acknowledged by the push gateway (per token)",
    ["kind"],  # billing | due | overdue | partial
)

delivery_failure_counter = Counter(
    "card_reminders_delivery_failures_total",
    "Failed reminder deliveries",
    ["kind", "reason"],  # permanent | transient | gateway_error
)

invalid_tokens_deleted_counter = Counter(
    "card_reminders_invalid_tokens_deleted_total",
    "Device tokens removed after permanent delivery failures",
)

gateway_latency_histogram = Histogram(
    "push_gateway_latency_seconds",
    "Multicast send response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# Run metrics
users_counter = Counter(
    "card_reminders_users_total",
    "Users handled by reminder runs",
    ["outcome"],  # processed | skipped | failed
)

run_duration_histogram = Histogram(
    "card_reminders_run_duration_seconds",
    "Wall time of a full reminder run",
    buckets=[0.5, 1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0],
)

store_failures_counter = Counter(
    "card_reminders_store_failures_total",
    "Failed store calls",
    ["operation"],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_delivery(kind: str, sent: int, permanent: int, transient: int) -> None:
    """Record per-token outcomes of one multicast send"""
    if sent:
        reminders_sent_counter.labels(kind=kind).inc(sent)
    if permanent:
        delivery_failure_counter.labels(kind=kind, reason="permanent").inc(permanent)
    if transient:
        delivery_failure_counter.labels(kind=kind, reason="transient").inc(transient)
