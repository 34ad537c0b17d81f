"""Prometheus metric definitions shared across push services."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


push_attempts_total = Counter(
    "push_attempts_total",
    "Push send attempts by outcome",
    ["service", "notification_type", "result"],
)
push_send_seconds = Histogram("push_send_seconds", "Single push transport call duration", ["service"])
dispatch_latency_seconds = Histogram(
    "dispatch_latency_seconds",
    "Fan-out dispatch duration for one user",
    ["service"],
)
retry_intents_created_total = Counter(
    "retry_intents_created_total",
    "Retry intents written after failed deliveries",
    ["service"],
)
retry_outcomes_total = Counter(
    "retry_outcomes_total",
    "Retry intent outcomes per scheduler run",
    ["service", "outcome"],
)
retry_claim_conflicts_total = Counter(
    "retry_claim_conflicts_total",
    "Retry intents skipped because another run claimed them",
    ["service"],
)
subscriptions_removed_total = Counter(
    "subscriptions_removed_total",
    "Push subscriptions deleted",
    ["service", "reason"],
)
analytics_rows_skipped_total = Counter(
    "analytics_rows_skipped_total",
    "Malformed delivery log rows skipped during aggregation",
    ["service"],
)
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
