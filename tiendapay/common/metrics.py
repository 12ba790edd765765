"""Prometheus metric definitions for the payments service."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


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
gateway_request_duration_seconds = Histogram(
    "gateway_request_duration_seconds",
    "Outbound payment gateway call duration seconds",
    ["operation"],
)
gateway_failures_total = Counter(
    "gateway_failures_total",
    "Outbound payment gateway calls that failed",
    ["operation", "status_code"],
)
payment_transactions_total = Counter(
    "payment_transactions_total",
    "Transaction initiation attempts by outcome",
    ["outcome"],
)
webhook_events_total = Counter(
    "webhook_events_total",
    "Webhook deliveries by event type and outcome",
    ["event", "outcome"],
)
duplicate_webhooks_skipped_total = Counter(
    "duplicate_webhooks_skipped_total",
    "Webhook deliveries skipped because the status was already applied",
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
