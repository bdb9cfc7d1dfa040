"""Prometheus metric definitions for the payment service."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


payment_requests_total = Counter("payment_requests_total", "Total payment creation requests", ["service"])
payment_success_total = Counter("payment_success_total", "Total payments reconciled to completed", ["service"])
payment_failure_total = Counter(
    "payment_failure_total",
    "Total payments moved to failed",
    ["service", "stage"],
)
payment_latency_seconds = Histogram("payment_latency_seconds", "Payment creation latency seconds", ["service"])
provider_calls_total = Counter(
    "provider_calls_total",
    "Outbound provider calls by outcome",
    ["provider", "operation", "outcome"],
)
provider_call_duration_seconds = Histogram(
    "provider_call_duration_seconds",
    "Outbound provider call duration seconds",
    ["provider", "operation"],
)
webhook_events_total = Counter(
    "webhook_events_total",
    "Authenticated webhook events by normalized kind",
    ["provider", "kind"],
)
webhook_rejected_total = Counter(
    "webhook_rejected_total",
    "Webhook deliveries rejected before processing",
    ["provider", "reason"],
)
stale_updates_skipped_total = Counter(
    "stale_updates_skipped_total",
    "Status updates skipped because the record already reached a dominant state",
    ["service", "source"],
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
