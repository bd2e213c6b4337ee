"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
payment_notifications_total = Counter(
    "payment_notifications_total",
    "Inbound payment notifications by outcome",
    ["provider", "outcome"],  # applied, duplicate, ignored, rejected_auth, rejected_correlation, unknown_user
)

subscriptions_granted_total = Counter(
    "subscriptions_granted_total",
    "Entitlements granted from payments",
    ["tier"],
)

invite_links_issued_total = Counter(
    "invite_links_issued_total",
    "Invite links created after payment",
)

post_commit_hook_failures_total = Counter(
    "post_commit_hook_failures_total",
    "Failed post-payment side effects",
    ["hook"],
)

membership_removals_total = Counter(
    "membership_removals_total",
    "Members removed from gated chats",
    ["reason"],
)

expiry_reminders_total = Counter(
    "expiry_reminders_total",
    "Subscription expiry reminders",
    ["status"],  # sent, failed
)

telegram_requests_total = Counter(
    "telegram_requests_total",
    "Total Telegram API requests",
    ["method", "status"],
)

payment_gateway_requests_total = Counter(
    "payment_gateway_requests_total",
    "Outbound payment gateway API requests",
    ["provider", "status"],
)

circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open)",
    ["name"],
)

# Histograms
telegram_request_duration_seconds = Histogram(
    "telegram_request_duration_seconds",
    "Telegram API request duration",
    ["method"],
    buckets=[0.1, 0.5, 1, 2, 5, 10],
)

membership_sweep_duration_seconds = Histogram(
    "membership_sweep_duration_seconds",
    "Full membership sweep duration",
    buckets=[1, 5, 10, 30, 60, 120, 300, 600],
)


# Metrics endpoint router
router = APIRouter()


@router.get("/metrics")
def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint for scraping."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
