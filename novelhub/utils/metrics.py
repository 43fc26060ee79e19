"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
access_decisions_total = Counter(
    "access_decisions_total",
    "Chapter access decisions",
    ["reason"],
)

content_unlocked_total = Counter(
    "content_unlocked_total",
    "Paid modules/chapters auto-unlocked from novel budget",
    ["kind"],  # module, chapter
)

auto_unlock_runs_total = Counter(
    "auto_unlock_runs_total",
    "Auto-unlock engine invocations",
    ["result"],  # unlocked, noop, exhausted, error
)

rentals_created_total = Counter(
    "rentals_created_total",
    "Module rentals created",
)

contributions_total = Counter(
    "contributions_total",
    "Novel budget contributions",
)

contributed_amount_total = Counter(
    "contributed_amount_total",
    "Total amount contributed to novel budgets",
)

store_conflict_retries_total = Counter(
    "store_conflict_retries_total",
    "Retries after transient store conflicts",
    ["operation"],
)

invalidation_failures_total = Counter(
    "invalidation_failures_total",
    "Failed cache-invalidation broadcasts (fail-open)",
)

circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open)",
    ["name"],
)

# Histograms
auto_unlock_duration_seconds = Histogram(
    "auto_unlock_duration_seconds",
    "Auto-unlock batch duration",
    buckets=[0.01, 0.05, 0.1, 0.5, 1, 2, 5],
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
