"""Prometheus metrics for the IdeaGraph API.

Two metric categories:

1. RED Metrics (Rate, Errors, Duration)
   - Request counts by endpoint, method, status
   - Request duration histograms
   - In-flight request gauge

2. Extraction Metrics
   - Finished sessions by terminal state and error kind
   - Credits debited by finished sessions
   - Active sessions

Usage:
    from ideagraph_api.metrics import track_extraction_result
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from starlette.responses import Response

from ideagraph_contracts import ExtractionResult

# ==============================================================================
# RED Metrics (Rate, Errors, Duration)
# ==============================================================================

REQUEST_COUNT = Counter(
    "ideagraph_requests_total",
    "Total HTTP requests",
    ["endpoint", "method", "status"],
)

REQUEST_DURATION = Histogram(
    "ideagraph_request_duration_seconds",
    "HTTP request duration in seconds",
    ["endpoint", "method"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

REQUESTS_IN_PROGRESS = Gauge(
    "ideagraph_requests_in_progress",
    "Number of HTTP requests currently being processed",
)

# ==============================================================================
# Extraction Metrics
# ==============================================================================

EXTRACTIONS_TOTAL = Counter(
    "ideagraph_extractions_total",
    "Finished extraction sessions",
    ["state", "error_kind"],
)

EXTRACTION_CREDITS = Counter(
    "ideagraph_extraction_credits_debited_total",
    "Credits debited by finished extraction sessions",
)

ACTIVE_EXTRACTIONS = Gauge(
    "ideagraph_active_extractions",
    "Extraction sessions currently running",
)


# ==============================================================================
# Helper Functions
# ==============================================================================


def track_request(endpoint: str, method: str, status: int, duration: float) -> None:
    """Record a completed request.

    Args:
        endpoint: Route template (e.g. /papers/{paper_id}/graph), not the raw path
        method: HTTP method
        status: Response status code
        duration: Handling time in seconds
    """
    REQUEST_COUNT.labels(endpoint=endpoint, method=method, status=str(status)).inc()
    REQUEST_DURATION.labels(endpoint=endpoint, method=method).observe(duration)


def track_extraction_result(result: ExtractionResult) -> None:
    """Record a finished extraction session."""
    error_kind = result.error_kind.value if result.error_kind else "none"
    EXTRACTIONS_TOTAL.labels(state=result.state.value, error_kind=error_kind).inc()
    EXTRACTION_CREDITS.inc(result.credits_debited)


def update_active_extractions(count: int) -> None:
    ACTIVE_EXTRACTIONS.set(count)


# ==============================================================================
# Metrics Endpoint
# ==============================================================================


def metrics_response() -> Response:
    """Prometheus text format of the default registry."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
