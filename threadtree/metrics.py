"""
Prometheus metrics for the thread-tree service.

This module provides:
- HTTP request counter (method, path, status)
- Request latency histogram (method, path)
- Ingestion outcome counter (result)
- Ghost promotion counter and cascade size histogram

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

# HTTP request counter with labels for method, path, and status code
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# Request latency histogram in seconds
# Default prometheus-client buckets, 5ms up to 10s
request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

# Ingestion outcome counter
# result: created, duplicate, structural_cycle, malformed_reference, unknown_board
messages_ingested_total = Counter(
    "messages_ingested_total",
    "Total message ingestion outcomes",
    labelnames=["result"]
)

# Ghosts replaced by a late-arriving message
ghost_promotions_total = Counter(
    "ghost_promotions_total",
    "Ghost records replaced by their real message"
)

# Number of waiting children re-linked per promotion
cascade_relinks = Histogram(
    "cascade_relinks",
    "Children re-linked by a ghost promotion cascade",
    buckets=(1, 2, 5, 10, 25, 50, 100, 250)
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Request path
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    # Strip query strings so labels stay low-cardinality
    # (/boards/en.test/threads?x=1 -> /boards/en.test/threads)
    normalized_path = path.split("?")[0]

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_ingest_outcome(result: str) -> None:
    """
    Record a message ingestion outcome.

    Args:
        result: Processing result - one of:
            - "created": New message stored and linked
            - "duplicate": Message already existed (idempotent)
            - "structural_cycle": Self reference or ancestry cycle
            - "malformed_reference": Bad id or reference shape
            - "unknown_board": Stored, but some boards were not recognized
    """
    messages_ingested_total.labels(result=result).inc()


def record_ghost_promotion(relinked: int) -> None:
    """Count one ghost promotion and the size of its re-link cascade."""
    ghost_promotions_total.inc()
    cascade_relinks.observe(relinked)


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    """Content type of the Prometheus text exposition format."""
    return CONTENT_TYPE_LATEST
