"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

REQUEST_COUNT = Counter(
    "vsrch_requests_total",
    "Total HTTP requests",
    labelnames=("endpoint", "method", "status"),
    registry=REGISTRY,
)

REQUEST_LATENCY = Histogram(
    "vsrch_request_latency_seconds",
    "Latency of HTTP requests",
    labelnames=("endpoint", "method"),
    registry=REGISTRY,
)

SEARCH_FALLBACKS = Counter(
    "vsrch_search_fallbacks_total",
    "Searches answered without one of the retrieval paths",
    labelnames=("failed_side",),
    registry=REGISTRY,
)

SYNC_DURATION = Histogram(
    "vsrch_sync_duration_seconds",
    "Duration of index reconciliation passes",
    registry=REGISTRY,
)

INDEX_FAILURES = Counter(
    "vsrch_record_index_failures_total",
    "Records that failed to index during sync",
    registry=REGISTRY,
)

INDEX_SIZE = Gauge(
    "vsrch_index_chunks",
    "Number of chunks stored in the vector store",
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "SEARCH_FALLBACKS",
    "SYNC_DURATION",
    "INDEX_FAILURES",
    "INDEX_SIZE",
    "metrics_response",
]
