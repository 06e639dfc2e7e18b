# -*- coding: utf-8 -*-
"""
Prometheus Metrics - Meta Queries

Prometheus metrics for the query-orchestration layer with graceful fallback
when prometheus_client is not installed. Every helper is also a no-op when
metrics are disabled through ``MetaQueriesConfig.enable_metrics``. Helpers
take the caller's config; without one they read the global config.

Metrics:
    1. metaqueries_queries_total (Counter, labels: status)
    2. metaqueries_query_duration_seconds (Histogram)
    3. metaqueries_backend_requests_total (Counter, labels: backend, status)
    4. metaqueries_backend_request_duration_seconds (Histogram, labels: backend)
    5. metaqueries_transform_operations_total (Counter, labels: query_type, status)
    6. metaqueries_expression_fallbacks_total (Counter)
    7. metaqueries_empty_average_windows_total (Counter)
    8. metaqueries_hidden_refetches_total (Counter, labels: backend)
    9. metaqueries_active_queries (Gauge)

Author: Meta Queries Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from metaqueries.config import MetaQueriesConfig

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Graceful prometheus_client import
# ---------------------------------------------------------------------------

try:
    from prometheus_client import Counter, Gauge, Histogram
    PROMETHEUS_AVAILABLE = True
except ImportError:
    PROMETHEUS_AVAILABLE = False
    logger.info(
        "prometheus_client not installed; metaqueries metrics disabled"
    )


# ---------------------------------------------------------------------------
# Metric definitions
# ---------------------------------------------------------------------------

if PROMETHEUS_AVAILABLE:
    # 1. Total panel queries by outcome
    metaqueries_queries_total = Counter(
        "metaqueries_queries_total",
        "Total panel queries orchestrated",
        labelnames=["status"],
    )

    # 2. End-to-end panel query duration
    metaqueries_query_duration_seconds = Histogram(
        "metaqueries_query_duration_seconds",
        "Panel query duration in seconds",
        buckets=(
            0.01, 0.05, 0.1, 0.25, 0.5, 1.0,
            2.5, 5.0, 10.0, 30.0, 60.0, 120.0,
        ),
    )

    # 3. Sub-requests sent to backends
    metaqueries_backend_requests_total = Counter(
        "metaqueries_backend_requests_total",
        "Total sub-requests dispatched to backends",
        labelnames=["backend", "status"],
    )

    # 4. Backend sub-request duration
    metaqueries_backend_request_duration_seconds = Histogram(
        "metaqueries_backend_request_duration_seconds",
        "Backend sub-request duration in seconds",
        labelnames=["backend"],
        buckets=(
            0.01, 0.05, 0.1, 0.25, 0.5, 1.0,
            2.5, 5.0, 10.0, 30.0, 60.0, 120.0,
        ),
    )

    # 5. Derived-target transforms by kind and outcome
    metaqueries_transform_operations_total = Counter(
        "metaqueries_transform_operations_total",
        "Total derived-target transforms executed",
        labelnames=["query_type", "status"],
    )

    # 6. Arithmetic points that fell back to the default value
    metaqueries_expression_fallbacks_total = Counter(
        "metaqueries_expression_fallbacks_total",
        "Arithmetic points whose expression failed to evaluate",
    )

    # 7. Moving-average points emitted without data
    metaqueries_empty_average_windows_total = Counter(
        "metaqueries_empty_average_windows_total",
        "Moving-average points whose window held no samples",
    )

    # 8. Individual re-fetches of hidden foreign targets
    metaqueries_hidden_refetches_total = Counter(
        "metaqueries_hidden_refetches_total",
        "Hidden foreign-backend targets re-queried individually",
        labelnames=["backend"],
    )

    # 9. Currently running panel queries
    metaqueries_active_queries = Gauge(
        "metaqueries_active_queries",
        "Number of panel queries currently in flight",
    )

else:
    # No-op placeholders
    metaqueries_queries_total = None  # type: ignore[assignment]
    metaqueries_query_duration_seconds = None  # type: ignore[assignment]
    metaqueries_backend_requests_total = None  # type: ignore[assignment]
    metaqueries_backend_request_duration_seconds = None  # type: ignore[assignment]
    metaqueries_transform_operations_total = None  # type: ignore[assignment]
    metaqueries_expression_fallbacks_total = None  # type: ignore[assignment]
    metaqueries_empty_average_windows_total = None  # type: ignore[assignment]
    metaqueries_hidden_refetches_total = None  # type: ignore[assignment]
    metaqueries_active_queries = None  # type: ignore[assignment]


def _enabled(config: Optional[MetaQueriesConfig] = None) -> bool:
    """Check the caller's config, or the global one when it has none."""
    if not PROMETHEUS_AVAILABLE:
        return False
    if config is None:
        from metaqueries.config import get_config
        config = get_config()
    return config.enable_metrics


# ---------------------------------------------------------------------------
# Helper functions (safe to call even without prometheus_client)
# ---------------------------------------------------------------------------


def record_query(
    status: str,
    duration: float = 0.0,
    config: Optional[MetaQueriesConfig] = None,
) -> None:
    """Record a panel query outcome.

    Args:
        status: Result status (success, error).
        duration: Execution duration in seconds.
        config: Owning configuration; defaults to the global config.
    """
    if not _enabled(config):
        return
    metaqueries_queries_total.labels(status=status).inc()
    if duration > 0:
        metaqueries_query_duration_seconds.observe(duration)


def record_backend_request(
    backend: str,
    status: str,
    duration: float = 0.0,
    config: Optional[MetaQueriesConfig] = None,
) -> None:
    """Record a backend sub-request.

    Args:
        backend: Backend name.
        status: Result status (success, error).
        duration: Round-trip duration in seconds.
        config: Owning configuration; defaults to the global config.
    """
    if not _enabled(config):
        return
    metaqueries_backend_requests_total.labels(
        backend=backend, status=status,
    ).inc()
    if duration > 0:
        metaqueries_backend_request_duration_seconds.labels(
            backend=backend,
        ).observe(duration)


def record_transform(
    query_type: str,
    status: str,
    config: Optional[MetaQueriesConfig] = None,
) -> None:
    """Record a derived-target transform.

    Args:
        query_type: TimeShift, MovingAverage or Arithmetic.
        status: Result status (success, error).
    """
    if not _enabled(config):
        return
    metaqueries_transform_operations_total.labels(
        query_type=query_type, status=status,
    ).inc()


def record_expression_fallback(
    count: int = 1,
    config: Optional[MetaQueriesConfig] = None,
) -> None:
    """Record arithmetic points that fell back to the default value."""
    if not _enabled(config) or count <= 0:
        return
    metaqueries_expression_fallbacks_total.inc(count)


def record_empty_average_window(
    count: int = 1,
    config: Optional[MetaQueriesConfig] = None,
) -> None:
    """Record moving-average points emitted without data."""
    if not _enabled(config) or count <= 0:
        return
    metaqueries_empty_average_windows_total.inc(count)


def record_hidden_refetch(
    backend: str,
    config: Optional[MetaQueriesConfig] = None,
) -> None:
    """Record an individual re-fetch of a hidden foreign target.

    Args:
        backend: Backend name.
    """
    if not _enabled(config):
        return
    metaqueries_hidden_refetches_total.labels(backend=backend).inc()


def update_active_queries(
    delta: int,
    config: Optional[MetaQueriesConfig] = None,
) -> None:
    """Update the active queries gauge.

    Args:
        delta: Positive to increment, negative to decrement.
    """
    if not _enabled(config):
        return
    if delta > 0:
        metaqueries_active_queries.inc(delta)
    elif delta < 0:
        metaqueries_active_queries.dec(abs(delta))


__all__ = [
    "PROMETHEUS_AVAILABLE",
    # Metric objects
    "metaqueries_queries_total",
    "metaqueries_query_duration_seconds",
    "metaqueries_backend_requests_total",
    "metaqueries_backend_request_duration_seconds",
    "metaqueries_transform_operations_total",
    "metaqueries_expression_fallbacks_total",
    "metaqueries_empty_average_windows_total",
    "metaqueries_hidden_refetches_total",
    "metaqueries_active_queries",
    # Helper functions
    "record_query",
    "record_backend_request",
    "record_transform",
    "record_expression_fallback",
    "record_empty_average_window",
    "record_hidden_refetch",
    "update_active_queries",
]
