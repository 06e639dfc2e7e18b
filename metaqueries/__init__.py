# -*- coding: utf-8 -*-
"""
Meta Queries: derived time-series over other datasources
========================================================

This package answers a dashboard panel's query by fanning its targets out
to the backends that own them and computing derived targets from their
results. It supports:

- Grouping targets by datasource and dispatching each group concurrently
- TimeShift: re-query a target over a window moved N days into the past
- MovingAverage: trailing mean over the last N samples of a target
- Arithmetic: sandboxed formulas combining targets point by point
- Re-querying hidden targets so derived targets can still read them
- Prometheus metrics for observability
- FastAPI REST API
- Configuration with METAQUERIES_ env prefix

Key Components:
    - config: MetaQueriesConfig with METAQUERIES_ env prefix
    - models: Pydantic v2 models for requests, targets and series
    - exceptions: Error hierarchy
    - ring_averager: Circular buffer running mean
    - expression: Sandboxed arithmetic evaluator
    - transforms: Derived-target transform engine
    - result_store: Per-request pending results
    - backend_gateway: Backend name -> handle registry
    - scheduler: Per-panel query orchestrator
    - metrics: Prometheus metrics
    - api: FastAPI HTTP service
    - setup: MetaQueriesService facade

Example:
    >>> from metaqueries import MetaQueriesService
    >>> service = MetaQueriesService()
    >>> service.register_backend("graphite", GraphiteHandle())
    >>> response = await service.query(request)
"""

__version__ = "1.0.0"

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
from metaqueries.config import (
    MetaQueriesConfig,
    get_config,
    reset_config,
    set_config,
)

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------
from metaqueries.models import (
    HealthCheckResult,
    QueryRequest,
    QueryResponse,
    QueryType,
    Series,
    Target,
    TargetState,
    TimeRange,
)

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------
from metaqueries.exceptions import (
    AveragingError,
    DependencyOrderError,
    EvaluationError,
    MetaQueriesException,
    NotFoundError,
    ResolutionError,
    TargetValidationError,
)

# ---------------------------------------------------------------------------
# Core engines
# ---------------------------------------------------------------------------
from metaqueries.backend_gateway import BackendGateway, BackendHandle
from metaqueries.expression import ExpressionEvaluator
from metaqueries.result_store import PendingResultStore
from metaqueries.ring_averager import RingAverager
from metaqueries.scheduler import QueryScheduler
from metaqueries.transforms import TransformEngine

# ---------------------------------------------------------------------------
# Service setup facade
# ---------------------------------------------------------------------------
from metaqueries.setup import (
    MetaQueriesService,
    configure_metaqueries,
    get_metaqueries,
    get_router,
)

__all__ = [
    "__version__",
    # Configuration
    "MetaQueriesConfig",
    "get_config",
    "set_config",
    "reset_config",
    # Models
    "HealthCheckResult",
    "QueryRequest",
    "QueryResponse",
    "QueryType",
    "Series",
    "Target",
    "TargetState",
    "TimeRange",
    # Exceptions
    "MetaQueriesException",
    "ResolutionError",
    "NotFoundError",
    "DependencyOrderError",
    "TargetValidationError",
    "EvaluationError",
    "AveragingError",
    # Core engines
    "BackendGateway",
    "BackendHandle",
    "ExpressionEvaluator",
    "PendingResultStore",
    "RingAverager",
    "QueryScheduler",
    "TransformEngine",
    # Service setup
    "MetaQueriesService",
    "configure_metaqueries",
    "get_metaqueries",
    "get_router",
]
