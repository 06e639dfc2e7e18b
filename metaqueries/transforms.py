# -*- coding: utf-8 -*-
"""
Transform Engine - Meta Queries

Computes derived targets from the output of other targets:

- TimeShift: re-queries the referenced target's backend over a window moved
  ``periods`` days into the past, keeps the series named by ``metric`` and
  moves its timestamps forward again so the values line up with the
  displayed window.
- MovingAverage: trailing mean over the last ``periods`` samples of every
  series the referenced target produced, reusing its pending result.
- Arithmetic: evaluates a formula over all targets scheduled before it,
  one evaluation per distinct timestamp.

Dependencies are resolved when a target is planned, not when it runs, so a
reference to a refId that is not defined earlier in the request fails the
request immediately with ``DependencyOrderError``.

Example:
    >>> engine = TransformEngine()
    >>> coro = engine.plan(target, request, store, gateway)
    >>> response = await coro
    >>> response.data[0].target
    'cpu_7d_ago'

Author: Meta Queries Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from typing import Any, Awaitable, Callable, Coroutine, Dict, FrozenSet, List, Optional, Sequence, Tuple

from metaqueries.backend_gateway import BackendGateway, BackendHandle, query_backend
from metaqueries.config import MetaQueriesConfig, get_config
from metaqueries.exceptions import AveragingError, EvaluationError, TargetValidationError
from metaqueries.expression import ExpressionEvaluator
from metaqueries.metrics import (
    record_empty_average_window,
    record_expression_fallback,
    record_transform,
)
from metaqueries.models import QueryRequest, QueryResponse, QueryType, Series, Target
from metaqueries.result_store import PendingResultStore
from metaqueries.ring_averager import RingAverager

logger = logging.getLogger(__name__)

MILLIS_PER_DAY = 86_400_000

Datapoint = Tuple[Optional[float], int]
ValueTable = Dict[int, Dict[str, Dict[str, Optional[float]]]]


# ---------------------------------------------------------------------------
# Pure series helpers
# ---------------------------------------------------------------------------


def shift_series(
    series: Sequence[Series],
    metric: str,
    days: int,
    name: str,
    hide: bool = False,
) -> Series:
    """Keep the points of the series named ``metric``, moved by ``days``.

    Args:
        series: Series returned by the shifted backend query.
        metric: Name of the series to keep; all others are discarded.
        days: Days added to every timestamp.
        name: Name of the produced series.
        hide: Visibility flag of the produced series.

    Returns:
        A single series, in the input point order.
    """
    offset = days * MILLIS_PER_DAY
    datapoints: List[Datapoint] = []
    for item in series:
        if item.target != metric:
            continue
        for value, timestamp in item.datapoints:
            datapoints.append((value, timestamp + offset))
    return Series(target=name, datapoints=datapoints, hide=hide)


def average_series(
    series: Series,
    periods: int,
    name: str,
    hide: bool = False,
) -> Tuple[Series, int]:
    """Trailing moving average of ``series`` over ``periods`` samples.

    Points whose window holds no sample yet are emitted with a ``None``
    value.

    Returns:
        The averaged series and the number of empty-window points.
    """
    averager = RingAverager(periods)
    datapoints: List[Datapoint] = []
    empty_windows = 0
    for value, timestamp in series.datapoints:
        averager.push(value)
        try:
            average: Optional[float] = averager.average()
        except AveragingError:
            average = None
            empty_windows += 1
        datapoints.append((average, timestamp))
    return Series(target=name, datapoints=datapoints, hide=hide), empty_windows


def build_value_table(
    results: Sequence[Tuple[str, Optional[QueryResponse]]],
) -> ValueTable:
    """Index dependency values by timestamp, refId and series name.

    Args:
        results: ``(refId, response)`` pairs in scheduling order.

    Returns:
        ``{timestamp: {refId: {series name: value}}}``. Timestamps match by
        exact integer equality; insertion order follows ``results``.
    """
    table: ValueTable = {}
    for ref_id, response in results:
        if response is None:
            continue
        for series in response.data:
            for value, timestamp in series.datapoints:
                table.setdefault(timestamp, {}).setdefault(ref_id, {})[series.target] = value
    return table


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class TransformEngine:
    """Derived-target transform engine.

    Attributes:
        _config: MetaQueriesConfig instance.
        _stats: Per-kind success/error counters and absorbed point failures.
    """

    def __init__(self, config: Optional[MetaQueriesConfig] = None) -> None:
        """Initialize TransformEngine.

        Args:
            config: Optional configuration; defaults to the global config.
        """
        self._config = config or get_config()
        self._stats: Dict[str, int] = {
            "time_shift": 0,
            "moving_average": 0,
            "arithmetic": 0,
            "errors": 0,
            "expression_fallbacks": 0,
            "empty_average_windows": 0,
        }
        logger.info("TransformEngine initialized")

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_target(self, target: Target) -> None:
        """Check the fields each transform needs.

        Raises:
            TargetValidationError: If a required field is missing or invalid.
        """
        invalid: Dict[str, str] = {}
        query_type = target.query_type

        if query_type is None:
            invalid["queryType"] = (
                f"targets routed to '{self._config.datasource_name}' "
                f"must declare a queryType"
            )
        elif query_type in (QueryType.TIME_SHIFT, QueryType.MOVING_AVERAGE):
            if not target.query:
                invalid["query"] = "refId of the dependency is required"
            if target.periods is None:
                invalid["periods"] = "is required"
            elif query_type is QueryType.MOVING_AVERAGE and target.periods < 1:
                invalid["periods"] = "must be >= 1"
            if query_type is QueryType.TIME_SHIFT and not target.metric:
                invalid["metric"] = "name of the series to shift is required"
        elif query_type is QueryType.ARITHMETIC:
            if not target.expression or not target.expression.strip():
                invalid["expression"] = "is required"

        if invalid:
            raise TargetValidationError(
                f"Target '{target.ref_id}' is malformed",
                ref_id=target.ref_id,
                invalid_fields=invalid,
            )

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    @staticmethod
    def dependencies(target: Target) -> FrozenSet[str]:
        """refIds whose pending results ``target`` reads.

        TimeShift re-queries its source backend and reads no result.
        """
        if target.query_type is QueryType.MOVING_AVERAGE and target.query:
            return frozenset((target.query,))
        if target.query_type is QueryType.ARITHMETIC and target.expression:
            return ExpressionEvaluator(target.expression).variable_names
        return frozenset()

    def plan(
        self,
        target: Target,
        request: QueryRequest,
        store: PendingResultStore,
        gateway: BackendGateway,
    ) -> Coroutine[Any, Any, QueryResponse]:
        """Resolve the dependencies of ``target`` and return its computation.

        Every lookup happens here, synchronously, against what ``store`` holds
        at this point of the single pass over the target list.

        Returns:
            Coroutine producing the target's wrapped result.

        Raises:
            TargetValidationError: Malformed target, or TimeShift over a
                derived target.
            DependencyOrderError: Dependency not defined earlier.
            ResolutionError: Backend of a TimeShift dependency is unknown.
        """
        self.validate_target(target)
        query_type = target.query_type

        if query_type is QueryType.TIME_SHIFT:
            source = store.get_target(target.query, requested_by=target.ref_id)
            if source.is_derived:
                raise TargetValidationError(
                    f"TimeShift target '{target.ref_id}' must reference a "
                    f"backend target, not derived target '{source.ref_id}'",
                    ref_id=target.ref_id,
                    invalid_fields={"query": "references a derived target"},
                )
            handle = gateway.resolve(source.datasource)
            factory = functools.partial(
                self.time_shift, target, source, request, handle,
            )
        elif query_type is QueryType.MOVING_AVERAGE:
            dependency = store.get_result(target.query, requested_by=target.ref_id)
            factory = functools.partial(self.moving_average, target, dependency)
        else:
            dependencies = store.snapshot()
            factory = functools.partial(self.arithmetic, target, dependencies)

        return self._run(target, factory)

    async def _run(
        self,
        target: Target,
        factory: Callable[[], Awaitable[List[Series]]],
    ) -> QueryResponse:
        query_type = target.query_type.value
        start_time = time.monotonic()
        try:
            series = await factory()
        except Exception:
            self._stats["errors"] += 1
            record_transform(query_type, "error", config=self._config)
            raise

        record_transform(query_type, "success", config=self._config)
        logger.info(
            "%s target %s produced %d series (%.1f ms)",
            query_type, target.ref_id, len(series),
            (time.monotonic() - start_time) * 1000,
        )
        return QueryResponse(data=series)

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    async def time_shift(
        self,
        target: Target,
        source: Target,
        request: QueryRequest,
        handle: BackendHandle,
    ) -> List[Series]:
        """Re-query ``source`` over a window ``periods`` days earlier.

        Args:
            target: The TimeShift target.
            source: The backend target it references.
            request: The original request; left unmodified.
            handle: Backend handle of ``source``.

        Returns:
            One series named ``outputMetricName`` (defaults to the refId).
        """
        periods = target.periods
        shifted_source = source.model_copy(update={"hide": False}, deep=True)
        shifted_request = request.model_copy(
            update={
                "range": request.range.shifted(-periods),
                "targets": [shifted_source],
            },
            deep=True,
        )

        response = await query_backend(
            source.datasource, handle, shifted_request, config=self._config,
        )
        self._stats["time_shift"] += 1

        return [
            shift_series(
                response.data if response is not None else [],
                metric=target.metric,
                days=periods,
                name=self._output_name(target),
                hide=target.hide,
            )
        ]

    async def moving_average(
        self,
        target: Target,
        dependency: Awaitable[Optional[QueryResponse]],
    ) -> List[Series]:
        """Average every series of the dependency's pending result.

        Returns:
            One series per dependency series, named ``outputMetricName``
            followed by the dependency series' name.
        """
        response = await dependency
        prefix = target.output_metric_name or ""

        output: List[Series] = []
        empty_windows = 0
        for series in (response.data if response is not None else []):
            averaged, empty = average_series(
                series,
                target.periods,
                name=f"{prefix}{series.target}",
                hide=target.hide,
            )
            output.append(averaged)
            empty_windows += empty

        if empty_windows:
            logger.debug(
                "MovingAverage target %s emitted %d point(s) without data",
                target.ref_id, empty_windows,
            )
            self._stats["empty_average_windows"] += empty_windows
            record_empty_average_window(empty_windows, config=self._config)

        self._stats["moving_average"] += 1
        return output

    async def arithmetic(
        self,
        target: Target,
        dependencies: Sequence[Tuple[str, Awaitable[Optional[QueryResponse]]]],
    ) -> List[Series]:
        """Evaluate the target's expression at every distinct timestamp.

        Args:
            target: The Arithmetic target.
            dependencies: Every ``(refId, pending result)`` scheduled before
                ``target``, in scheduling order.

        Returns:
            One series named ``outputMetricName`` (defaults to the refId),
            points in ascending timestamp order.
        """
        ref_ids = [ref_id for ref_id, _ in dependencies]
        responses = await asyncio.gather(*(pending for _, pending in dependencies))
        table = build_value_table(list(zip(ref_ids, responses)))

        evaluator = ExpressionEvaluator(target.expression, ref_id=target.ref_id)
        fallback = self._config.expression_fallback_value

        datapoints: List[Datapoint] = []
        failures = 0
        for timestamp in sorted(table):
            try:
                value = evaluator.evaluate(table[timestamp])
            except EvaluationError as e:
                failures += 1
                logger.warning(
                    "Arithmetic target %s: %s at %d; using %s",
                    target.ref_id, e.message, timestamp, fallback,
                )
                value = fallback
            datapoints.append((value, timestamp))

        if failures:
            self._stats["expression_fallbacks"] += failures
            record_expression_fallback(failures, config=self._config)

        self._stats["arithmetic"] += 1
        return [
            Series(
                target=self._output_name(target),
                datapoints=datapoints,
                hide=target.hide,
            )
        ]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _output_name(target: Target) -> str:
        return target.output_metric_name or target.ref_id

    def get_statistics(self) -> Dict[str, int]:
        """Return transform counters."""
        return dict(self._stats)


__all__ = [
    "MILLIS_PER_DAY",
    "TransformEngine",
    "average_series",
    "build_value_table",
    "shift_series",
]
