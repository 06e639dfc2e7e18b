# -*- coding: utf-8 -*-
"""
Query Scheduler - Meta Queries

Entry point for one panel query. Targets are partitioned by datasource name
in order of first appearance, then processed group by group:

1. Targets of the layer's own datasource name are derived targets; each is
   planned by the transform engine, which resolves its dependencies against
   the targets scheduled so far, and runs as its own task.
2. Every other group is sent to its backend as a single sub-request
   carrying only that group's targets. A target whose result a derived
   target reads gets a single-target query of its own when it shares the
   group with other targets, so its refId never holds a neighbour's
   series. A hidden target is re-queried alone with ``hide`` turned off,
   so derived targets can still read its data. Every other refId points
   at the group response.
3. When every group has finished, the group responses are flattened in
   group order, leaving out empty responses and hidden series.

Independent work runs concurrently; derived targets wait only on their
dependencies. The first failure aborts the request: outstanding tasks are
cancelled and the error propagates unchanged.

Example:
    >>> scheduler = QueryScheduler(gateway)
    >>> response = await scheduler.query({
    ...     "range": {"from": "2026-01-01T00:00:00Z", "to": "2026-01-02T00:00:00Z"},
    ...     "targets": [
    ...         {"refId": "A", "datasource": "graphite", "target": "cpu"},
    ...         {"refId": "B", "datasource": "MetaQueries",
    ...          "queryType": "MovingAverage", "query": "A", "periods": 3},
    ...     ],
    ... })

Author: Meta Queries Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from typing import Dict, List, Optional, Set, Union

from pydantic import ValidationError

from metaqueries.backend_gateway import BackendGateway, query_backend
from metaqueries.config import MetaQueriesConfig, get_config
from metaqueries.exceptions import TargetValidationError
from metaqueries.metrics import record_hidden_refetch, record_query, update_active_queries
from metaqueries.models import (
    HealthCheckResult,
    QueryRequest,
    QueryResponse,
    Series,
    Target,
)
from metaqueries.result_store import PendingResultStore
from metaqueries.transforms import TransformEngine

logger = logging.getLogger(__name__)


class QueryScheduler:
    """Per-panel query orchestrator.

    Attributes:
        gateway: Backend registry used to resolve foreign datasources.
        engine: Transform engine computing derived targets.
        name: Datasource name identifying derived targets.
    """

    def __init__(
        self,
        gateway: BackendGateway,
        engine: Optional[TransformEngine] = None,
        config: Optional[MetaQueriesConfig] = None,
        name: Optional[str] = None,
    ) -> None:
        """Initialize QueryScheduler.

        Args:
            gateway: Backend registry.
            engine: Optional transform engine; created from ``config`` if None.
            config: Optional configuration; defaults to the global config.
            name: Own datasource name; defaults to ``config.datasource_name``.
        """
        self._config = config or get_config()
        self.gateway = gateway
        self.engine = engine or TransformEngine(config=self._config)
        self.name = name or self._config.datasource_name

        self._stats: Dict[str, int] = {
            "queries": 0,
            "failures": 0,
            "targets": 0,
            "backend_dispatches": 0,
            "hidden_refetches": 0,
            "single_target_fetches": 0,
        }
        logger.info("QueryScheduler initialized for datasource %s", self.name)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def query(
        self, request: Union[QueryRequest, Mapping],
    ) -> QueryResponse:
        """Answer a panel query.

        Args:
            request: QueryRequest, or a mapping in wire format.

        Returns:
            Flattened response of every visible series.

        Raises:
            TargetValidationError: Malformed request or target.
            DependencyOrderError: A derived target references a refId not
                defined earlier.
            ResolutionError: A backend name cannot be resolved.
            Exception: Any backend failure, unchanged.
        """
        start_time = time.monotonic()
        self._stats["queries"] += 1
        update_active_queries(1, config=self._config)
        try:
            response = await self._execute(self._coerce_request(request))
        except BaseException:
            self._stats["failures"] += 1
            record_query("error", time.monotonic() - start_time, config=self._config)
            raise
        finally:
            update_active_queries(-1, config=self._config)

        elapsed = time.monotonic() - start_time
        record_query("success", elapsed, config=self._config)
        logger.info(
            "Query answered with %d series in %.1f ms",
            len(response.data), elapsed * 1000,
        )
        return response

    async def test_connection(self) -> HealthCheckResult:
        """Report that the layer is reachable.

        The layer has no connection of its own to test.
        """
        return HealthCheckResult(
            status="success",
            message="Meta Queries source is working correctly",
            title="Success",
        )

    def get_statistics(self) -> Dict[str, int]:
        """Return scheduler counters."""
        return dict(self._stats)

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def _coerce_request(self, request: Union[QueryRequest, Mapping]) -> QueryRequest:
        if isinstance(request, QueryRequest):
            parsed = request
        elif isinstance(request, Mapping):
            try:
                parsed = QueryRequest.model_validate(dict(request))
            except ValidationError as e:
                raise TargetValidationError(
                    "Malformed query request",
                    context={
                        "errors": [
                            {"loc": list(err["loc"]), "msg": err["msg"]}
                            for err in e.errors()
                        ],
                    },
                ) from e
        else:
            raise TargetValidationError(
                f"Unsupported request type {type(request).__name__}",
            )

        limit = self._config.max_targets_per_request
        if len(parsed.targets) > limit:
            raise TargetValidationError(
                f"Request has {len(parsed.targets)} targets; the limit is {limit}",
                context={"targets": len(parsed.targets), "limit": limit},
            )
        return parsed

    @staticmethod
    def _partition(targets: List[Target]) -> Dict[str, List[Target]]:
        """Group targets by datasource, in order of first appearance."""
        groups: Dict[str, List[Target]] = {}
        for target in targets:
            groups.setdefault(target.datasource, []).append(target)
        return groups

    def _referenced(self, targets: List[Target]) -> Set[str]:
        """refIds whose pending result some derived target reads."""
        referenced: Set[str] = set()
        for target in targets:
            if target.datasource == self.name:
                referenced |= self.engine.dependencies(target)
        return referenced

    async def _execute(self, request: QueryRequest) -> QueryResponse:
        loop = asyncio.get_running_loop()
        store = PendingResultStore()
        referenced = self._referenced(request.targets)
        tasks: List[asyncio.Task] = []
        single_fetches: List[asyncio.Task] = []
        group_tasks: List[asyncio.Task] = []

        self._stats["targets"] += len(request.targets)

        try:
            for datasource, targets in self._partition(request.targets).items():
                if datasource == self.name:
                    group = self._schedule_derived(targets, request, store, tasks, loop)
                else:
                    group = self._schedule_backend(
                        datasource, targets, request, store, referenced,
                        tasks, single_fetches, loop,
                    )
                group_tasks.append(group)

            results = await asyncio.gather(*group_tasks)
        except BaseException:
            await self._abort(tasks)
            raise

        await self._discard_single_fetches(single_fetches)
        return self._merge(results)

    def _schedule_derived(
        self,
        targets: List[Target],
        request: QueryRequest,
        store: PendingResultStore,
        tasks: List[asyncio.Task],
        loop: asyncio.AbstractEventLoop,
    ) -> asyncio.Task:
        """Plan every derived target of the group, one task per target."""
        own: List[asyncio.Task] = []
        for target in targets:
            store.mark_pending(target)
            try:
                coro = self.engine.plan(target, request, store, self.gateway)
            except BaseException:
                store.fail(target.ref_id)
                raise
            task = loop.create_task(coro, name=f"metaqueries:{target.ref_id}")
            tasks.append(task)
            own.append(task)
            store.register(target, task)

        group = loop.create_task(_concat(own), name=f"metaqueries:{self.name}")
        tasks.append(group)
        return group

    def _schedule_backend(
        self,
        datasource: str,
        targets: List[Target],
        request: QueryRequest,
        store: PendingResultStore,
        referenced: Set[str],
        tasks: List[asyncio.Task],
        single_fetches: List[asyncio.Task],
        loop: asyncio.AbstractEventLoop,
    ) -> asyncio.Task:
        """Send the group to its backend as one sub-request.

        The group response feeds the merged output. Targets read by derived
        targets may get an extra single-target query whose response is only
        registered in ``store``.
        """
        handle = self.gateway.resolve(datasource)

        sub_request = request.model_copy(
            update={"targets": [t.model_copy(deep=True) for t in targets]},
            deep=True,
        )
        group = loop.create_task(
            query_backend(datasource, handle, sub_request, config=self._config),
            name=f"metaqueries:{datasource}",
        )
        tasks.append(group)
        self._stats["backend_dispatches"] += 1

        for target in targets:
            if target.hide and self._config.refetch_hidden_targets:
                self._stats["hidden_refetches"] += 1
                record_hidden_refetch(datasource, config=self._config)
                logger.debug(
                    "Re-querying hidden target %s on backend %s", target.ref_id, datasource,
                )
            elif target.ref_id in referenced and len(targets) > 1:
                self._stats["single_target_fetches"] += 1
                logger.debug(
                    "Querying target %s alone on backend %s for its derived targets",
                    target.ref_id, datasource,
                )
            else:
                store.register(target, group)
                continue

            single_request = request.model_copy(
                update={"targets": [target.model_copy(update={"hide": False}, deep=True)]},
                deep=True,
            )
            single = loop.create_task(
                query_backend(datasource, handle, single_request, config=self._config),
                name=f"metaqueries:{datasource}:{target.ref_id}",
            )
            tasks.append(single)
            single_fetches.append(single)
            store.register(target, single)
            self._stats["backend_dispatches"] += 1
        return group

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    @staticmethod
    async def _abort(tasks: List[asyncio.Task]) -> None:
        """Cancel every task of a failed request and wait for them to settle."""
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.debug("Aborted %d task(s)", len(tasks))

    @staticmethod
    async def _discard_single_fetches(single_fetches: List[asyncio.Task]) -> None:
        """Cancel single-target queries nobody awaited; log the ones that failed."""
        pending = [task for task in single_fetches if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        for task in single_fetches:
            if task in pending or task.cancelled():
                continue
            error = task.exception()
            if error is not None:
                logger.warning(
                    "Single-target query %s failed: %s", task.get_name(), error,
                )

    @staticmethod
    def _merge(results: List[Optional[QueryResponse]]) -> QueryResponse:
        data: List[Series] = []
        for response in results:
            if response is None:
                continue
            data.extend(series for series in response.data if not series.hide)
        return QueryResponse(data=data)


async def _concat(tasks: List[asyncio.Task]) -> QueryResponse:
    """Join derived-target tasks into one group response."""
    responses = await asyncio.gather(*tasks)
    data: List[Series] = []
    for response in responses:
        data.extend(response.data)
    return QueryResponse(data=data)


__all__ = ["QueryScheduler"]
