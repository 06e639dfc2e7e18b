# -*- coding: utf-8 -*-
"""Pytest configuration and shared fixtures."""

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest

from metaqueries.backend_gateway import BackendGateway
from metaqueries.config import MetaQueriesConfig, reset_config, set_config
from metaqueries.models import QueryRequest
from metaqueries.scheduler import QueryScheduler
from metaqueries.transforms import MILLIS_PER_DAY

T0 = 1_700_000_000_000
DAY = MILLIS_PER_DAY


class StubBackend:
    """Deterministic backend handle recording every request it receives.

    ``series`` maps a target field value (``target.target`` by default) to
    the list of ``[value, ts]`` points returned for it. Hidden targets are
    left out of the response, as real backends do, unless ``honor_hide`` is
    off. ``responder`` may be given instead to build the whole response
    from the request.
    """

    def __init__(
        self,
        series: Optional[Dict[str, List[List[Any]]]] = None,
        responder: Optional[Callable[[QueryRequest], Any]] = None,
        delay: float = 0.0,
        error: Optional[Exception] = None,
        key: str = "target",
        honor_hide: bool = True,
    ):
        self.series = series or {}
        self.responder = responder
        self.delay = delay
        self.error = error
        self.key = key
        self.honor_hide = honor_hide
        self.calls: List[QueryRequest] = []

    async def query(self, request: QueryRequest) -> Any:
        self.calls.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.responder is not None:
            return self.responder(request)

        data = []
        for target in request.targets:
            if target.hide and self.honor_hide:
                continue
            name = getattr(target, self.key, None)
            if name in self.series:
                data.append({"target": name, "datapoints": self.series[name]})
        return {"data": data}


def make_request(targets: List[Dict[str, Any]], **range_kwargs: Any) -> Dict[str, Any]:
    """Build a wire-format request over a one-day window."""
    window = {
        "from": datetime(2026, 1, 1, tzinfo=timezone.utc).isoformat(),
        "to": datetime(2026, 1, 2, tzinfo=timezone.utc).isoformat(),
    }
    window.update(range_kwargs)
    return {"range": window, "targets": targets}


@pytest.fixture(autouse=True)
def metaqueries_config():
    """Install a fresh default configuration for every test."""
    config = MetaQueriesConfig()
    set_config(config)
    yield config
    reset_config()


@pytest.fixture
def graphite():
    return StubBackend(series={
        "cpu": [[1, T0], [2, T0 + 1000], [3, T0 + 2000]],
        "mem": [[10, T0], [20, T0 + 1000], [30, T0 + 2000]],
        "disk": [[5, T0], [6, T0 + 1000]],
    })


@pytest.fixture
def gateway(graphite):
    return BackendGateway({"graphite": graphite})


@pytest.fixture
def scheduler(gateway, metaqueries_config):
    return QueryScheduler(gateway, config=metaqueries_config)
