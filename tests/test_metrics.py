# -*- coding: utf-8 -*-
"""Tests for metric recording and the enable_metrics switch."""

from unittest.mock import MagicMock

import pytest

from metaqueries import metrics
from metaqueries.backend_gateway import BackendGateway
from metaqueries.config import MetaQueriesConfig, set_config
from metaqueries.scheduler import QueryScheduler

from tests.conftest import make_request

requires_prometheus = pytest.mark.skipif(
    not metrics.PROMETHEUS_AVAILABLE, reason="prometheus_client not installed",
)

REQUEST = make_request([
    {"refId": "A", "datasource": "graphite", "target": "cpu"},
    {"refId": "B", "datasource": "MetaQueries", "queryType": "Arithmetic",
     "expression": "A * 2"},
])


@pytest.fixture
def counters(monkeypatch):
    """Replace the counters touched by a panel query with mocks."""
    mocks = {
        "queries": MagicMock(),
        "backend": MagicMock(),
        "transforms": MagicMock(),
    }
    monkeypatch.setattr(metrics, "metaqueries_queries_total", mocks["queries"])
    monkeypatch.setattr(metrics, "metaqueries_backend_requests_total", mocks["backend"])
    monkeypatch.setattr(metrics, "metaqueries_transform_operations_total", mocks["transforms"])
    monkeypatch.setattr(metrics, "metaqueries_query_duration_seconds", MagicMock())
    monkeypatch.setattr(metrics, "metaqueries_backend_request_duration_seconds", MagicMock())
    monkeypatch.setattr(metrics, "metaqueries_active_queries", MagicMock())
    return mocks


class TestMetricsSwitch:

    @pytest.mark.asyncio
    async def test_scheduler_config_disables_metrics(self, counters, graphite):
        set_config(MetaQueriesConfig(enable_metrics=True))
        scheduler = QueryScheduler(
            BackendGateway({"graphite": graphite}),
            config=MetaQueriesConfig(enable_metrics=False),
        )

        await scheduler.query(REQUEST)

        for mock in counters.values():
            mock.labels.assert_not_called()

    @requires_prometheus
    @pytest.mark.asyncio
    async def test_scheduler_config_enables_metrics(self, counters, graphite):
        set_config(MetaQueriesConfig(enable_metrics=False))
        scheduler = QueryScheduler(
            BackendGateway({"graphite": graphite}),
            config=MetaQueriesConfig(enable_metrics=True),
        )

        await scheduler.query(REQUEST)

        counters["queries"].labels.assert_called_once_with(status="success")
        counters["backend"].labels.assert_called_once_with(backend="graphite", status="success")
        counters["transforms"].labels.assert_called_once_with(
            query_type="Arithmetic", status="success",
        )

    @requires_prometheus
    def test_helpers_fall_back_to_global_config(self, counters):
        set_config(MetaQueriesConfig(enable_metrics=False))
        metrics.record_query("success")
        counters["queries"].labels.assert_not_called()

        set_config(MetaQueriesConfig(enable_metrics=True))
        metrics.record_query("success")
        counters["queries"].labels.assert_called_once_with(status="success")

    @requires_prometheus
    def test_explicit_config_wins_over_global(self, counters):
        set_config(MetaQueriesConfig(enable_metrics=True))
        metrics.record_transform(
            "MovingAverage", "error", config=MetaQueriesConfig(enable_metrics=False),
        )
        counters["transforms"].labels.assert_not_called()
