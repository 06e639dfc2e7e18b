# -*- coding: utf-8 -*-
"""Tests for the service facade and FastAPI router."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from metaqueries.config import MetaQueriesConfig
from metaqueries.setup import MetaQueriesService, configure_metaqueries, get_metaqueries

from tests.conftest import T0, StubBackend, make_request


@pytest.fixture
def app():
    return FastAPI()


@pytest.fixture
def service(app, graphite):
    service = configure_metaqueries(app, config=MetaQueriesConfig())
    service.register_backend("graphite", graphite)
    service.register_backend("broken", StubBackend(error=RuntimeError("backend down")))
    return service


@pytest.fixture
def client(app, service):
    return TestClient(app)


class TestMetaQueriesService:

    def test_query_sync(self, graphite):
        service = MetaQueriesService(config=MetaQueriesConfig())
        service.register_backend("graphite", graphite)

        response = service.query_sync(make_request([
            {"refId": "A", "datasource": "graphite", "target": "cpu"},
            {"refId": "B", "datasource": "MetaQueries", "queryType": "Arithmetic",
             "expression": "A * 10", "outputMetricName": "scaled"},
        ]))

        assert [s.target for s in response.data] == ["cpu", "scaled"]
        assert response.data[1].datapoints == [(10, T0), (20, T0 + 1000), (30, T0 + 2000)]

        stats = service.get_statistics()
        assert stats["scheduler"]["queries"] == 1
        assert stats["transforms"]["arithmetic"] == 1
        assert stats["gateway"]["total_backends"] == 1

    def test_unregister_backend(self, graphite):
        service = MetaQueriesService(config=MetaQueriesConfig())
        service.register_backend("graphite", graphite)
        assert service.unregister_backend("graphite") is True

    def test_get_metaqueries_requires_configuration(self):
        with pytest.raises(RuntimeError):
            get_metaqueries(FastAPI())

    def test_configure_attaches_service(self, app, service):
        assert get_metaqueries(app) is service


class TestRouter:

    def test_query(self, client):
        resp = client.post("/api/v1/metaqueries/query", json=make_request([
            {"refId": "A", "datasource": "graphite", "target": "mem"},
        ]))
        assert resp.status_code == 200
        assert resp.json() == {
            "data": [{
                "target": "mem",
                "datapoints": [[10.0, T0], [20.0, T0 + 1000], [30.0, T0 + 2000]],
                "hide": False,
            }],
        }

    def test_dependency_error_is_400(self, client):
        resp = client.post("/api/v1/metaqueries/query", json=make_request([
            {"refId": "B", "datasource": "MetaQueries", "queryType": "MovingAverage",
             "query": "A", "periods": 2},
        ]))
        assert resp.status_code == 400
        assert resp.json()["detail"]["error_code"] == "MQ_DEPENDENCY_ORDER_ERROR"

    def test_malformed_request_is_400(self, client):
        resp = client.post("/api/v1/metaqueries/query", json={"targets": []})
        assert resp.status_code == 400
        assert resp.json()["detail"]["error_type"] == "TargetValidationError"

    def test_unknown_backend_is_404(self, client):
        resp = client.post("/api/v1/metaqueries/query", json=make_request([
            {"refId": "A", "datasource": "nowhere"},
        ]))
        assert resp.status_code == 404

    def test_backend_failure_is_502(self, client):
        resp = client.post("/api/v1/metaqueries/query", json=make_request([
            {"refId": "A", "datasource": "broken"},
        ]))
        assert resp.status_code == 502
        assert resp.json()["detail"]["message"] == "backend down"

    def test_health(self, client):
        resp = client.get("/api/v1/metaqueries/health")
        assert resp.status_code == 200
        assert resp.json() == {
            "status": "success",
            "message": "Meta Queries source is working correctly",
            "title": "Success",
        }
