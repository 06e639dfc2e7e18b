# -*- coding: utf-8 -*-
"""Tests for the backend registry and backend dispatch."""

import pytest

from metaqueries.backend_gateway import BackendGateway, query_backend
from metaqueries.exceptions import NotFoundError, ResolutionError
from metaqueries.models import QueryRequest, QueryResponse

from tests.conftest import T0, StubBackend, make_request


class TestBackendGateway:

    def test_register_and_resolve(self):
        handle = StubBackend()
        gateway = BackendGateway()
        gateway.register("graphite", handle)

        assert gateway.resolve("graphite") is handle
        assert "graphite" in gateway
        assert len(gateway) == 1
        assert gateway.get_statistics() == {
            "total_backends": 1,
            "resolutions": {"graphite": 1},
        }

    def test_resolve_unknown(self):
        gateway = BackendGateway({"graphite": StubBackend()})

        with pytest.raises(NotFoundError) as exc_info:
            gateway.resolve("influx")

        assert isinstance(exc_info.value, ResolutionError)
        assert exc_info.value.backend == "influx"
        assert exc_info.value.context["available"] == ["graphite"]

    def test_register_replaces(self):
        first, second = StubBackend(), StubBackend()
        gateway = BackendGateway({"graphite": first})
        gateway.register("graphite", second)
        assert gateway.resolve("graphite") is second

    def test_unregister(self):
        gateway = BackendGateway({"graphite": StubBackend(), "influx": StubBackend()})
        assert gateway.unregister("graphite") is True
        assert gateway.unregister("graphite") is False
        assert gateway.list_backends() == ["influx"]

    def test_rejects_bad_registrations(self):
        gateway = BackendGateway()
        with pytest.raises(ValueError):
            gateway.register(" ", StubBackend())
        with pytest.raises(TypeError):
            gateway.register("graphite", object())


class TestQueryBackend:

    @pytest.fixture
    def request_model(self):
        return QueryRequest.model_validate(
            make_request([{"refId": "A", "datasource": "graphite", "target": "cpu"}])
        )

    @pytest.mark.asyncio
    async def test_normalizes_mapping(self, request_model):
        handle = StubBackend(series={"cpu": [[1, T0]]})
        response = await query_backend("graphite", handle, request_model)
        assert isinstance(response, QueryResponse)
        assert response.data[0].datapoints == [(1, T0)]

    @pytest.mark.asyncio
    async def test_none_means_no_data(self, request_model):
        handle = StubBackend(responder=lambda request: None)
        assert await query_backend("graphite", handle, request_model) is None

    @pytest.mark.asyncio
    async def test_unsupported_shape(self, request_model):
        handle = StubBackend(responder=lambda request: [1, 2, 3])
        with pytest.raises(TypeError):
            await query_backend("graphite", handle, request_model)

    @pytest.mark.asyncio
    async def test_backend_error_is_reraised(self, request_model):
        error = TimeoutError("slow backend")
        with pytest.raises(TimeoutError) as exc_info:
            await query_backend("graphite", StubBackend(error=error), request_model)
        assert exc_info.value is error
