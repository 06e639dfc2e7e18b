# -*- coding: utf-8 -*-
"""Tests for the per-request pending result store."""

import asyncio

import pytest

from metaqueries.exceptions import DependencyOrderError, TargetValidationError
from metaqueries.models import QueryResponse, Target, TargetState
from metaqueries.result_store import PendingResultStore


def _target(ref_id):
    return Target(refId=ref_id, datasource="graphite")


class TestPendingResultStore:

    @pytest.mark.asyncio
    async def test_register_is_write_once(self):
        store = PendingResultStore()
        loop = asyncio.get_running_loop()
        store.register(_target("A"), loop.create_future())

        with pytest.raises(TargetValidationError):
            store.register(_target("A"), loop.create_future())

    @pytest.mark.asyncio
    async def test_state_follows_future(self):
        store = PendingResultStore()
        loop = asyncio.get_running_loop()
        ok, bad = loop.create_future(), loop.create_future()

        store.mark_pending(_target("A"))
        assert store.state("A") is TargetState.PENDING

        store.register(_target("A"), ok)
        store.register(_target("B"), bad)
        assert store.state("A") is TargetState.DISPATCHED

        ok.set_result(QueryResponse())
        bad.set_exception(RuntimeError("boom"))
        await asyncio.sleep(0)

        assert store.states() == {"A": TargetState.RESOLVED, "B": TargetState.FAILED}
        bad.exception()

    @pytest.mark.asyncio
    async def test_cancelled_result_is_failed(self):
        store = PendingResultStore()
        future = asyncio.get_running_loop().create_future()
        store.register(_target("A"), future)

        future.cancel()
        await asyncio.sleep(0)

        assert store.state("A") is TargetState.FAILED

    def test_fail_pending_target(self):
        store = PendingResultStore()
        store.mark_pending(_target("A"))
        store.fail("A")
        assert store.state("A") is TargetState.FAILED
        assert "A" not in store

    def test_mark_pending_twice(self):
        store = PendingResultStore()
        store.mark_pending(_target("A"))
        with pytest.raises(TargetValidationError):
            store.mark_pending(_target("A"))

    def test_unregistered_lookup_is_order_error(self):
        store = PendingResultStore()
        store.mark_pending(_target("A"))

        with pytest.raises(DependencyOrderError) as exc_info:
            store.get_result("A", requested_by="B")
        assert exc_info.value.ref_id == "B"
        assert exc_info.value.context == {"dependency": "A"}

        with pytest.raises(DependencyOrderError):
            store.get_target("Z", requested_by="B")

    @pytest.mark.asyncio
    async def test_snapshot_and_shared_futures(self):
        store = PendingResultStore()
        group = asyncio.get_running_loop().create_future()
        single = asyncio.get_running_loop().create_future()
        store.register(_target("A"), group)
        store.register(_target("B"), single)
        store.register(_target("C"), group)

        assert [ref for ref, _ in store.snapshot()] == ["A", "B", "C"]
        assert store.get_result("C", requested_by="D") is group
        assert store.get_target("B", requested_by="D").ref_id == "B"
        assert store.futures() == [group, single]
        assert len(store) == 3
