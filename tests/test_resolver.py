"""
Tests for the selection resolver: stale-result guard and series service.
"""

import asyncio
import logging

import httpx
import pytest

from inventory_core.config.models import GIB, Timeframe
from inventory_core.domain.selection import Selection
from inventory_core.errors import UnsupportedSelectionError
from inventory_core.server.resolver import InventoryResolver


def _gated_nodes(gate: asyncio.Event, slow_conn: str, fail: bool = False):
    async def nodes(conn_id):
        if conn_id == slow_conn:
            await gate.wait()
            if fail:
                raise httpx.ConnectError("down")
        return [{"node": "pve1", "status": "online"}]

    return nodes


@pytest.mark.asyncio
async def test_superseded_resolution_is_discarded(make_backend, caplog):
    gate = asyncio.Event()
    backend = make_backend({"nodes": _gated_nodes(gate, "slow"), "resources": []})
    resolver = InventoryResolver(backend)

    slow = asyncio.ensure_future(resolver.resolve(Selection.of("cluster", "slow")))
    await asyncio.sleep(0)
    fast = await resolver.resolve(Selection.of("cluster", "fast"))
    gate.set()

    with caplog.at_level(logging.INFO):
        assert await slow is None

    assert fast is not None and fast.title == "fast"
    assert resolver.current is fast
    assert resolver.active == Selection.of("cluster", "fast")
    assert any(r.message == "resolver.stale_discarded" for r in caplog.records)


@pytest.mark.asyncio
async def test_superseded_failure_is_discarded(make_backend):
    gate = asyncio.Event()
    backend = make_backend(
        {"nodes": _gated_nodes(gate, "slow", fail=True), "resources": []}
    )
    resolver = InventoryResolver(backend)

    slow = asyncio.ensure_future(resolver.resolve(Selection.of("cluster", "slow")))
    await asyncio.sleep(0)
    resolver.select(Selection.of("cluster", "fast"))
    gate.set()

    assert await slow is None
    assert resolver.current is None


@pytest.mark.asyncio
async def test_current_failure_propagates_and_keeps_previous(make_backend):
    backend = make_backend({"nodes": [{"node": "pve1"}], "resources": []})
    resolver = InventoryResolver(backend)
    first = await resolver.resolve(Selection.of("cluster", "c1"))

    backend.responses["nodes"] = httpx.ConnectError("down")
    with pytest.raises(httpx.ConnectError):
        await resolver.resolve(Selection.of("cluster", "c2"))

    assert resolver.current is first


@pytest.mark.asyncio
async def test_resolve_requires_a_selection(make_backend):
    with pytest.raises(UnsupportedSelectionError):
        await InventoryResolver(make_backend({})).resolve()


def test_select_returns_increasing_generations(make_backend):
    resolver = InventoryResolver(make_backend({}))
    sel = Selection.of("node", "c1:pve1")
    assert resolver.select(sel) < resolver.select(sel)


@pytest.mark.asyncio
async def test_details_does_not_touch_active_selection(make_backend):
    backend = make_backend({"nodes": [], "resources": []})
    resolver = InventoryResolver(backend)
    payload = await resolver.details(Selection.of("cluster", "c1"))
    assert payload.title == "c1"
    assert resolver.active is None
    assert resolver.current is None


class TestSeries:
    """Tests for node and guest time series."""

    @pytest.mark.asyncio
    async def test_node_series(self, make_backend):
        backend = make_backend(
            {"rrd": {"data": [{"time": 20, "cpu": 0.5}, {"time": 10, "cpu": 0.1}]}}
        )
        resolver = InventoryResolver(backend, timeframe=Timeframe.DAY)

        points = await resolver.series(Selection.of("node", "c1:pve1"))

        assert [p.t for p in points] == [10_000, 20_000]
        assert backend.called("rrd") == [("c1", "/nodes/pve1", "day")]

    @pytest.mark.asyncio
    async def test_guest_series_with_capacity_hint(self, make_backend):
        backend = make_backend({"rrd": [{"time": 1, "mem": 2 * GIB}]})
        resolver = InventoryResolver(backend)

        points = await resolver.series(
            Selection.of("guest", "c1:pve1:qemu:100"), Timeframe.WEEK, 8 * GIB
        )

        assert points[0].ram_pct == 25
        assert backend.called("rrd") == [("c1", "/nodes/pve1/qemu/100", "week")]

    @pytest.mark.asyncio
    async def test_other_kinds_are_unsupported(self, make_backend):
        resolver = InventoryResolver(make_backend({}))
        with pytest.raises(UnsupportedSelectionError):
            await resolver.series(Selection.of("backup-server", "pbs1"))

    @pytest.mark.asyncio
    async def test_failure_propagates(self, make_backend):
        resolver = InventoryResolver(make_backend({"rrd": httpx.ReadTimeout("slow")}))
        with pytest.raises(httpx.ReadTimeout):
            await resolver.series(Selection.of("node", "c1:pve1"))
