"""Pytest configuration for test suite.

Ensures the project root is on ``sys.path`` so imports like
``import inventory_core`` resolve correctly regardless of the working
directory pytest chooses, and provides an in-memory backend fake.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, List, Tuple

import pytest


def _ensure_project_root_on_syspath() -> None:
    project_root = Path(__file__).resolve().parents[1]
    project_root_str = str(project_root)
    if project_root_str not in sys.path:
        # Prepend to prefer local sources over site-packages
        sys.path.insert(0, project_root_str)


_ensure_project_root_on_syspath()


class FakeBackend:
    """In-memory backend returning canned responses per operation.

    A response may be a JSON-like value, an exception instance (raised when
    the operation is called) or a callable receiving the call arguments.
    Operations without a canned response raise ``KeyError``.
    """

    def __init__(self, responses: Dict[str, Any]) -> None:
        self.responses = dict(responses)
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self.closed = False

    async def _respond(self, op: str, *args: Any) -> Any:
        self.calls.append((op, args))
        if op not in self.responses:
            raise KeyError(op)
        value = self.responses[op]
        if isinstance(value, BaseException):
            raise value
        if callable(value):
            result = value(*args)
            if hasattr(result, "__await__"):
                return await result
            return result
        return value

    async def aclose(self) -> None:
        self.closed = True

    def called(self, op: str) -> List[Tuple[Any, ...]]:
        return [args for name, args in self.calls if name == op]

    async def connection(self, conn_id):
        return await self._respond("connection", conn_id)

    async def nodes(self, conn_id):
        return await self._respond("nodes", conn_id)

    async def resources(self, conn_id):
        return await self._respond("resources", conn_id)

    async def ceph_status(self, conn_id):
        return await self._respond("ceph_status", conn_id)

    async def cluster_info(self, conn_id):
        return await self._respond("cluster_info", conn_id)

    async def version(self, conn_id):
        return await self._respond("version", conn_id)

    async def node_status(self, conn_id, node):
        return await self._respond("node_status", conn_id, node)

    async def node_subscription(self, conn_id, node):
        return await self._respond("node_subscription", conn_id, node)

    async def node_updates(self, conn_id, node):
        return await self._respond("node_updates", conn_id, node)

    async def node_maintenance(self, conn_id, node):
        return await self._respond("node_maintenance", conn_id, node)

    async def guest_config(self, conn_id, node, guest_type, vmid):
        return await self._respond("guest_config", conn_id, node, guest_type, vmid)

    async def rrd(self, conn_id, path, timeframe):
        return await self._respond("rrd", conn_id, path, timeframe)

    async def backup_status(self, server_id):
        return await self._respond("backup_status", server_id)

    async def backup_datastores(self, server_id):
        return await self._respond("backup_datastores", server_id)

    async def backup_listing(self, server_id, store):
        return await self._respond("backup_listing", server_id, store)

    async def backup_rrd(self, server_id, timeframe):
        return await self._respond("backup_rrd", server_id, timeframe)

    async def backup_store_rrd(self, server_id, store, timeframe):
        return await self._respond("backup_store_rrd", server_id, store, timeframe)


@pytest.fixture
def make_backend():
    """Factory fixture building a :class:`FakeBackend` from canned responses."""
    return FakeBackend


@pytest.fixture(autouse=True)
def reset_backend_registry():
    """Reset the backend registry before each test to avoid cross-test leakage."""
    from inventory_core.adapters import reset_backends

    reset_backends()
    yield
    reset_backends()
