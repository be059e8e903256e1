"""Inventory backend interfaces and registry."""

from __future__ import annotations

import logging
from typing import Any, Dict, Protocol


class InventoryBackend(Protocol):
    """Protocol for management API backends.

    Every method performs one GET request and returns the parsed JSON body
    as-is; envelope unwrapping is left to the aggregators. Implementations
    raise ``httpx.HTTPError`` on transport failures or non-2xx responses and
    ``ValueError`` when the body is not valid JSON.
    """

    async def connection(self, conn_id: str) -> Any:
        """Return connection metadata (``{name, ...}``)."""
        raise NotImplementedError

    async def nodes(self, conn_id: str) -> Any:
        """Return the node list of a virtualization connection."""
        raise NotImplementedError

    async def resources(self, conn_id: str) -> Any:
        """Return the unified resource list (guests across all nodes)."""
        raise NotImplementedError

    async def ceph_status(self, conn_id: str) -> Any:
        """Return cluster storage health."""
        raise NotImplementedError

    async def cluster_info(self, conn_id: str) -> Any:
        """Return cluster metadata (display name)."""
        raise NotImplementedError

    async def version(self, conn_id: str) -> Any:
        """Return the platform version."""
        raise NotImplementedError

    async def node_status(self, conn_id: str, node: str) -> Any:
        """Return the extended status of a node."""
        raise NotImplementedError

    async def node_subscription(self, conn_id: str, node: str) -> Any:
        """Return subscription information of a node."""
        raise NotImplementedError

    async def node_updates(self, conn_id: str, node: str) -> Any:
        """Return pending OS updates of a node."""
        raise NotImplementedError

    async def node_maintenance(self, conn_id: str, node: str) -> Any:
        """Return the maintenance state of a node."""
        raise NotImplementedError

    async def guest_config(
        self, conn_id: str, node: str, guest_type: str, vmid: str
    ) -> Any:
        """Return the configuration of a guest."""
        raise NotImplementedError

    async def rrd(self, conn_id: str, path: str, timeframe: str) -> Any:
        """Return time-series samples for a node or guest path."""
        raise NotImplementedError

    async def backup_status(self, server_id: str) -> Any:
        """Return backup server status."""
        raise NotImplementedError

    async def backup_datastores(self, server_id: str) -> Any:
        """Return the datastore list of a backup server."""
        raise NotImplementedError

    async def backup_listing(self, server_id: str, store: str) -> Any:
        """Return the backups held in one datastore."""
        raise NotImplementedError

    async def backup_rrd(self, server_id: str, timeframe: str) -> Any:
        """Return backup server time-series samples."""
        raise NotImplementedError

    async def backup_store_rrd(
        self, server_id: str, store: str, timeframe: str
    ) -> Any:
        """Return datastore time-series samples."""
        raise NotImplementedError


_backends: Dict[str, InventoryBackend] = {}


def register_backend(name: str, backend: InventoryBackend) -> None:
    """Register a backend instance under a logical ``name``."""
    _backends[name] = backend
    logging.getLogger(__name__).info(
        "backends.registered",
        extra={"backend_name": name, "backend_type": type(backend).__name__},
    )


def get_backend(name: str = "default") -> InventoryBackend:
    """Retrieve a registered backend by ``name``."""
    return _backends[name]


def get_available_backends() -> list[str]:
    """Get list of registered backend names."""
    return list(_backends.keys())


def reset_backends() -> None:
    """Test-only helper to clear registered backends."""
    _backends.clear()
