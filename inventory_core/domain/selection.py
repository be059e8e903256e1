"""
Inventory selections and composite identifier parsing.

A selection names one entity of the inventory tree by kind and an opaque,
colon-delimited identifier whose layout depends on the kind:

- cluster / backup-server: ``<connection id>``
- node: ``<connection id>:<node name>`` (node names may contain colons)
- guest: ``<connection id>:<node>:<qemu|lxc>:<vmid>``
- backup-store: ``<server id>:<store name>``

Parsing is purely structural and total. Whether the entity exists is
decided later by the aggregators against fetched data.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict


class SelectionKind(str, Enum):
    """Closed set of selectable inventory kinds."""

    ROOT = "root"
    CLUSTER = "cluster"
    NODE = "node"
    GUEST = "guest"
    BACKUP_SERVER = "backup-server"
    BACKUP_STORE = "backup-store"


class Selection(BaseModel):
    """Selected inventory entity.

    Attributes
    ----------
    kind: SelectionKind
        Entity kind; decides how ``id`` is parsed and which aggregator runs.
    id: str
        Composite identifier (see module docstring).
    """

    model_config = ConfigDict(frozen=True)

    kind: SelectionKind
    id: str

    @classmethod
    def of(cls, kind: str, selection_id: str) -> "Selection":
        """Build a selection from a kind name, e.g. ``Selection.of("node", "c1:pve1")``."""
        return cls(kind=SelectionKind(kind), id=selection_id)


@dataclass(frozen=True)
class NodeKey:
    conn_id: str
    node: str

    @property
    def rrd_path(self) -> str:
        return f"/nodes/{self.node}"


@dataclass(frozen=True)
class GuestKey:
    conn_id: str
    node: str
    guest_type: str
    vmid: str

    @property
    def rrd_path(self) -> str:
        return f"/nodes/{self.node}/{self.guest_type}/{self.vmid}"

    @property
    def selection_id(self) -> str:
        return f"{self.conn_id}:{self.node}:{self.guest_type}:{self.vmid}"


@dataclass(frozen=True)
class StoreKey:
    server_id: str
    store: str


def parse_node_key(selection_id: str) -> NodeKey:
    """
    Split a node identifier on its first colon.

    Examples
    --------
    >>> parse_node_key("c1:pve:a")
    NodeKey(conn_id='c1', node='pve:a')
    >>> parse_node_key("c1")
    NodeKey(conn_id='c1', node='')
    """
    conn_id, _, node = selection_id.partition(":")
    return NodeKey(conn_id=conn_id, node=node)


def parse_guest_key(selection_id: str) -> GuestKey:
    """
    Split a guest identifier into connection, node, type and vmid.

    Missing trailing segments become empty strings; segments past the
    fourth are ignored.

    Examples
    --------
    >>> parse_guest_key("c1:pve1:qemu:100")
    GuestKey(conn_id='c1', node='pve1', guest_type='qemu', vmid='100')
    """
    parts = selection_id.split(":")
    parts += [""] * (4 - len(parts))
    conn_id, node, guest_type, vmid = parts[:4]
    return GuestKey(conn_id=conn_id, node=node, guest_type=guest_type, vmid=vmid)


def parse_store_key(selection_id: str) -> StoreKey:
    """
    Split a backup-store identifier on its first colon.

    Examples
    --------
    >>> parse_store_key("pbs1:fast:ssd")
    StoreKey(server_id='pbs1', store='fast:ssd')
    """
    server_id, _, store = selection_id.partition(":")
    return StoreKey(server_id=server_id, store=store)
