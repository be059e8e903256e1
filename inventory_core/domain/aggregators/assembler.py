"""
Shared payload assembly: rollups, status classification and table rows.

Everything here is synchronous and pure; the aggregators call it once all of
their requests have settled.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional

from ..envelope import num, parse_tags, unwrap
from ..models import GuestRow, NodeRow, Status, UtilMetric
from ..selection import GuestKey
from ..units import cpu_percent, percent_of

BREADCRUMB_ROOT = ("Infrastructure", "Inventory")
GUEST_TYPES = ("qemu", "lxc")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def breadcrumb(*parts: str) -> List[str]:
    return [*BREADCRUMB_ROOT, *parts]


def online_status(online: int, total: int) -> Status:
    """
    Classify health from online/total counts.

    Examples
    --------
    >>> online_status(2, 2), online_status(1, 2), online_status(0, 2)
    ('ok', 'warn', 'crit')
    """
    if online == total:
        return "ok"
    if online > 0:
        return "warn"
    return "crit"


def connection_name(body: Any, default: str) -> str:
    """Return the display name from connection metadata, else ``default``."""
    if isinstance(body, Mapping) and body.get("name"):
        return str(body["name"])
    inner = unwrap(body)
    if isinstance(inner, Mapping) and inner.get("name"):
        return str(inner["name"])
    return default


def count_where(records: Iterable[Mapping[str, Any]], key: str, value: Any) -> int:
    return sum(1 for r in records if r.get(key) == value)


@dataclass(frozen=True)
class ClusterRollup:
    """Summed counters across nodes."""

    node_count: int
    cpu_avg_pct: int
    mem_used: float
    mem_total: float
    disk_used: float
    disk_total: float

    @property
    def mem_pct(self) -> int:
        return percent_of(self.mem_used, self.mem_total)

    @property
    def disk_pct(self) -> int:
        return percent_of(self.disk_used, self.disk_total)


def rollup_nodes(nodes: List[Mapping[str, Any]]) -> ClusterRollup:
    """
    Average CPU and sum memory/storage over a node list.

    Examples
    --------
    >>> r = rollup_nodes([{"cpu": 0.2, "mem": 1, "maxmem": 4}, {"cpu": 0.4, "mem": 1, "maxmem": 4}])
    >>> r.cpu_avg_pct, r.mem_pct
    (30, 25)
    """
    total_cpu = sum(num(n.get("cpu")) for n in nodes)
    return ClusterRollup(
        node_count=len(nodes),
        cpu_avg_pct=cpu_percent(total_cpu / len(nodes)) if nodes else 0,
        mem_used=sum(num(n.get("mem")) for n in nodes),
        mem_total=sum(num(n.get("maxmem")) for n in nodes),
        disk_used=sum(num(n.get("disk")) for n in nodes),
        disk_total=sum(num(n.get("maxdisk")) for n in nodes),
    )


def usage_metric(label: str, used: Any, capacity: Any) -> UtilMetric:
    """Build a metric whose percentage is ``used`` over ``capacity``."""
    used_n = num(used)
    cap_n = num(capacity)
    return UtilMetric(
        label=label, pct=percent_of(used_n, cap_n), used=used_n, capacity=cap_n
    )


def cpu_metric(label: str, pct: int) -> UtilMetric:
    return UtilMetric(label=label, pct=pct, used=pct, capacity=100)


def node_row(conn_id: str, node: Mapping[str, Any], guest_count: int) -> NodeRow:
    """Summarize one node-list record."""
    name = str(node.get("node", ""))
    if node.get("maintenance") == "maintenance":
        status = "maintenance"
    elif node.get("status") == "online":
        status = "online"
    else:
        status = "offline"
    return NodeRow(
        id=f"{conn_id}:{name}",
        conn_id=conn_id,
        node=name,
        name=name,
        status=status,
        cpu=cpu_percent(node.get("cpu")),
        ram=percent_of(node.get("mem"), node.get("maxmem")),
        storage=percent_of(node.get("disk"), node.get("maxdisk")),
        guests=guest_count,
        uptime=num(node.get("uptime")),
        ip=str(node["ip"]) if node.get("ip") else None,
    )


def guest_row(
    conn_id: str, guest: Mapping[str, Any], *, running_only_usage: bool = False
) -> GuestRow:
    """
    Summarize one resource-list guest record.

    With ``running_only_usage`` the CPU/RAM percentages are left unset for
    guests that are not running.
    """
    vmid = str(guest.get("vmid", ""))
    node = str(guest.get("node", ""))
    guest_type = str(guest.get("type", ""))
    status = str(guest.get("status") or "unknown")
    show_usage = not running_only_usage or status == "running"
    return GuestRow(
        id=GuestKey(conn_id, node, guest_type, vmid).selection_id,
        conn_id=conn_id,
        node=node,
        vmid=vmid,
        name=str(guest.get("name") or f"VM {vmid}"),
        type=guest_type,
        status=status,
        template=guest.get("template") in (1, True),
        cpu=cpu_percent(guest.get("cpu")) if show_usage else None,
        ram=percent_of(guest.get("mem"), guest.get("maxmem")) if show_usage else None,
        maxmem=num(guest.get("maxmem")),
        disk=num(guest.get("disk")),
        maxdisk=num(guest.get("maxdisk")),
        uptime=num(guest.get("uptime")),
        tags=parse_tags(guest.get("tags")),
    )


def find_record(
    records: Iterable[Any], **match: Any
) -> Optional[Mapping[str, Any]]:
    """
    Return the first mapping whose fields equal ``match`` (compared as text).

    Examples
    --------
    >>> find_record([{"node": "a"}, {"node": "b"}], node="b")
    {'node': 'b'}
    """
    for record in records:
        if not isinstance(record, Mapping):
            continue
        if all(str(record.get(k)) == str(v) for k, v in match.items()):
            return record
    return None


def mappings(records: Iterable[Any]) -> List[Mapping[str, Any]]:
    """Keep only mapping entries of a loosely typed list."""
    return [r for r in records if isinstance(r, Mapping)]
