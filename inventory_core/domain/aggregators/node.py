"""Node (host) aggregation."""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional

from ...errors import EntityNotFoundError
from ...utils.partial_results import gather_sources
from ..envelope import inner_data, num, to_number, unwrap_list, unwrap_mapping
from ..models import CanonicalPayload, HostDetails, Kpi, Metrics, UtilMetric
from ..selection import parse_node_key
from ..units import cpu_percent, format_uptime, percent_of
from .assembler import (
    GUEST_TYPES,
    breadcrumb,
    cpu_metric,
    find_record,
    guest_row,
    mappings,
    usage_metric,
    utc_now,
)
from .context import AggregationContext

logger = logging.getLogger(__name__)

DEFAULT_CLUSTER_NAME = "Cluster"


def platform_version(raw: Any) -> Optional[str]:
    """
    Extract the version from a slash-delimited version string.

    Examples
    --------
    >>> platform_version("pve-manager/8.1.3/b46aac3b42da5d15")
    '8.1.3'
    >>> platform_version("8.1.3")
    '8.1.3'
    """
    if not raw:
        return None
    text = str(raw)
    if "/" in text:
        parts = text.split("/")
        return parts[1] or text
    return text


def format_load_avg(raw: Any) -> Optional[str]:
    """
    Render a load average for display.

    Examples
    --------
    >>> format_load_avg([0.5, "1.25", "n/a"])
    '0.50, 1.25, n/a'
    >>> format_load_avg("0.10 0.20 0.30")
    '0.10 0.20 0.30'
    """
    if raw is None or raw == "" or raw == []:
        return None
    if isinstance(raw, list):
        parts = []
        for value in raw:
            number = to_number(value)
            parts.append(f"{number:.2f}" if number is not None else str(value))
        return ", ".join(parts)
    return str(raw)


def cpu_model(cpuinfo: Mapping[str, Any]) -> Optional[str]:
    """Return ``"<cpus> x <model>"`` when the status reports either field."""
    model = cpuinfo.get("model")
    cpus = cpuinfo.get("cpus")
    if not (model or cpus):
        return None
    return f"{cpus or '?'} x {model or 'Unknown'}"


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _int_or_none(value: Any) -> Optional[int]:
    number = to_number(value)
    return int(number) if number is not None else None


def _text(value: Any) -> Optional[str]:
    return str(value) if value else None


async def _cluster_name(ctx: AggregationContext, conn_id: str) -> str:
    results = await gather_sources(
        {}, {"cluster": ctx.backend.cluster_info(conn_id)}, "node_cluster_name"
    )
    data = inner_data(results.get("cluster"))
    if isinstance(data, Mapping) and data.get("name"):
        return str(data["name"])
    return DEFAULT_CLUSTER_NAME


async def aggregate_node(
    ctx: AggregationContext, selection_id: str
) -> CanonicalPayload:
    """Build the host payload for ``<conn id>:<node>``.

    Raises
    ------
    EntityNotFoundError
        If the node is not in the connection's node list.
    """
    key = parse_node_key(selection_id)
    backend = ctx.backend
    results = await gather_sources(
        {"nodes": backend.nodes(key.conn_id)},
        {
            "status": backend.node_status(key.conn_id, key.node),
            "resources": backend.resources(key.conn_id),
            "version": backend.version(key.conn_id),
            "subscription": backend.node_subscription(key.conn_id, key.node),
            "updates": backend.node_updates(key.conn_id, key.node),
            "maintenance": backend.node_maintenance(key.conn_id, key.node),
        },
        operation_type="node",
    )

    nodes = mappings(unwrap_list(results.get("nodes")))
    node = find_record(nodes, node=key.node)
    if node is None:
        raise EntityNotFoundError("Node", key.node)

    guests = [
        guest_row(key.conn_id, r, running_only_usage=True)
        for r in mappings(unwrap_list(results.get("resources")))
        if str(r.get("node")) == key.node and r.get("type") in GUEST_TYPES
    ]

    status = unwrap_mapping(results.get("status")) or {}
    version = unwrap_mapping(results.get("version")) or {}
    subscription = unwrap_mapping(results.get("subscription"))
    updates: List[Any] = [
        u for u in unwrap_list(results.get("updates")) if isinstance(u, Mapping)
    ]
    maintenance = _mapping(inner_data(results.get("maintenance"))).get("maintenance")

    cpu = cpu_percent(node.get("cpu"))
    swap = _mapping(status.get("swap"))
    swap_total = num(swap.get("total"))
    uptime = num(
        node.get("uptime") if node.get("uptime") is not None else status.get("uptime")
    )
    cpuinfo = _mapping(status.get("cpuinfo"))
    boot_mode = _mapping(status.get("boot-info")).get("mode")
    io_wait = to_number(status.get("wait"))
    ksm_shared = to_number(_mapping(status.get("ksm")).get("shared"))

    cluster_name: Optional[str] = None
    if len(nodes) > 1:
        cluster_name = await _cluster_name(ctx, key.conn_id)

    details = HostDetails(
        uptime=uptime,
        uptime_formatted=format_uptime(uptime),
        cpu_model=cpu_model(cpuinfo),
        cpu_cores=_int_or_none(cpuinfo.get("cores")),
        cpu_sockets=_int_or_none(cpuinfo.get("sockets")),
        kernel_version=_text(status.get("kversion") or status.get("kernel-version")),
        platform_version=platform_version(
            status.get("pveversion") or version.get("version")
        ),
        boot_mode=str(boot_mode).upper() if boot_mode else None,
        load_avg=format_load_avg(status.get("loadavg")),
        io_delay=io_wait * 100 if io_wait is not None else None,
        ksm_sharing=ksm_shared,
        updates=updates,
        subscription=dict(subscription) if subscription is not None else None,
        maintenance=str(maintenance) if maintenance else None,
        guests=guests,
        cluster_name=cluster_name,
    )
    running = sum(1 for g in guests if g.status == "running")
    logger.info(
        "aggregate.node.done",
        extra={"conn_id": key.conn_id, "node": key.node, "guests": len(guests)},
    )
    return CanonicalPayload(
        kind_label="HOST",
        title=key.node,
        breadcrumb=breadcrumb("Host", key.node),
        status="ok" if node.get("status") == "online" else "crit",
        kpis=[
            Kpi(label="Uptime", value=format_uptime(uptime)),
            Kpi(label="Guests", value=f"{running}/{len(guests)}"),
        ],
        metrics=Metrics(
            cpu=cpu_metric("CPU", cpu),
            ram=usage_metric("RAM", node.get("mem"), node.get("maxmem")),
            storage=usage_metric("Storage", node.get("disk"), node.get("maxdisk")),
            swap=(
                UtilMetric(
                    label="SWAP",
                    pct=percent_of(swap.get("used"), swap_total),
                    used=num(swap.get("used")),
                    capacity=swap_total,
                )
                if swap_total > 0
                else None
            ),
        ),
        last_updated=utc_now(),
        details=details,
    )
