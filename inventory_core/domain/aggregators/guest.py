"""Guest (VM / container) aggregation."""

from __future__ import annotations

import logging

from ...errors import EntityNotFoundError
from ...utils.partial_results import gather_sources
from ..envelope import num, parse_tags, unwrap_list, unwrap_mapping
from ..models import (
    CanonicalPayload,
    GuestDetails,
    Kpi,
    Metrics,
    NodeCapacity,
    UtilMetric,
)
from ..selection import parse_guest_key
from ..units import cpu_percent
from .assembler import breadcrumb, find_record, mappings, usage_metric, utc_now
from .context import AggregationContext
from .guest_config import ParsedGuestConfig, parse_guest_config

logger = logging.getLogger(__name__)


async def aggregate_guest(
    ctx: AggregationContext, selection_id: str
) -> CanonicalPayload:
    """Build the guest payload for ``<conn id>:<node>:<type>:<vmid>``.

    Raises
    ------
    EntityNotFoundError
        If the resource list has no guest with that node, type and vmid.
    """
    key = parse_guest_key(selection_id)
    backend = ctx.backend
    results = await gather_sources(
        {
            "resources": backend.resources(key.conn_id),
            "nodes": backend.nodes(key.conn_id),
        },
        {
            "config": backend.guest_config(
                key.conn_id, key.node, key.guest_type, key.vmid
            ),
        },
        operation_type="guest",
    )

    resources = mappings(unwrap_list(results.get("resources")))
    nodes = mappings(unwrap_list(results.get("nodes")))
    guest = find_record(
        resources, node=key.node, type=key.guest_type, vmid=key.vmid
    )
    if guest is None:
        raise EntityNotFoundError(
            "Guest", f"{key.guest_type}/{key.vmid} on {key.node}"
        )

    host = find_record(nodes, node=key.node) or {}
    defaults = ctx.capacity_defaults
    capacity = NodeCapacity(
        max_cpu=int(num(host.get("maxcpu"))) or defaults.max_cpu,
        max_mem=int(num(host.get("maxmem"))) or defaults.max_mem,
    )

    config = unwrap_mapping(results.get("config"))
    parsed = parse_guest_config(config) if config is not None else ParsedGuestConfig()
    name = parsed.name or str(guest.get("name") or f"VM {key.vmid}")
    guest_status = str(guest.get("status") or "unknown")
    running = guest_status == "running"

    details = GuestDetails(
        guest_type=key.guest_type,
        guest_status=guest_status,
        name=name,
        description=parsed.description,
        is_cluster=len(nodes) > 1,
        cpu_info=parsed.cpu,
        memory_info=parsed.memory,
        disks=parsed.disks,
        networks=parsed.networks,
        options=parsed.options,
        node_capacity=capacity,
    )
    logger.info(
        "aggregate.guest.done",
        extra={
            "conn_id": key.conn_id,
            "node": key.node,
            "vmid": key.vmid,
            "config": config is not None,
        },
    )
    return CanonicalPayload(
        kind_label="LXC" if key.guest_type == "lxc" else "VM",
        title=name,
        subtitle=f"{key.guest_type.upper()} • {key.node} • #{key.vmid}",
        breadcrumb=breadcrumb("VM", key.vmid),
        status="ok" if running else "unknown",
        tags=parse_tags(guest.get("tags")),
        kpis=[Kpi(label="State", value="Running" if running else "Stopped")],
        metrics=Metrics(
            cpu=UtilMetric(label="CPU", pct=cpu_percent(guest.get("cpu"))),
            ram=usage_metric("RAM", guest.get("mem"), guest.get("maxmem")),
            storage=usage_metric("Storage", guest.get("disk"), guest.get("maxdisk")),
        ),
        last_updated=utc_now(),
        details=details,
    )
