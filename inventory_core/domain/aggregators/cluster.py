"""Cluster aggregation: node/guest rollups across one connection."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Mapping

from ...utils.partial_results import gather_sources
from ..envelope import unwrap_list
from ..models import CanonicalPayload, ClusterDetails, Kpi, Metrics, UtilMetric
from .assembler import (
    breadcrumb,
    connection_name,
    count_where,
    guest_row,
    mappings,
    node_row,
    online_status,
    rollup_nodes,
    usage_metric,
    utc_now,
)
from .context import AggregationContext

logger = logging.getLogger(__name__)

UNKNOWN_HEALTH = "unknown"


def ceph_health(body: Any) -> str:
    """
    Extract the storage health string from a Ceph status response.

    A missing or unrecognized response yields ``"unknown"``.

    Examples
    --------
    >>> ceph_health({"data": {"health": {"status": "HEALTH_OK"}}})
    'HEALTH_OK'
    >>> ceph_health({"health": "HEALTH_WARN"})
    'HEALTH_WARN'
    >>> ceph_health(None)
    'unknown'
    """
    if not isinstance(body, Mapping):
        return UNKNOWN_HEALTH
    data = body.get("data")
    health = (data.get("health") if isinstance(data, Mapping) else None) or body.get(
        "health"
    )
    if isinstance(health, str):
        return health
    if isinstance(health, Mapping) and health.get("status"):
        return str(health["status"])
    return UNKNOWN_HEALTH


async def aggregate_cluster(
    ctx: AggregationContext, selection_id: str
) -> CanonicalPayload:
    """Build the cluster payload for connection ``selection_id``.

    The node and resource lists are required; connection metadata and Ceph
    health are best-effort.
    """
    conn_id = selection_id
    backend = ctx.backend
    results = await gather_sources(
        {
            "nodes": backend.nodes(conn_id),
            "resources": backend.resources(conn_id),
        },
        {
            "connection": backend.connection(conn_id),
            "ceph": backend.ceph_status(conn_id),
        },
        operation_type="cluster",
    )

    nodes = mappings(unwrap_list(results.get("nodes")))
    guests = mappings(unwrap_list(results.get("resources")))
    name = connection_name(results.get("connection"), conn_id)

    online = count_where(nodes, "status", "online")
    running = count_where(guests, "status", "running")
    rollup = rollup_nodes(nodes)
    per_node = Counter(str(g.get("node")) for g in guests)

    details = ClusterDetails(
        nodes=[node_row(conn_id, n, per_node[str(n.get("node"))]) for n in nodes],
        guests=[guest_row(conn_id, g) for g in guests],
        guest_count=len(guests),
        ceph_health=ceph_health(results.get("ceph")),
    )
    logger.info(
        "aggregate.cluster.done",
        extra={
            "conn_id": conn_id,
            "nodes": len(nodes),
            "online": online,
            "guests": len(guests),
        },
    )
    return CanonicalPayload(
        kind_label="CLUSTER",
        title=name,
        breadcrumb=breadcrumb("Cluster", name),
        status=online_status(online, len(nodes)),
        kpis=[
            Kpi(label="Nodes", value=f"{online}/{len(nodes)}"),
            Kpi(label="VMs", value=f"{running}/{len(guests)}"),
        ],
        metrics=Metrics(
            cpu=UtilMetric(
                label="CPU (avg)",
                pct=rollup.cpu_avg_pct,
                used=rollup.cpu_avg_pct,
                capacity=100,
            ),
            ram=usage_metric("RAM (total)", rollup.mem_used, rollup.mem_total),
            storage=usage_metric(
                "Storage (total)", rollup.disk_used, rollup.disk_total
            ),
        ),
        last_updated=utc_now(),
        details=details,
    )
