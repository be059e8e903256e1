"""Backup server aggregation."""

from __future__ import annotations

import logging

from ...utils.partial_results import gather_sources
from ..envelope import num, to_number, unwrap_list, unwrap_mapping
from ..models import BackupServerDetails, BackupStats, CanonicalPayload, Kpi, Metrics
from ..timeseries import build_series
from .assembler import breadcrumb, connection_name, mappings, usage_metric, utc_now
from .context import AggregationContext

logger = logging.getLogger(__name__)


async def aggregate_backup_server(
    ctx: AggregationContext, selection_id: str
) -> CanonicalPayload:
    """Build the backup server payload for server ``selection_id``.

    Every request is best-effort. Without a status response the server is
    reported as ``crit``.
    """
    server_id = selection_id
    backend = ctx.backend
    results = await gather_sources(
        {},
        {
            "connection": backend.connection(server_id),
            "status": backend.backup_status(server_id),
            "datastores": backend.backup_datastores(server_id),
            "rrd": backend.backup_rrd(server_id, ctx.timeframe.value),
        },
        operation_type="backup_server",
    )

    name = connection_name(results.get("connection"), server_id)
    status = unwrap_mapping(results.get("status"))
    info = status or {}
    datastores = [dict(ds) for ds in mappings(unwrap_list(results.get("datastores")))]
    rrd_data = [dict(s) for s in mappings(unwrap_list(results.get("rrd")))]

    stats = BackupStats(
        total=int(sum(num(ds.get("backupCount")) for ds in datastores)),
        vm_count=int(sum(num(ds.get("vmCount")) for ds in datastores)),
        ct_count=int(sum(num(ds.get("ctCount")) for ds in datastores)),
    )
    version = info.get("version")
    details = BackupServerDetails(
        version=str(version) if version else None,
        uptime=to_number(info.get("uptime")),
        cpu_info=info.get("cpuInfo"),
        memory=info.get("memory"),
        load=info.get("load"),
        datastores=datastores,
        stats=stats,
        rrd_data=rrd_data,
        series=build_series(rrd_data),
    )
    logger.info(
        "aggregate.backup_server.done",
        extra={
            "server_id": server_id,
            "datastores": len(datastores),
            "status": status is not None,
        },
    )
    return CanonicalPayload(
        kind_label="PBS",
        title=name,
        subtitle=f"Backup Server {version}" if version else "Backup Server",
        breadcrumb=breadcrumb("PBS", name),
        status="ok" if status is not None else "crit",
        kpis=[
            Kpi(label="Datastores", value=str(len(datastores))),
            Kpi(label="Backups", value=str(stats.total)),
            Kpi(label="VMs", value=str(stats.vm_count)),
            Kpi(label="CTs", value=str(stats.ct_count)),
        ],
        metrics=Metrics(
            storage=usage_metric(
                "Storage", info.get("totalUsed"), info.get("totalSize")
            )
        ),
        last_updated=utc_now(),
        details=details,
    )
