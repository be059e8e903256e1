"""Backup datastore aggregation."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from ...errors import EntityNotFoundError
from ...utils.partial_results import gather_sources
from ..envelope import num, unwrap_list, unwrap_mapping
from ..models import BackupStoreDetails, CanonicalPayload, Kpi, Metrics
from ..selection import parse_store_key
from ..timeseries import build_series
from ..units import format_bytes, percent_of
from .assembler import (
    breadcrumb,
    connection_name,
    find_record,
    mappings,
    usage_metric,
    utc_now,
)
from .context import AggregationContext

logger = logging.getLogger(__name__)


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _count(stats: Mapping[str, Any], key: str) -> str:
    return str(int(num(stats.get(key))))


def _size(stats: Mapping[str, Any]) -> str:
    formatted = stats.get("totalSizeFormatted")
    if formatted:
        return str(formatted)
    return format_bytes(stats.get("totalSize"))


async def aggregate_backup_store(
    ctx: AggregationContext, selection_id: str
) -> CanonicalPayload:
    """Build the datastore payload for ``<server id>:<store>``.

    Raises
    ------
    EntityNotFoundError
        If the datastore list has no store with that name.
    """
    key = parse_store_key(selection_id)
    backend = ctx.backend
    results = await gather_sources(
        {"datastores": backend.backup_datastores(key.server_id)},
        {
            "connection": backend.connection(key.server_id),
            "backups": backend.backup_listing(key.server_id, key.store),
            "rrd": backend.backup_store_rrd(
                key.server_id, key.store, ctx.timeframe.value
            ),
        },
        operation_type="backup_store",
    )

    store = find_record(unwrap_list(results.get("datastores")), name=key.store)
    if store is None:
        raise EntityNotFoundError("Datastore", f"{key.server_id}/{key.store}")

    server_name = connection_name(results.get("connection"), key.server_id)
    listing = unwrap_mapping(results.get("backups")) or {}
    stats = _mapping(listing.get("stats"))
    backups = listing.get("backups")
    rrd_data = [dict(s) for s in mappings(unwrap_list(results.get("rrd")))]

    total = num(store.get("total"))
    used = num(store.get("used"))
    details = BackupStoreDetails(
        server_id=key.server_id,
        server_name=server_name,
        name=key.store,
        path=str(store.get("path") or ""),
        comment=str(store.get("comment") or ""),
        total=total,
        used=used,
        available=num(store.get("available")),
        usage_percent=percent_of(used, total),
        gc_status=store.get("gcStatus"),
        verify_status=store.get("verifyStatus"),
        backups=[dict(b) for b in mappings(backups)] if isinstance(backups, list) else [],
        stats=dict(stats),
        pagination=dict(_mapping(listing.get("pagination"))),
        rrd_data=rrd_data,
        series=build_series(rrd_data),
    )
    logger.info(
        "aggregate.backup_store.done",
        extra={
            "server_id": key.server_id,
            "store": key.store,
            "backups": len(details.backups),
        },
    )
    return CanonicalPayload(
        kind_label="DATASTORE",
        title=key.store,
        subtitle=server_name,
        breadcrumb=breadcrumb("PBS", server_name, key.store),
        status="ok",
        kpis=[
            Kpi(label="Backups", value=_count(stats, "total")),
            Kpi(label="VMs", value=_count(stats, "vmCount")),
            Kpi(label="CTs", value=_count(stats, "ctCount")),
            Kpi(label="Size", value=_size(stats)),
        ],
        metrics=Metrics(storage=usage_metric("Storage", used, total)),
        last_updated=utc_now(),
        details=details,
    )
