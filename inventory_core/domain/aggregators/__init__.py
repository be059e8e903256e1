"""
Per-kind aggregators and the kind -> aggregator dispatch table.

Each aggregator takes an :class:`AggregationContext` and the selection's
identifier and returns a fresh :class:`CanonicalPayload`. Adding a selection
kind without registering an aggregator (or an explicit refusal) fails at
import time.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Dict

from ...errors import UnsupportedSelectionError
from ..models import CanonicalPayload
from ..selection import Selection, SelectionKind
from .backup_server import aggregate_backup_server
from .backup_store import aggregate_backup_store
from .cluster import aggregate_cluster
from .context import AggregationContext
from .guest import aggregate_guest
from .node import aggregate_node

Aggregator = Callable[[AggregationContext, str], Awaitable[CanonicalPayload]]


async def _no_details(ctx: AggregationContext, selection_id: str) -> CanonicalPayload:
    raise UnsupportedSelectionError("The inventory root has no detail view")


AGGREGATORS: Dict[SelectionKind, Aggregator] = {
    SelectionKind.ROOT: _no_details,
    SelectionKind.CLUSTER: aggregate_cluster,
    SelectionKind.NODE: aggregate_node,
    SelectionKind.GUEST: aggregate_guest,
    SelectionKind.BACKUP_SERVER: aggregate_backup_server,
    SelectionKind.BACKUP_STORE: aggregate_backup_store,
}

_missing = set(SelectionKind) - set(AGGREGATORS)
if _missing:  # pragma: no cover - guards future kinds
    raise RuntimeError(
        f"No aggregator registered for: {sorted(k.value for k in _missing)}"
    )


async def aggregate(ctx: AggregationContext, selection: Selection) -> CanonicalPayload:
    """Run the aggregator registered for ``selection.kind``."""
    return await AGGREGATORS[selection.kind](ctx, selection.id)


__all__ = ["AGGREGATORS", "AggregationContext", "aggregate"]
