"""Selection resolution service.

:class:`InventoryResolver` turns selections into canonical payloads and
chart series. It also tracks the *active* selection of an interactive
consumer: a resolution that completes after the active selection changed is
discarded so that a slow, superseded request never replaces the payload of a
newer selection.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import httpx

from ..adapters import InventoryBackend
from ..config.models import GuestCapacityDefaults, Timeframe
from ..domain.aggregators import AggregationContext, aggregate
from ..domain.envelope import unwrap_list
from ..domain.models import CanonicalPayload, SeriesPoint
from ..domain.selection import (
    Selection,
    SelectionKind,
    parse_guest_key,
    parse_node_key,
)
from ..domain.timeseries import build_series
from ..errors import InventoryError, UnsupportedSelectionError
from ..utils.correlation import ensure_request_id

logger = logging.getLogger(__name__)


class InventoryResolver:
    """Resolve selections against one backend.

    Parameters
    ----------
    backend: InventoryBackend
        Source of backend responses.
    timeframe: Timeframe
        Default time-series window.
    capacity_defaults: Optional[GuestCapacityDefaults]
        Host capacity assumed for guests whose node declares none.
    """

    def __init__(
        self,
        backend: InventoryBackend,
        *,
        timeframe: Timeframe = Timeframe.HOUR,
        capacity_defaults: Optional[GuestCapacityDefaults] = None,
    ) -> None:
        self._backend = backend
        self._timeframe = timeframe
        self._capacity_defaults = capacity_defaults or GuestCapacityDefaults()
        self._active: Optional[Selection] = None
        self._generation = 0
        self._current: Optional[CanonicalPayload] = None

    @property
    def active(self) -> Optional[Selection]:
        """Most recently selected entity."""
        return self._active

    @property
    def current(self) -> Optional[CanonicalPayload]:
        """Payload of the last resolution that was not superseded."""
        return self._current

    def select(self, selection: Selection) -> int:
        """Make ``selection`` active and return its generation number.

        Every call starts a new generation, even for an equal selection.
        """
        self._active = selection
        self._generation += 1
        logger.debug(
            "resolver.selected",
            extra={
                "kind": selection.kind.value,
                "selection_id": selection.id,
                "generation": self._generation,
            },
        )
        return self._generation

    def _context(self, timeframe: Optional[Timeframe] = None) -> AggregationContext:
        return AggregationContext(
            backend=self._backend,
            timeframe=timeframe or self._timeframe,
            capacity_defaults=self._capacity_defaults,
        )

    async def details(self, selection: Selection) -> CanonicalPayload:
        """Aggregate ``selection`` without touching the active selection.

        Raises
        ------
        EntityNotFoundError
            If the selected node, guest or datastore does not exist.
        UnsupportedSelectionError
            For the inventory root.
        httpx.HTTPError
            If a required backend request fails.
        """
        ensure_request_id()
        return await aggregate(self._context(), selection)

    async def resolve(
        self, selection: Optional[Selection] = None
    ) -> Optional[CanonicalPayload]:
        """Select (if given) and resolve the active selection.

        Returns
        -------
        Optional[CanonicalPayload]
            The new payload, or ``None`` when another selection became
            active before this resolution completed. Errors of a superseded
            resolution are discarded as well.
        """
        if selection is not None:
            self.select(selection)
        if self._active is None:
            raise UnsupportedSelectionError("No active selection")
        target = self._active
        generation = self._generation

        try:
            payload = await self.details(target)
        except (InventoryError, httpx.HTTPError, ValueError):
            if generation != self._generation:
                self._log_stale(target, generation)
                return None
            raise

        if generation != self._generation:
            self._log_stale(target, generation)
            return None
        self._current = payload
        return payload

    def _log_stale(self, selection: Selection, generation: int) -> None:
        logger.info(
            "resolver.stale_discarded",
            extra={
                "kind": selection.kind.value,
                "selection_id": selection.id,
                "generation": generation,
                "active_generation": self._generation,
            },
        )

    async def series(
        self,
        selection: Selection,
        timeframe: Optional[Timeframe] = None,
        capacity_hint: Optional[float] = None,
    ) -> List[SeriesPoint]:
        """Fetch and normalize the time series of a node or guest.

        Parameters
        ----------
        selection: Selection
            A node or guest selection.
        timeframe: Optional[Timeframe]
            Window to request; defaults to the resolver's timeframe.
        capacity_hint: Optional[float]
            Memory capacity in bytes for samples that report used bytes only.

        Raises
        ------
        UnsupportedSelectionError
            For any other selection kind.
        httpx.HTTPError
            If the time-series request fails.
        """
        ensure_request_id()
        if selection.kind is SelectionKind.NODE:
            node_key = parse_node_key(selection.id)
            conn_id, path = node_key.conn_id, node_key.rrd_path
        elif selection.kind is SelectionKind.GUEST:
            guest_key = parse_guest_key(selection.id)
            conn_id, path = guest_key.conn_id, guest_key.rrd_path
        else:
            raise UnsupportedSelectionError(
                f"No time series for {selection.kind.value} selections"
            )

        window = (timeframe or self._timeframe).value
        raw = await self._backend.rrd(conn_id, path, window)
        points = build_series(unwrap_list(raw), capacity_hint)
        logger.debug(
            "resolver.series.done",
            extra={
                "kind": selection.kind.value,
                "selection_id": selection.id,
                "timeframe": window,
                "points": len(points),
            },
        )
        return points
