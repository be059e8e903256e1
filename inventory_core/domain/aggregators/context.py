"""Per-resolution inputs shared by every aggregator."""

from __future__ import annotations

from dataclasses import dataclass, field

from ...adapters import InventoryBackend
from ...config.models import GuestCapacityDefaults, Timeframe


@dataclass(frozen=True)
class AggregationContext:
    """Backend and settings for one resolution.

    Attributes
    ----------
    backend: InventoryBackend
        Source of all backend responses.
    timeframe: Timeframe
        Window used for the time-series requests made by backup aggregators.
    capacity_defaults: GuestCapacityDefaults
        Host capacity assumed when a guest's node declares none.
    """

    backend: InventoryBackend
    timeframe: Timeframe = Timeframe.HOUR
    capacity_defaults: GuestCapacityDefaults = field(
        default_factory=GuestCapacityDefaults
    )
