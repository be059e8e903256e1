"""Exception types raised by the aggregation core.

Only fatal conditions are modelled here. Failures of optional requests are
recovered inside the aggregators and never reach callers.
"""

from __future__ import annotations


class InventoryError(Exception):
    """Base class for aggregation errors surfaced to callers."""


class EntityNotFoundError(InventoryError):
    """The selected entity is missing from an authoritative list.

    Parameters
    ----------
    kind: str
        Entity kind label (e.g., "Node", "Guest").
    key: str
        Human-readable key of the missing entity.
    """

    def __init__(self, kind: str, key: str) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")


class UnsupportedSelectionError(InventoryError):
    """The selection kind has no handler for the requested operation."""
