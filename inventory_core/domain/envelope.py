"""
Response envelope helpers.

Backend responses may be wrapped one or more levels deep under a ``data``
field, and list-shaped responses may arrive as a plain list or as an object
carrying an ``items``/``guests`` list. These helpers are total: malformed
input degrades to an unchanged value or an empty list, never an exception.
"""

import math
import re
from typing import Any, Iterable, List, Mapping, Optional

_LIST_FIELDS = ("items", "guests")
_TAG_SPLIT = re.compile(r"[;,]+")


def unwrap(value: Any) -> Any:
    """
    Strip nested ``data`` wrappers from a response body.

    Descends into ``value["data"]`` while the current value is a mapping
    that has a ``data`` key. Lists and other fields are never followed.

    Examples
    --------
    >>> unwrap({"data": {"data": [1, 2]}})
    [1, 2]
    >>> unwrap({"name": "c1", "data": None})
    >>> unwrap([{"data": 1}])
    [{'data': 1}]
    """
    current = value
    while isinstance(current, Mapping) and "data" in current:
        current = current["data"]
    return current


def as_list(value: Any) -> List[Any]:
    """
    Coerce a loosely shaped payload into a flat list.

    Examples
    --------
    >>> as_list([1, 2])
    [1, 2]
    >>> as_list({"guests": [{"vmid": 100}]})
    [{'vmid': 100}]
    >>> as_list(None)
    []
    """
    if isinstance(value, list):
        return value
    if isinstance(value, Mapping):
        for name in _LIST_FIELDS:
            candidate = value.get(name)
            if isinstance(candidate, list):
                return candidate
    return []


def unwrap_list(value: Any) -> List[Any]:
    """Shorthand for ``as_list(unwrap(value))``."""
    return as_list(unwrap(value))


def unwrap_mapping(value: Any) -> Optional[Mapping[str, Any]]:
    """Unwrap ``value`` and return it only if the result is a mapping."""
    inner = unwrap(value)
    return inner if isinstance(inner, Mapping) else None


def inner_data(value: Any) -> Any:
    """Return ``value["data"]`` one level down, or ``None``."""
    if isinstance(value, Mapping):
        return value.get("data")
    return None


def to_number(value: Any) -> Optional[float]:
    """
    Coerce a loosely typed scalar into a finite float.

    Numbers and numeric strings are accepted. Booleans, ``None``, empty
    strings and non-finite values yield ``None``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def num(value: Any, default: float = 0.0) -> float:
    """Like :func:`to_number` but with a default for unusable input."""
    number = to_number(value)
    return default if number is None else number


def pick_number(record: Any, keys: Iterable[str]) -> Optional[float]:
    """
    Return the first usable number among ``keys`` of ``record``.

    Examples
    --------
    >>> pick_number({"cpu_avg": "0.5"}, ["cpu", "cpu_avg"])
    0.5
    >>> pick_number({"cpu": None}, ["cpu"])
    """
    if not isinstance(record, Mapping):
        return None
    for key in keys:
        number = to_number(record.get(key))
        if number is not None:
            return number
    return None


def parse_tags(tags: Any) -> List[str]:
    """
    Split a semicolon- or comma-delimited tag string into trimmed tags.

    Examples
    --------
    >>> parse_tags("prod; web,,db")
    ['prod', 'web', 'db']
    """
    if not tags:
        return []
    return [part.strip() for part in _TAG_SPLIT.split(str(tags)) if part.strip()]
