"""
Numeric coercers and display formatting.

Percentages are rounded integers. Formatting helpers use fixed binary unit
ladders and are locale-insensitive; they exist in the core because KPIs
embed pre-formatted strings.
"""

import math
from typing import Any

from .envelope import num, to_number

_BYTE_UNITS = ("B", "KB", "MB", "GB", "TB", "PB")
_RATE_UNITS = ("B/s", "KB/s", "MB/s", "GB/s")


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives.

    Matches the rounding the dashboard has always displayed (``round`` in
    Python rounds halves to even).
    """
    return int(math.floor(value + 0.5))


def percent_of(used: Any, capacity: Any) -> int:
    """
    Return ``used`` as a rounded percentage of ``capacity``.

    Examples
    --------
    >>> percent_of(500, 1000)
    50
    >>> percent_of(5, 0)
    0
    >>> percent_of(5, None)
    0
    """
    cap = to_number(capacity)
    if cap is None or cap <= 0:
        return 0
    return round_half_up(num(used) / cap * 100)


def cpu_percent(raw: Any) -> int:
    """
    Convert a 0-1 CPU load fraction to a rounded percentage.

    Examples
    --------
    >>> cpu_percent(0.42)
    42
    >>> cpu_percent(float("nan"))
    0
    """
    return round_half_up(num(raw) * 100)


def clamp_percent(value: float) -> int:
    """Round and clamp a percentage to [0, 100]."""
    return max(0, min(100, round_half_up(value)))


def format_bytes(value: Any) -> str:
    """
    Format a byte count with a binary unit ladder.

    Examples
    --------
    >>> format_bytes(0)
    '0 B'
    >>> format_bytes(1536)
    '1.5 KB'
    >>> format_bytes(32 * 1024**3)
    '32.0 GB'
    """
    size = to_number(value)
    if size is None or size <= 0:
        return "0 B"
    idx = 0
    while size >= 1024 and idx < len(_BYTE_UNITS) - 1:
        size /= 1024
        idx += 1
    return f"{size:.{0 if idx == 0 else 1}f} {_BYTE_UNITS[idx]}"


def format_rate(value: Any) -> str:
    """
    Format a bytes-per-second rate.

    Examples
    --------
    >>> format_rate(512)
    '512 B/s'
    >>> format_rate(2 * 1024 * 1024)
    '2.0 MB/s'
    """
    rate = to_number(value)
    if rate is None or rate <= 0:
        return "0 B/s"
    idx = 0
    while rate >= 1024 and idx < len(_RATE_UNITS) - 1:
        rate /= 1024
        idx += 1
    return f"{rate:.{0 if idx == 0 else 1}f} {_RATE_UNITS[idx]}"


def format_uptime(seconds: Any) -> str:
    """
    Format an uptime in seconds as ``D days HH:MM:SS`` (or ``HH:MM:SS``).

    Examples
    --------
    >>> format_uptime(90061)
    '1 days 01:01:01'
    >>> format_uptime(59)
    '00:00:59'
    >>> format_uptime(None)
    '00:00:00'
    """
    total = to_number(seconds)
    if total is None or total <= 0:
        return "00:00:00"
    total_int = int(total)
    days, rem = divmod(total_int, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)
    clock = f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{days} days {clock}" if days > 0 else clock
