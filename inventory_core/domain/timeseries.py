"""
Time-series (RRD) sample normalization.

Upstream samples carry different field names and units depending on the
entity that produced them: CPU may be a 0-1 fraction or a percentage, memory
may be a fraction or a byte count with or without a capacity next to it.
:func:`build_series` resolves each metric through an ordered alias list,
infers units per sample, and returns points sorted by time.

Metrics that cannot be resolved stay ``None``; they are never reported as
zero.
"""

import logging
from typing import Any, Iterable, List, Mapping, Optional

from .envelope import pick_number
from .models import SeriesPoint
from .units import clamp_percent, round_half_up

logger = logging.getLogger(__name__)

TIME_KEYS = ("time", "t", "timestamp")
CPU_KEYS = ("cpu", "cpu_avg", "cpuutil", "cpuused")
MEM_USED_KEYS = ("mem", "mem_avg", "memory", "memused", "memtotal")
MEM_CAPACITY_KEYS = ("maxmem", "max_mem", "memtotal", "total")
NET_IN_KEYS = ("netin", "net_in", "nics_netin", "network_in")
NET_OUT_KEYS = ("netout", "net_out", "nics_netout", "network_out")
LOAD_KEYS = ("loadavg", "load_avg", "load")
DISK_READ_KEYS = ("diskread", "disk_read")
DISK_WRITE_KEYS = ("diskwrite", "disk_write")

# Values at or below this are read as 0-1 fractions. A fraction of 1.5 and a
# percentage of 1.5 cannot be told apart; upstream reporting relies on it.
FRACTION_THRESHOLD = 1.5


def is_fraction(value: float) -> bool:
    """Return True when ``value`` is read as a 0-1 fraction."""
    return value <= FRACTION_THRESHOLD


def disambiguate_fraction_or_percent(value: float) -> float:
    """
    Express a fraction-or-percentage reading in percent units.

    Examples
    --------
    >>> disambiguate_fraction_or_percent(0.73)
    73.0
    >>> disambiguate_fraction_or_percent(73)
    73
    >>> disambiguate_fraction_or_percent(1.5)
    150.0
    """
    return value * 100 if is_fraction(value) else value


def _resolve_cpu(sample: Mapping[str, Any]) -> Optional[int]:
    raw = pick_number(sample, CPU_KEYS)
    if raw is None:
        return None
    return clamp_percent(disambiguate_fraction_or_percent(raw))


def _resolve_ram(
    sample: Mapping[str, Any], capacity_hint: Optional[float]
) -> Optional[int]:
    used = pick_number(sample, MEM_USED_KEYS)
    if used is None:
        return None
    if is_fraction(used):
        return clamp_percent(used * 100)
    capacity = pick_number(sample, MEM_CAPACITY_KEYS) or capacity_hint
    if capacity and capacity > 0:
        return clamp_percent(used / capacity * 100)
    # byte count without a capacity: leave unset rather than guess
    return None


def normalize_sample(
    sample: Any, capacity_hint: Optional[float] = None
) -> Optional[SeriesPoint]:
    """
    Normalize one raw sample.

    Parameters
    ----------
    sample : Any
        Raw key/value record from the metrics backend
    capacity_hint : float, optional
        Memory capacity in bytes used when the sample carries none

    Returns
    -------
    SeriesPoint or None
        ``None`` when no timestamp can be resolved (zero counts as missing)
    """
    if not isinstance(sample, Mapping):
        return None
    t_sec = pick_number(sample, TIME_KEYS)
    if not t_sec:
        return None

    return SeriesPoint(
        t=round_half_up(t_sec) * 1000,
        cpu_pct=_resolve_cpu(sample),
        ram_pct=_resolve_ram(sample, capacity_hint),
        load_avg=pick_number(sample, LOAD_KEYS),
        net_in_bps=pick_number(sample, NET_IN_KEYS),
        net_out_bps=pick_number(sample, NET_OUT_KEYS),
        disk_read_bps=pick_number(sample, DISK_READ_KEYS),
        disk_write_bps=pick_number(sample, DISK_WRITE_KEYS),
    )


def build_series(
    samples: Iterable[Any], capacity_hint: Optional[float] = None
) -> List[SeriesPoint]:
    """
    Normalize raw samples into a chronologically sorted series.

    Parameters
    ----------
    samples : Iterable[Any]
        Raw samples; non-mapping entries and entries without a timestamp
        are dropped
    capacity_hint : float, optional
        Memory capacity in bytes (e.g., the node's or guest's maximum
        memory) used to turn byte counts into percentages

    Returns
    -------
    List[SeriesPoint]
        Points sorted by ascending ``t``; never longer than the input

    Examples
    --------
    >>> [p.cpu_pct for p in build_series([{"time": 2, "cpu": 50}, {"time": 1, "cpu": 0.2}])]
    [20, 50]
    """
    points: List[SeriesPoint] = []
    dropped = 0
    for sample in samples:
        point = normalize_sample(sample, capacity_hint)
        if point is None:
            dropped += 1
            continue
        points.append(point)

    if dropped:
        logger.debug(
            "timeseries.samples_dropped",
            extra={"dropped": dropped, "kept": len(points)},
        )
    points.sort(key=lambda p: p.t)
    return points
