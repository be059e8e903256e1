"""
Tests for numeric coercers and display formatting.
"""

import pytest

from inventory_core.domain.units import (
    clamp_percent,
    cpu_percent,
    format_bytes,
    format_rate,
    format_uptime,
    percent_of,
    round_half_up,
)


class TestPercentOf:
    """Tests for capacity percentages."""

    def test_simple_ratio(self):
        assert percent_of(500, 1000) == 50

    @pytest.mark.parametrize("capacity", [0, -5, None, "", "abc"])
    def test_unusable_capacity_gives_zero(self, capacity):
        assert percent_of(5, capacity) == 0

    def test_rounds_halves_up(self):
        assert percent_of(1, 8) == 13  # 12.5
        assert percent_of(5, 200) == 3  # 2.5

    def test_unusable_used_counts_as_zero(self):
        assert percent_of(None, 100) == 0

    def test_may_exceed_hundred(self):
        assert percent_of(150, 100) == 150


class TestCpuPercent:
    """Tests for fractional CPU load conversion."""

    def test_fraction(self):
        assert cpu_percent(0.42) == 42

    def test_string_fraction(self):
        assert cpu_percent("0.5") == 50

    @pytest.mark.parametrize("raw", [None, "n/a", float("nan")])
    def test_unusable_gives_zero(self, raw):
        assert cpu_percent(raw) == 0


def test_round_half_up_differs_from_bankers_rounding():
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    assert round_half_up(2.49) == 2


def test_clamp_percent():
    assert clamp_percent(-3) == 0
    assert clamp_percent(73.4) == 73
    assert clamp_percent(250) == 100


class TestFormatting:
    """Tests for human-readable formatting."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (0, "0 B"),
            (None, "0 B"),
            (512, "512 B"),
            (1536, "1.5 KB"),
            (32 * 1024**3, "32.0 GB"),
            (3 * 1024**5, "3.0 PB"),
        ],
    )
    def test_format_bytes(self, value, expected):
        assert format_bytes(value) == expected

    @pytest.mark.parametrize(
        "value,expected",
        [(0, "0 B/s"), ("bad", "0 B/s"), (512, "512 B/s"), (2 * 1024**2, "2.0 MB/s")],
    )
    def test_format_rate(self, value, expected):
        assert format_rate(value) == expected

    @pytest.mark.parametrize(
        "seconds,expected",
        [
            (None, "00:00:00"),
            (0, "00:00:00"),
            (59, "00:00:59"),
            (3661, "01:01:01"),
            (90061, "1 days 01:01:01"),
            (3 * 86400, "3 days 00:00:00"),
        ],
    )
    def test_format_uptime(self, seconds, expected):
        assert format_uptime(seconds) == expected
