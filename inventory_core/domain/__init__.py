"""
Domain layer: selection parsing, payload models, normalization and the
per-kind aggregators.

Modules
-------
envelope
    Response unwrapping and loose list/number coercion
units
    Percentage, CPU-fraction, byte/rate/uptime helpers
selection
    Selection model and composite identifier parsing
models
    Canonical payload and its kind-specific extension blocks
timeseries
    Time-series (RRD) sample normalization
aggregators
    One aggregator per selection kind plus shared rollup logic
"""

__all__ = []
