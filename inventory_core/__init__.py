"""
Inventory aggregation core.

This package hosts the read-path aggregation engine behind the
infrastructure-inventory dashboard: backend adapters, selection parsing,
per-kind aggregators, time-series normalization and a thin HTTP API.
"""

from .__version__ import __payload_model_version__, __version__

__all__ = ["__version__", "__payload_model_version__"]
