"""Command-line interface for the inventory aggregator.

By default the CLI serves the HTTP read API with uvicorn. With ``--resolve``
it aggregates a single selection against the configured backend and prints
the canonical payload as JSON.

Usage
-----
    inventory-aggregator --config config.json --port 8080
    inventory-aggregator --config config.json --resolve node c1:pve1
"""

from __future__ import annotations

import argparse
import asyncio
import importlib
import os
import sys
from pathlib import Path
from typing import Optional

import httpx

from ..adapters import register_backend
from ..adapters.http_backend import HttpInventoryBackend
from ..config.models import AppConfig, EnvSettings
from ..domain.selection import Selection, SelectionKind
from ..errors import InventoryError
from ..observability import setup_logging
from .http import create_app
from .resolver import InventoryResolver


def _backend_from_config(cfg: AppConfig) -> HttpInventoryBackend:
    """Build the HTTP backend described by ``cfg.backend``."""
    bc = cfg.backend
    return HttpInventoryBackend(
        bc.endpoint,
        bc.api_key,
        bc.timeout_seconds,
        max_retries=bc.max_retries,
        backoff_initial_ms=bc.backoff_initial_ms,
        backoff_multiplier=bc.backoff_multiplier,
    )


async def _resolve_once(
    cfg: AppConfig, kind: SelectionKind, selection_id: str
) -> str:
    """Aggregate one selection and return the payload as indented JSON."""
    backend = _backend_from_config(cfg)
    try:
        resolver = InventoryResolver(
            backend,
            timeframe=cfg.default_timeframe,
            capacity_defaults=cfg.guest_capacity_defaults,
        )
        payload = await resolver.resolve(Selection.of(kind, selection_id))
    finally:
        await backend.aclose()
    return payload.model_dump_json(indent=2) if payload is not None else "null"


def _load_config(config: Optional[str]) -> AppConfig:
    if config:
        return AppConfig.load(Path(config))
    return EnvSettings().build_app_config()


def main(argv: Optional[list[str]] = None) -> None:
    """CLI entrypoint for the inventory aggregator."""
    parser = argparse.ArgumentParser(description="Inventory aggregator")
    parser.add_argument("--config", help="Path to JSON app config")
    parser.add_argument(
        "--log-level",
        dest="log_level",
        choices=[
            "CRITICAL",
            "ERROR",
            "WARNING",
            "INFO",
            "DEBUG",
        ],
        help="Logging level (overrides environment)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (once sets DEBUG)",
    )
    parser.add_argument(
        "--resolve",
        nargs=2,
        metavar=("KIND", "SELECTION_ID"),
        help="Print the payload of one selection instead of serving HTTP",
    )
    parser.add_argument(
        "--host", default="127.0.0.1", help="HTTP bind host (default 127.0.0.1)"
    )
    parser.add_argument("--port", type=int, default=8080, help="HTTP port")
    args = parser.parse_args(argv)

    # Determine effective log level
    env_level = os.environ.get("INVENTORY_LOG_LEVEL", "INFO").upper()
    effective_level = args.log_level or ("DEBUG" if args.verbose > 0 else env_level)
    # Apply early so subsequent imports use configured level
    setup_logging(effective_level)

    try:
        cfg = _load_config(args.config)
    except (OSError, ValueError) as exc:
        parser.error(str(exc))

    if args.resolve:
        kind_raw, selection_id = args.resolve
        try:
            kind = SelectionKind(kind_raw)
        except ValueError:
            parser.error(
                f"unknown kind {kind_raw!r}; "
                f"choose from {', '.join(k.value for k in SelectionKind)}"
            )
        try:
            output = asyncio.run(_resolve_once(cfg, kind, selection_id))
        except (InventoryError, httpx.HTTPError) as exc:
            parser.exit(1, f"error: {exc}\n")
        sys.stdout.write(output + "\n")
        return

    uvicorn = importlib.import_module("uvicorn")
    register_backend("default", _backend_from_config(cfg))
    app = create_app(cfg)
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_level=effective_level.lower(),
    )


if __name__ == "__main__":
    main()
