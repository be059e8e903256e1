"""HTTP read API exposing canonical inventory payloads via FastAPI.

Endpoints are a thin transport over :class:`InventoryResolver`: every request
resolves one selection against the registered ``default`` backend. Bearer
authentication and CORS are configurable via environment variables.
"""

from __future__ import annotations

import importlib
import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import httpx
import psutil
from pydantic import BaseModel
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from .. import __payload_model_version__, __version__
from ..adapters import (
    get_available_backends,
    get_backend,
    register_backend,
)
from ..adapters.http_backend import HttpInventoryBackend
from ..config.models import AppConfig, EnvSettings, Timeframe
from ..domain.models import CanonicalPayload, SeriesPoint
from ..domain.selection import Selection, SelectionKind
from ..errors import EntityNotFoundError, InventoryError, UnsupportedSelectionError
from ..observability import setup_logging
from ..utils.correlation import get_request_id, set_request_id
from .resolver import InventoryResolver

logger = logging.getLogger(__name__)


class CorrelationMiddleware(
    BaseHTTPMiddleware
):  # pylint: disable=too-few-public-methods
    """Assign a correlation id to every request and log its completion."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        req_id = request.headers.get("x-correlation-id") or str(uuid.uuid4())
        set_request_id(req_id)

        response = await call_next(request)
        response.headers["x-correlation-id"] = req_id
        logger.info(
            "http.request.completed",
            extra={
                "req_id": req_id,
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": int((time.time() - start_time) * 1000),
            },
        )
        return response


__all__ = [
    "create_app",
    "_load_fastapi",
    "_build_app",
    "_apply_cors_env",
    "_make_auth_dependency",
    "_register_health",
    "_register_inventory",
]


class HealthResponse(BaseModel):
    """Simple health/readiness response model."""

    status: str
    version: Optional[str] = None
    payload_model_version: Optional[str] = None
    backends: Optional[List[str]] = None


class ErrorResponse(BaseModel):
    """Structured JSON error response for HTTP endpoints.

    Fields
    ------
    detail: str
        Human-readable explanation of the error.
    error_type: str
        Machine-readable error classification.
    """

    detail: str
    error_type: str


def _load_fastapi():
    """Dynamically import FastAPI pieces used by the app factory."""
    fastapi_mod = importlib.import_module("fastapi")
    cors_mod = importlib.import_module("fastapi.middleware.cors")
    exc_mod = importlib.import_module("fastapi.exceptions")
    resp_mod = importlib.import_module("fastapi.responses")
    st_exc_mod = importlib.import_module("starlette.exceptions")
    return {
        "fastapi_cls": getattr(fastapi_mod, "FastAPI"),
        "depends": getattr(fastapi_mod, "Depends"),
        "header": getattr(fastapi_mod, "Header"),
        "query": getattr(fastapi_mod, "Query"),
        "http_exc": getattr(fastapi_mod, "HTTPException"),
        "status": getattr(fastapi_mod, "status"),
        "cors_mw": getattr(cors_mod, "CORSMiddleware"),
        "validation_exc": getattr(exc_mod, "RequestValidationError"),
        "json_response": getattr(resp_mod, "JSONResponse"),
        "starlette_http_exc": getattr(st_exc_mod, "HTTPException"),
    }


def _build_app(fastapi_cls: Any, lifespan: Any | None = None):
    """Create base FastAPI app (optionally with lifespan)."""
    if lifespan is not None:
        return fastapi_cls(
            title="Inventory Aggregator", version=__version__, lifespan=lifespan
        )
    return fastapi_cls(title="Inventory Aggregator", version=__version__)


def _apply_cors_env(app: Any, cors_middleware_cls: Any) -> None:
    """Enable CORS if INVENTORY_CORS_ORIGINS is set."""
    allow_origins: List[str] = []
    origins = os.environ.get("INVENTORY_CORS_ORIGINS", "")
    if origins:
        allow_origins = [o.strip() for o in origins.split(",") if o.strip()]
    if allow_origins:
        app.add_middleware(
            cors_middleware_cls,
            allow_origins=allow_origins,
            allow_credentials=True,
            allow_methods=["GET"],
            allow_headers=["*"],
        )


def _make_auth_dependency(header: Any, http_exc: Any, status_mod: Any):
    """Return a dependency function that enforces optional bearer token."""

    def _auth_dependency(authorization: str | None = header(default=None)) -> None:
        expected = _get_expected_token()
        if expected is None:
            return
        if not authorization or not authorization.startswith("Bearer "):
            raise http_exc(status_code=status_mod.HTTP_401_UNAUTHORIZED)
        token = authorization.split(" ", 1)[1]
        if token != expected:
            raise http_exc(status_code=status_mod.HTTP_403_FORBIDDEN)

    return _auth_dependency


def _register_health(app: Any) -> None:
    """Register health and readiness endpoints."""

    @app.get(
        "/health",
        response_model=HealthResponse,
        summary="Liveness probe",
    )
    async def health() -> HealthResponse:
        return HealthResponse(
            status="ok",
            version=__version__,
            payload_model_version=__payload_model_version__,
        )

    @app.get(
        "/ready",
        response_model=HealthResponse,
        summary="Readiness probe",
    )
    async def ready() -> HealthResponse:
        backends = get_available_backends()
        return HealthResponse(
            status="ready" if backends else "not_ready", backends=backends
        )


def _resolver_for(app: Any) -> InventoryResolver:
    """Build a resolver bound to the registered default backend."""
    config: Optional[AppConfig] = getattr(app.state, "app_config", None)
    try:
        backend = get_backend("default")
    except KeyError as exc:
        raise InventoryError("No backend configured") from exc
    if config is None:
        return InventoryResolver(backend)
    return InventoryResolver(
        backend,
        timeframe=config.default_timeframe,
        capacity_defaults=config.guest_capacity_defaults,
    )


def _register_inventory(app: Any, depends: Any, query: Any, auth_dep: Any) -> None:
    """Register the selection payload and time-series endpoints."""

    @app.get(
        "/inventory/{kind}/{selection_id}",
        summary="Canonical payload of one selection",
        dependencies=[depends(auth_dep)],
    )
    async def inventory_payload(
        kind: SelectionKind, selection_id: str
    ) -> Dict[str, Any]:
        selection = Selection.of(kind, selection_id)
        logger.info(
            "http.inventory.request",
            extra={
                "req_id": get_request_id(),
                "kind": kind.value,
                "selection_id": selection_id,
            },
        )
        payload: CanonicalPayload = await _resolver_for(app).details(selection)
        return payload.model_dump(mode="json")

    @app.get(
        "/inventory/{kind}/{selection_id}/series",
        summary="Normalized time series of a node or guest",
        dependencies=[depends(auth_dep)],
    )
    async def inventory_series(
        kind: SelectionKind,
        selection_id: str,
        timeframe: Optional[Timeframe] = query(default=None),
        capacity: Optional[float] = query(default=None, gt=0),
    ) -> List[Dict[str, Any]]:
        selection = Selection.of(kind, selection_id)
        points: List[SeriesPoint] = await _resolver_for(app).series(
            selection, timeframe, capacity
        )
        return [p.model_dump(mode="json") for p in points]

    _ = (inventory_payload, inventory_series)


def _log_startup_memory() -> None:
    try:
        mem_info = psutil.Process().memory_info()
    except (psutil.Error, OSError):  # pragma: no cover
        return
    logger.info(
        "http.startup.memory",
        extra={
            "rss_mb": round(mem_info.rss / 1024 / 1024, 1),
            "vms_mb": round(mem_info.vms / 1024 / 1024, 1),
        },
    )


def create_app(config: Optional[AppConfig] = None):
    """Create and configure the FastAPI application.

    Parameters
    ----------
    config: Optional[AppConfig]
        Application config. When omitted, it is resolved from the
        environment (``INVENTORY_CONFIG_PATH`` / ``INVENTORY_BACKEND_URL``)
        at startup. A backend already registered as ``default`` is reused.
    """
    settings = EnvSettings()
    # Respect prior logging configuration from CLI; otherwise use env setting
    if not logging.getLogger().hasHandlers():
        setup_logging(settings.log_level)
    parts = _load_fastapi()

    @asynccontextmanager
    async def lifespan(app_: Any):
        logger.info("http.startup")
        _log_startup_memory()

        owned: Optional[HttpInventoryBackend] = None
        if "default" not in get_available_backends():
            cfg = app_.state.app_config
            if cfg is None:
                try:
                    cfg = settings.build_app_config()
                except (ValueError, OSError) as exc:
                    logger.warning(
                        "http.startup.no_backend", extra={"error": str(exc)}
                    )
            if cfg is not None:
                app_.state.app_config = cfg
                owned = HttpInventoryBackend(
                    cfg.backend.endpoint,
                    cfg.backend.api_key,
                    cfg.backend.timeout_seconds,
                    max_retries=cfg.backend.max_retries,
                    backoff_initial_ms=cfg.backend.backoff_initial_ms,
                    backoff_multiplier=cfg.backend.backoff_multiplier,
                )
                register_backend("default", owned)
        try:
            yield
        finally:
            logger.info("http.shutdown")
            if owned is not None:
                await owned.aclose()

    app = _build_app(parts["fastapi_cls"], lifespan=lifespan)
    app.state.app_config = config
    jr = parts["json_response"]

    def _error(status_code: int, detail: str, error_type: str):
        err = ErrorResponse(detail=detail, error_type=error_type)
        return jr(status_code=status_code, content={"detail": err.model_dump()})

    @app.exception_handler(parts["validation_exc"])
    async def validation_exception_handler(_request: Any, exc: Exception):  # noqa: D401
        return _error(400, str(exc), "validation_error")

    @app.exception_handler(EntityNotFoundError)
    async def not_found_handler(_request: Any, exc: EntityNotFoundError):  # noqa: D401
        return _error(404, str(exc), "not_found")

    @app.exception_handler(UnsupportedSelectionError)
    async def unsupported_handler(_request: Any, exc: Exception):  # noqa: D401
        return _error(400, str(exc), "unsupported_selection")

    @app.exception_handler(InventoryError)
    async def unavailable_handler(_request: Any, exc: Exception):  # noqa: D401
        return _error(503, str(exc), "backend_unavailable")

    @app.exception_handler(httpx.HTTPError)
    async def upstream_handler(_request: Any, exc: httpx.HTTPError):  # noqa: D401
        logger.warning(
            "http.upstream_error",
            extra={
                "req_id": get_request_id(),
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )
        return _error(502, f"Upstream request failed: {exc}", "upstream_error")

    @app.exception_handler(parts["starlette_http_exc"])
    async def http_exception_handler(_request: Any, exc: Any):  # noqa: D401
        detail = getattr(exc, "detail", "")
        return _error(exc.status_code, str(detail) or "HTTP error", "http_error")

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(_request: Any, exc: Exception):  # noqa: D401
        # Avoid leaking internals; log server-side, return generic error
        logger.error("http.unhandled_exception", exc_info=exc)
        return _error(
            500,
            "Internal error. See server logs for request id.",
            "internal_server_error",
        )

    # Mark handlers as intentionally used (registered via decorators)
    _ = (
        validation_exception_handler,
        not_found_handler,
        unsupported_handler,
        unavailable_handler,
        upstream_handler,
        http_exception_handler,
        unhandled_exception_handler,
    )

    _apply_cors_env(app, parts["cors_mw"])
    app.add_middleware(CorrelationMiddleware)
    auth_dep = _make_auth_dependency(
        parts["header"], parts["http_exc"], parts["status"]
    )
    _register_health(app)
    _register_inventory(app, parts["depends"], parts["query"], auth_dep)
    return app


def _get_expected_token() -> str | None:
    """Return expected bearer token from environment, or ``None`` if disabled.

    Environment variable: ``INVENTORY_HTTP_TOKEN``.
    """
    token = os.environ.get("INVENTORY_HTTP_TOKEN")
    return token if token else None
