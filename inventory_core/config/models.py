"""Config models and loader.

This module defines Pydantic models for file- and environment-based
configuration. JSON parsing prefers `orjson` when available for speed and
falls back to the Python standard library's `json` module otherwise.
"""

from __future__ import annotations

import json as _json
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

try:
    import orjson as _orjson_mod  # type: ignore[assignment]
except ImportError:  # pragma: no cover - optional dependency
    _orjson_mod = None  # type: ignore[assignment]
    _loads_orjson: Optional[Callable[[bytes], Any]] = None
else:

    def _loads_orjson(buf: bytes) -> Any:
        loader = getattr(_orjson_mod, "loads")  # type: ignore[assignment]
        return loader(buf)


from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

GIB = 1024 * 1024 * 1024


class Timeframe(str, Enum):
    """Time-series windows supported by the metrics backend."""

    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class BackendConfig(BaseModel):
    """Connection settings for the management API.

    Attributes
    ----------
    endpoint: str
        Base URL of the management API (e.g., "http://localhost:3000/api/v1").
    api_key: Optional[str]
        Optional bearer token attached to every request.
    timeout_seconds: int
        HTTP request timeout in seconds.
    """

    endpoint: str = Field(..., description="Management API base URL")
    api_key: Optional[str] = Field(None, description="Authentication token")
    timeout_seconds: int = Field(30, ge=1)
    max_retries: int = Field(1, ge=0, description="Number of retry attempts")
    backoff_initial_ms: int = Field(
        200, ge=0, description="Initial backoff in milliseconds"
    )
    backoff_multiplier: float = Field(
        2.0, ge=1.0, description="Backoff multiplier per attempt"
    )


class GuestCapacityDefaults(BaseModel):
    """Host capacity assumed when the hosting node does not declare one."""

    max_cpu: int = Field(128, ge=1)
    max_mem: int = Field(128 * GIB, ge=1)


class AppConfig(BaseModel):
    """Top-level application configuration.

    Attributes
    ----------
    backend: BackendConfig
        Management API connection settings.
    default_timeframe: Timeframe
        Window used for time-series requests when the caller gives none.
    guest_capacity_defaults: GuestCapacityDefaults
        Fallback host capacity reported alongside guest payloads.
    """

    backend: BackendConfig
    default_timeframe: Timeframe = Timeframe.HOUR
    guest_capacity_defaults: GuestCapacityDefaults = Field(
        default_factory=GuestCapacityDefaults
    )

    @staticmethod
    def load(path: Path) -> "AppConfig":
        """Load application config from a JSON file."""
        raw = path.read_bytes()
        if _loads_orjson is not None:
            data = _loads_orjson(raw)
        else:
            data = _json.loads(raw.decode("utf-8"))
        return AppConfig.model_validate(data)


class EnvSettings(BaseSettings):
    """Environment-driven settings and .env support.

    Attributes
    ----------
    log_level: str
        Logging level name (e.g., "DEBUG", "INFO"). Defaults to "INFO".
    config_path: Optional[str]
        Path to the JSON app config loaded by the HTTP app at startup.
    backend_url: Optional[str]
        Overrides ``backend.endpoint`` from the config file.
    http_token: Optional[str]
        Bearer token required on inventory routes when set.
    cors_origins: str
        Comma-separated list of allowed CORS origins.
    """

    model_config = SettingsConfigDict(env_file=".env", env_prefix="INVENTORY_")

    log_level: str = Field("INFO")
    config_path: Optional[str] = None
    backend_url: Optional[str] = None
    http_token: Optional[str] = None
    cors_origins: str = ""

    def build_app_config(self) -> AppConfig:
        """Resolve the effective AppConfig from file and environment.

        Raises
        ------
        ValueError
            If neither a config file nor a backend URL is available.
        """
        if self.config_path:
            cfg = AppConfig.load(Path(self.config_path))
            if self.backend_url:
                cfg = cfg.model_copy(
                    update={
                        "backend": cfg.backend.model_copy(
                            update={"endpoint": self.backend_url}
                        )
                    }
                )
            return cfg
        if self.backend_url:
            return AppConfig(backend=BackendConfig(endpoint=self.backend_url))
        raise ValueError(
            "No backend configured: set INVENTORY_CONFIG_PATH or INVENTORY_BACKEND_URL"
        )
