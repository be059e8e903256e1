"""HTTP inventory backend.

Translates the :class:`~inventory_core.adapters.InventoryBackend` operations
into GET requests against the management API. Transport concerns (base URL,
headers, timeouts, retry with backoff) are encapsulated here; response bodies
are returned untouched.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from ..utils.correlation import get_request_id

logger = logging.getLogger(__name__)


def _seg(value: str) -> str:
    """URL-encode one path segment."""
    return quote(str(value), safe="")


class HttpInventoryBackend:
    """Backend for the management HTTP API.

    Parameters
    ----------
    endpoint: str
        Base URL of the API (e.g., "http://localhost:3000/api/v1").
    api_key: Optional[str]
        Optional bearer token for authenticating requests.
    timeout: int
        Request timeout in seconds for all HTTP operations.

    Attributes
    ----------
    _client: httpx.AsyncClient
        Shared async client configured with base URL, timeout, and headers.
    """

    def __init__(
        self,
        endpoint: str,
        api_key: Optional[str] = None,
        timeout: int = 30,
        *,
        max_retries: int = 1,
        backoff_initial_ms: int = 200,
        backoff_multiplier: float = 2.0,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=endpoint.rstrip("/"),
            timeout=timeout,
            headers=self._headers(api_key),
        )
        self._max_retries = max(0, int(max_retries))
        self._backoff_initial_ms = max(0, int(backoff_initial_ms))
        self._backoff_multiplier = max(1.0, float(backoff_multiplier))
        self._timeout_seconds = timeout
        logger.info(
            "backend.http.init",
            extra={"endpoint": endpoint, "timeout_seconds": timeout},
        )

    def inject_http_client_for_testing(self, client: Any) -> None:
        """Replace underlying HTTP client (testing only).

        This allows unit tests to provide a mock compatible with ``get()``.
        """
        self._client = client

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    @staticmethod
    def _headers(api_key: Optional[str]) -> dict:
        """Build default headers, with a bearer token when ``api_key`` is set."""
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    def _backoff_delay(self, attempt: int) -> float:
        return (self._backoff_initial_ms / 1000.0) * (
            self._backoff_multiplier**attempt
        )

    async def _get_json(
        self, path: str, params: Optional[Dict[str, Any]] = None
    ) -> Any:
        """GET an endpoint and return parsed JSON with error handling.

        Parameters
        ----------
        path: str
            Relative URL path (e.g., "/connections/c1/nodes").
        params: Optional[Dict[str, Any]]
            Query string parameters.

        Returns
        -------
        Any
            Parsed JSON body.

        Raises
        ------
        httpx.HTTPError
            On transport errors (after retries) or non-2xx responses.
        ValueError
            If the response body is not valid JSON.
        """
        logger.debug(
            "backend.http.get",
            extra={"req_id": get_request_id(), "path": path, "params": params},
        )
        attempt = 0
        last_exc: Optional[Exception] = None
        while attempt <= self._max_retries:
            try:
                if params:
                    resp = await self._client.get(path, params=params)
                else:
                    # Keep signature compatible with tests' mock client
                    resp = await self._client.get(path)
                resp.raise_for_status()
                break
            except (httpx.ReadTimeout, httpx.ConnectError) as exc:
                last_exc = exc
                logger.warning(
                    "backend.http.transient_error",
                    extra={
                        "req_id": get_request_id(),
                        "path": path,
                        "attempt": attempt + 1,
                        "max_retries": self._max_retries,
                        "timeout_seconds": self._timeout_seconds,
                        "error_type": type(exc).__name__,
                    },
                )
                if attempt < self._max_retries:
                    await asyncio.sleep(self._backoff_delay(attempt))
                attempt += 1
                continue
            except httpx.HTTPStatusError as exc:
                body_preview = ""
                try:
                    text = exc.response.text
                    if text:
                        body_preview = text if len(text) <= 500 else text[:500] + "..."
                except Exception:  # pragma: no cover - defensive
                    body_preview = "(unavailable)"
                logger.info(
                    "backend.http.status_error",
                    extra={
                        "req_id": get_request_id(),
                        "path": path,
                        "status": exc.response.status_code,
                        "body_preview": body_preview,
                    },
                )
                raise
        else:
            if last_exc is not None:
                raise last_exc
            raise RuntimeError(
                "HttpInventoryBackend request failed after retries without exception"
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise httpx.DecodingError(
                f"Malformed JSON from {path}: {exc}", request=resp.request
            ) from exc
        logger.debug(
            "backend.http.response",
            extra={
                "req_id": get_request_id(),
                "path": path,
                "status_code": resp.status_code,
            },
        )
        return data

    # ---------------- Virtualization connections ----------------

    async def connection(self, conn_id: str) -> Any:
        return await self._get_json(f"/connections/{_seg(conn_id)}")

    async def nodes(self, conn_id: str) -> Any:
        return await self._get_json(f"/connections/{_seg(conn_id)}/nodes")

    async def resources(self, conn_id: str) -> Any:
        return await self._get_json(f"/connections/{_seg(conn_id)}/resources")

    async def ceph_status(self, conn_id: str) -> Any:
        return await self._get_json(f"/connections/{_seg(conn_id)}/ceph/status")

    async def cluster_info(self, conn_id: str) -> Any:
        return await self._get_json(f"/connections/{_seg(conn_id)}/cluster")

    async def version(self, conn_id: str) -> Any:
        return await self._get_json(f"/connections/{_seg(conn_id)}/version")

    async def node_status(self, conn_id: str, node: str) -> Any:
        return await self._get_json(
            f"/connections/{_seg(conn_id)}/nodes/{_seg(node)}/status"
        )

    async def node_subscription(self, conn_id: str, node: str) -> Any:
        return await self._get_json(
            f"/connections/{_seg(conn_id)}/nodes/{_seg(node)}/subscription"
        )

    async def node_updates(self, conn_id: str, node: str) -> Any:
        return await self._get_json(
            f"/connections/{_seg(conn_id)}/nodes/{_seg(node)}/apt"
        )

    async def node_maintenance(self, conn_id: str, node: str) -> Any:
        return await self._get_json(
            f"/connections/{_seg(conn_id)}/nodes/{_seg(node)}/maintenance"
        )

    async def guest_config(
        self, conn_id: str, node: str, guest_type: str, vmid: str
    ) -> Any:
        return await self._get_json(
            f"/connections/{_seg(conn_id)}/guests/{_seg(guest_type)}"
            f"/{_seg(node)}/{_seg(vmid)}/config"
        )

    async def rrd(self, conn_id: str, path: str, timeframe: str) -> Any:
        return await self._get_json(
            f"/connections/{_seg(conn_id)}/rrd",
            {"path": path, "timeframe": timeframe},
        )

    # ---------------- Backup servers ----------------

    async def backup_status(self, server_id: str) -> Any:
        return await self._get_json(f"/pbs/{_seg(server_id)}/status")

    async def backup_datastores(self, server_id: str) -> Any:
        return await self._get_json(f"/pbs/{_seg(server_id)}/datastores")

    async def backup_listing(self, server_id: str, store: str) -> Any:
        return await self._get_json(
            f"/pbs/{_seg(server_id)}/backups",
            {"datastore": store, "pageSize": 5000},
        )

    async def backup_rrd(self, server_id: str, timeframe: str) -> Any:
        return await self._get_json(
            f"/pbs/{_seg(server_id)}/rrd", {"timeframe": timeframe}
        )

    async def backup_store_rrd(
        self, server_id: str, store: str, timeframe: str
    ) -> Any:
        return await self._get_json(
            f"/pbs/{_seg(server_id)}/datastores/{_seg(store)}/rrd",
            {"timeframe": timeframe},
        )
