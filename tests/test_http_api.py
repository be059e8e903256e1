"""Test the HTTP read API."""

from __future__ import annotations

import os
from unittest.mock import patch

import httpx
import pytest
from fastapi.testclient import TestClient

from inventory_core.adapters import get_available_backends, get_backend, register_backend
from inventory_core.adapters.http_backend import HttpInventoryBackend
from inventory_core.server.http import create_app

NODES = [
    {"node": "pve1", "status": "online", "cpu": 0.42, "mem": 50, "maxmem": 100},
    {"node": "pve2", "status": "offline"},
]


@pytest.fixture
def backend(make_backend):
    """Register an in-memory backend as the default backend."""
    fake = make_backend(
        {
            "nodes": NODES,
            "resources": [],
            "rrd": [{"time": 2, "cpu": 0.5}, {"time": 1, "cpu": 25}],
        }
    )
    register_backend("default", fake)
    return fake


@pytest.fixture
def client(backend):
    """Create a test client for the FastAPI app."""
    app = create_app()
    return TestClient(app)


def test_health_endpoint_no_auth(client):
    """Test that /health works without authentication."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_ready_reports_backends(client):
    response = client.get("/ready")
    assert response.status_code == 200
    assert response.json()["status"] == "ready"
    assert response.json()["backends"] == ["default"]


def test_cluster_payload(client):
    response = client.get("/inventory/cluster/c1")
    assert response.status_code == 200
    body = response.json()
    assert body["kind_label"] == "CLUSTER"
    assert body["status"] == "warn"
    assert body["kpis"][0] == {"label": "Nodes", "value": "1/2", "hint": None}
    assert body["details"]["kind"] == "cluster"
    assert body["last_updated"]


def test_node_payload(client):
    response = client.get("/inventory/node/c1:pve1")
    assert response.status_code == 200
    body = response.json()
    assert body["metrics"]["cpu"]["pct"] == 42
    assert body["metrics"]["ram"]["pct"] == 50
    assert body["status"] == "ok"


def test_series_endpoint(client, backend):
    response = client.get(
        "/inventory/node/c1:pve1/series", params={"timeframe": "week"}
    )
    assert response.status_code == 200
    assert [p["cpu_pct"] for p in response.json()] == [25, 50]
    assert backend.called("rrd") == [("c1", "/nodes/pve1", "week")]


def test_missing_entity_returns_404(client):
    response = client.get("/inventory/node/c1:pve9")
    assert response.status_code == 404
    detail = response.json()["detail"]
    assert detail["error_type"] == "not_found"
    assert "pve9" in detail["detail"]


def test_unknown_kind_returns_400(client):
    response = client.get("/inventory/storage/c1")
    assert response.status_code == 400
    assert response.json()["detail"]["error_type"] == "validation_error"


def test_root_selection_returns_400(client):
    response = client.get("/inventory/root/all")
    assert response.status_code == 400
    assert response.json()["detail"]["error_type"] == "unsupported_selection"


def test_series_for_backup_server_returns_400(client):
    response = client.get("/inventory/backup-server/pbs1/series")
    assert response.status_code == 400


def test_upstream_failure_returns_502(client, backend):
    backend.responses["nodes"] = httpx.ConnectError("down")
    response = client.get("/inventory/cluster/c1")
    assert response.status_code == 502
    assert response.json()["detail"]["error_type"] == "upstream_error"


def test_malformed_upstream_body_returns_502(client, backend):
    backend.responses["nodes"] = httpx.DecodingError(
        "Malformed JSON from /connections/c1/nodes"
    )
    response = client.get("/inventory/cluster/c1")
    assert response.status_code == 502
    assert response.json()["detail"]["error_type"] == "upstream_error"


def test_correlation_id_is_echoed(client):
    response = client.get("/health", headers={"x-correlation-id": "abc-123"})
    assert response.headers["x-correlation-id"] == "abc-123"


def test_correlation_id_is_generated(client):
    response = client.get("/health")
    assert response.headers["x-correlation-id"]


def test_inventory_requires_auth_when_token_set(backend):
    """Test that inventory routes enforce the bearer token."""
    with patch.dict(os.environ, {"INVENTORY_HTTP_TOKEN": "test-token"}):
        test_client = TestClient(create_app())

        assert test_client.get("/inventory/cluster/c1").status_code == 401
        assert (
            test_client.get(
                "/inventory/cluster/c1", headers={"Authorization": "Bearer nope"}
            ).status_code
            == 403
        )
        ok = test_client.get(
            "/inventory/cluster/c1", headers={"Authorization": "Bearer test-token"}
        )
        assert ok.status_code == 200
        # health stays open
        assert test_client.get("/health").status_code == 200


def test_no_backend_returns_503():
    response = TestClient(create_app()).get("/inventory/cluster/c1")
    assert response.status_code == 503
    assert response.json()["detail"]["error_type"] == "backend_unavailable"


def test_lifespan_builds_backend_from_environment(monkeypatch):
    monkeypatch.setenv("INVENTORY_BACKEND_URL", "http://backend.test/api/v1")
    monkeypatch.delenv("INVENTORY_CONFIG_PATH", raising=False)

    with TestClient(create_app()) as test_client:
        assert isinstance(get_backend(), HttpInventoryBackend)
        assert test_client.get("/ready").json()["status"] == "ready"


def test_lifespan_without_configuration(monkeypatch):
    monkeypatch.delenv("INVENTORY_BACKEND_URL", raising=False)
    monkeypatch.delenv("INVENTORY_CONFIG_PATH", raising=False)

    with TestClient(create_app()) as test_client:
        assert get_available_backends() == []
        assert test_client.get("/ready").json()["status"] == "not_ready"
