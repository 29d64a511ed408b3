from __future__ import annotations

from fastapi.testclient import TestClient


def test_health_reports_dependencies(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {
        "status": "ok",
        "checks": {"database": "not_configured", "redis": "not_configured"},
    }


def test_ready_without_database(client: TestClient) -> None:
    assert client.get("/ready").status_code == 200


def test_health_needs_no_auth(client: TestClient) -> None:
    resp = client.get("/health", headers={"Authorization": "Bearer junk"})
    assert resp.status_code == 200
