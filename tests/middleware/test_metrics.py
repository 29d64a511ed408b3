"""Prometheus middleware and tenancy counters.

Counters live in the global registry and cannot be reset, so every
assertion is on a delta: read, act, read again.
"""

from __future__ import annotations

from uuid import uuid4

from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from crm.repos.registry import Repos
from tests.conftest import add_test_member, auth, create_test_org, mint_token


def _get_sample(name: str, labels: dict | None = None) -> float:
    value = REGISTRY.get_sample_value(name, labels=labels or {})
    return value if value is not None else 0.0


def test_request_counter_uses_route_template(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/health", "status_code": "200"}
    before = _get_sample("http_requests_total", labels)
    client.get("/health")
    assert _get_sample("http_requests_total", labels) - before >= 1


def test_invitation_token_never_becomes_a_label(client: TestClient) -> None:
    labels = {
        "method": "GET",
        "endpoint": "/v1/invitations/{token}",
        "status_code": "404",
    }
    before = _get_sample("http_requests_total", labels)
    resp = client.get("/v1/invitations/secret-token-value")
    assert resp.status_code == 404
    assert _get_sample("http_requests_total", labels) - before == 1
    assert "secret-token-value" not in client.get("/metrics").text


def test_unmatched_paths_share_one_label(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "<unmatched>", "status_code": "404"}
    before = _get_sample("http_requests_total", labels)
    client.get("/nope/1")
    client.get("/nope/2")
    assert _get_sample("http_requests_total", labels) - before == 2


def test_duration_histogram_observes(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/health"}
    before = _get_sample("http_request_duration_seconds_count", labels)
    client.get("/health")
    assert _get_sample("http_request_duration_seconds_count", labels) - before >= 1


def test_metrics_endpoint_not_self_instrumented(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/metrics", "status_code": "200"}
    before = _get_sample("http_requests_total", labels)
    resp = client.get("/metrics")
    client.get("/metrics")
    assert resp.status_code == 200
    assert "http_requests_total" in resp.text
    assert _get_sample("http_requests_total", labels) == before


def test_tenant_resolution_sources_are_counted(
    client: TestClient, repos: Repos
) -> None:
    org = create_test_org(repos, "metric-org")
    user_id = uuid4()
    add_test_member(repos, org.id, user_id, "viewer")
    headers = auth(mint_token(user_id))

    bootstrap = _get_sample("tenant_resolutions_total", {"source": "bootstrap"})
    session = _get_sample("tenant_resolutions_total", {"source": "session"})
    cache = _get_sample("tenant_resolutions_total", {"source": "cache"})

    # First call bootstraps and sets the cookie; the second presents it.
    client.get("/v1/organizations/active", headers=headers)
    client.get("/v1/organizations/active", headers=headers)

    assert _get_sample("tenant_resolutions_total", {"source": "bootstrap"}) == bootstrap + 1
    assert _get_sample("tenant_resolutions_total", {"source": "cache"}) == cache + 1
    assert _get_sample("tenant_resolutions_total", {"source": "session"}) == session
