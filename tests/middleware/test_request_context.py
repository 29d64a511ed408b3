"""X-Request-ID handling and the per-request summary log line."""

from __future__ import annotations

import logging
import uuid

import pytest
from fastapi.testclient import TestClient

from crm.repos.registry import Repos
from tests.conftest import add_test_member, auth, create_test_org, mint_token


def test_request_id_generated_when_not_provided(client: TestClient) -> None:
    resp = client.get("/health")
    uuid.UUID(resp.headers["x-request-id"])


def test_request_id_echoed_when_provided(client: TestClient) -> None:
    resp = client.get("/health", headers={"X-Request-ID": "my-request-123"})
    assert resp.headers.get("x-request-id") == "my-request-123"


def test_request_id_present_on_error_responses(client: TestClient) -> None:
    resp = client.get("/v1/organizations")
    assert resp.status_code == 401
    assert resp.headers.get("x-request-id") is not None


def _summary(caplog: pytest.LogCaptureFixture) -> logging.LogRecord:
    records = [
        r for r in caplog.records if r.name == "crm.middleware.request_context"
    ]
    assert records, "no request summary was logged"
    return records[-1]


def test_summary_line_carries_tenant_fields(
    client: TestClient, repos: Repos, caplog: pytest.LogCaptureFixture
) -> None:
    org = create_test_org(repos, "log-org")
    user_id = uuid.uuid4()
    add_test_member(repos, org.id, user_id, "owner")

    with caplog.at_level(logging.INFO, logger="crm.middleware.request_context"):
        resp = client.get(
            "/v1/organizations/active", headers=auth(mint_token(user_id))
        )

    assert resp.status_code == 200
    record = _summary(caplog)
    assert record.path == "/v1/organizations/active"  # type: ignore[attr-defined]
    assert record.user_id == str(user_id)  # type: ignore[attr-defined]
    assert record.organization_id == str(org.id)  # type: ignore[attr-defined]
    assert record.status_code == 200  # type: ignore[attr-defined]


def test_summary_line_logs_template_not_token(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.INFO, logger="crm.middleware.request_context"):
        client.get("/v1/invitations/leaky-token")

    record = _summary(caplog)
    assert record.path == "/v1/invitations/{token}"  # type: ignore[attr-defined]
    assert "leaky-token" not in record.getMessage()
