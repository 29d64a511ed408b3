"""Token-bucket limits on the invitation endpoints."""

from __future__ import annotations

from uuid import uuid4

import jwt
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from crm.api.invitations import ACCEPT_LIMIT, LOOKUP_LIMIT
from tests.conftest import auth, mint_token


def _hits(scope: str) -> float:
    return REGISTRY.get_sample_value("rate_limit_hits_total", {"scope": scope}) or 0.0


def test_lookup_within_limit_has_headers(client: TestClient) -> None:
    resp = client.get("/v1/invitations/whatever")
    assert resp.status_code == 404
    assert resp.headers["x-ratelimit-limit"] == str(LOOKUP_LIMIT.capacity)
    assert int(resp.headers["x-ratelimit-remaining"]) == LOOKUP_LIMIT.capacity - 1


def test_lookup_over_limit_gets_429(client: TestClient) -> None:
    statuses = [
        client.get(f"/v1/invitations/guess-{i}").status_code
        for i in range(LOOKUP_LIMIT.capacity + 3)
    ]

    assert statuses[: LOOKUP_LIMIT.capacity] == [404] * LOOKUP_LIMIT.capacity
    assert statuses[-1] == 429


def test_429_includes_retry_after(client: TestClient) -> None:
    last = None
    for i in range(LOOKUP_LIMIT.capacity + 1):
        last = client.get(f"/v1/invitations/guess-{i}")
    assert last is not None and last.status_code == 429
    assert int(last.headers["retry-after"]) > 0
    assert last.headers["x-ratelimit-remaining"] == "0"


def test_forged_tokens_do_not_earn_fresh_buckets(client: TestClient) -> None:
    before = _hits("invitation-lookup")
    statuses = []
    for i in range(LOOKUP_LIMIT.capacity + 5):
        # Self-signed, so require_user would reject it; only the sub varies.
        forged = jwt.encode({"sub": str(uuid4())}, "not-the-key", algorithm="HS256")
        statuses.append(
            client.get(f"/v1/invitations/guess-{i}", headers=auth(forged)).status_code
        )

    assert statuses.count(429) == 5
    assert _hits("invitation-lookup") - before == 5


def test_accept_is_limited_per_client_not_per_user(client: TestClient) -> None:
    for i in range(ACCEPT_LIMIT.capacity):
        headers = auth(mint_token(uuid4(), email=f"user{i}@example.com"))
        resp = client.post(f"/v1/invitations/t{i}/accept", headers=headers)
        assert resp.status_code == 404

    resp = client.post(
        "/v1/invitations/t0/accept",
        headers=auth(mint_token(uuid4(), email="late@example.com")),
    )
    assert resp.status_code == 429


def test_lookup_and_accept_use_separate_buckets(client: TestClient) -> None:
    headers = auth(mint_token(email="a@example.com"))
    for i in range(ACCEPT_LIMIT.capacity + 1):
        client.post(f"/v1/invitations/t{i}/accept", headers=headers)

    resp = client.get("/v1/invitations/t0", headers=headers)
    assert resp.status_code == 404
