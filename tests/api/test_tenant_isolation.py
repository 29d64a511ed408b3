"""Cross-tenant isolation: the active organization scopes every read."""

from __future__ import annotations

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from crm.models.company import Company
from crm.repos.registry import Repos
from tests.conftest import add_test_member, auth, create_test_org, mint_token, run


def _company(repos: Repos, org_id, name: str) -> None:
    run(repos.companies.add(Company.new(organization_id=org_id, business_name=name)))


@pytest.mark.parametrize("a_first", [True, False])
def test_member_sees_only_active_org_companies(
    client: TestClient, repos: Repos, a_first: bool
) -> None:
    slugs = ["tenant-a", "tenant-b"] if a_first else ["tenant-b", "tenant-a"]
    orgs = {slug: create_test_org(repos, slug) for slug in slugs}
    org_a, org_b = orgs["tenant-a"], orgs["tenant-b"]
    _company(repos, org_a.id, "Alpha Corp")
    _company(repos, org_b.id, "Beta Corp")
    user_id = uuid4()
    add_test_member(repos, org_a.id, user_id, "viewer")

    resp = client.get("/v1/companies", headers=auth(mint_token(user_id)))

    assert resp.status_code == 200
    assert [c["business_name"] for c in resp.json()] == ["Alpha Corp"]


def test_forged_cookie_does_not_cross_tenants(client: TestClient, repos: Repos) -> None:
    org_a = create_test_org(repos, "tenant-a")
    org_b = create_test_org(repos, "tenant-b")
    _company(repos, org_b.id, "Beta Corp")
    user_id = uuid4()
    add_test_member(repos, org_a.id, user_id, "owner")

    resp = client.get(
        "/v1/companies",
        headers={
            **auth(mint_token(user_id)),
            "Cookie": f"active_organization_id={org_b.id}",
        },
    )

    assert resp.status_code == 200
    assert resp.json() == []


def test_switch_changes_visible_rows(client: TestClient, repos: Repos) -> None:
    org_a = create_test_org(repos, "tenant-a")
    org_b = create_test_org(repos, "tenant-b")
    _company(repos, org_a.id, "Alpha Corp")
    _company(repos, org_b.id, "Beta Corp")
    user_id = uuid4()
    add_test_member(repos, org_a.id, user_id, "viewer")
    add_test_member(repos, org_b.id, user_id, "viewer")
    headers = auth(mint_token(user_id))

    assert [c["business_name"] for c in client.get("/v1/companies", headers=headers).json()] == [
        "Alpha Corp"
    ]
    client.post(f"/v1/organizations/{org_b.id}/switch", headers=headers)
    assert [c["business_name"] for c in client.get("/v1/companies", headers=headers).json()] == [
        "Beta Corp"
    ]


def test_created_company_lands_in_active_org(client: TestClient, repos: Repos) -> None:
    org_a = create_test_org(repos, "tenant-a")
    org_b = create_test_org(repos, "tenant-b")
    user_id = uuid4()
    add_test_member(repos, org_a.id, user_id, "editor")

    resp = client.post(
        "/v1/companies",
        json={"business_name": "New Co"},
        headers=auth(mint_token(user_id)),
    )

    assert resp.status_code == 201
    assert resp.json()["organization_id"] == str(org_a.id)
    assert run(repos.companies.list_by_org(org_b.id)) == []


def test_viewer_cannot_create_company(client: TestClient, repos: Repos) -> None:
    org = create_test_org(repos, "tenant-a")
    user_id = uuid4()
    add_test_member(repos, org.id, user_id, "viewer")

    resp = client.post(
        "/v1/companies",
        json={"business_name": "Nope"},
        headers=auth(mint_token(user_id)),
    )

    assert resp.status_code == 403
    assert resp.json()["error"] == "insufficient_role"


def test_team_endpoints_never_show_other_org(client: TestClient, repos: Repos) -> None:
    org_a = create_test_org(repos, "tenant-a")
    org_b = create_test_org(repos, "tenant-b")
    admin = uuid4()
    add_test_member(repos, org_a.id, admin, "admin")
    outsider = uuid4()
    add_test_member(repos, org_b.id, outsider, "viewer")
    headers = auth(mint_token(admin))

    members = client.get("/v1/team/members", headers=headers).json()
    assert [m["user_id"] for m in members] == [str(admin)]

    resp = client.patch(
        f"/v1/team/members/{outsider}", json={"role": "admin"}, headers=headers
    )
    assert resp.status_code == 403
    assert resp.json()["error"] == "not_a_member"
    stored = run(repos.memberships.get(org_b.id, outsider))
    assert stored is not None and stored.role == "viewer"
