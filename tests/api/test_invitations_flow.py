"""End-to-end invitation flow over HTTP."""

from __future__ import annotations

from uuid import uuid4

from fastapi.testclient import TestClient

from crm.main import app
from crm.repos.registry import Repos
from tests.conftest import add_test_member, auth, create_test_org, mint_token, run


def _invite(client: TestClient, repos: Repos, email: str, role: str = "editor"):
    org = create_test_org(repos, "inviting")
    admin = uuid4()
    add_test_member(repos, org.id, admin, "admin")
    resp = client.post(
        "/v1/team/invitations",
        json={"email": email, "role": role},
        headers=auth(mint_token(admin)),
    )
    assert resp.status_code == 201, resp.text
    return org, admin, resp.json()


def test_happy_path(client: TestClient, repos: Repos) -> None:
    org, _, issued = _invite(client, repos, "E@Example.com")
    assert issued["email"] == "e@example.com"
    assert issued["accept_url"].endswith(f"/invite/{issued['token']}")

    public = client.get(f"/v1/invitations/{issued['token']}")
    assert public.status_code == 200
    assert public.json()["organization_name"] == "Inviting"
    assert public.json()["role"] == "editor"
    assert public.json()["accepted"] is False

    invitee = uuid4()
    invitee_client = TestClient(app)
    resp = invitee_client.post(
        f"/v1/invitations/{issued['token']}/accept",
        headers=auth(mint_token(invitee, email="e@example.com")),
    )
    assert resp.status_code == 200
    assert resp.json() == {"organization_id": str(org.id), "role": "editor"}
    assert resp.cookies.get("active_organization_id") == str(org.id)

    membership = run(repos.memberships.get(org.id, invitee))
    assert membership is not None and membership.role == "editor"

    resp = invitee_client.get(
        "/v1/organizations/active",
        headers=auth(mint_token(invitee, email="e@example.com")),
    )
    assert resp.json()["organization_id"] == str(org.id)
    assert resp.json()["role"] == "editor"


def test_accept_moves_existing_member_to_new_org(client: TestClient, repos: Repos) -> None:
    home = create_test_org(repos, "home")
    invitee = uuid4()
    add_test_member(repos, home.id, invitee, "owner")
    headers = auth(mint_token(invitee, email="multi@example.com"))
    client.get("/v1/organizations/active", headers=headers)

    org, _, issued = _invite(client, repos, "multi@example.com", "viewer")
    client.post(f"/v1/invitations/{issued['token']}/accept", headers=headers)

    resp = client.get("/v1/organizations/active", headers=headers)
    assert resp.json()["organization_id"] == str(org.id)


def test_second_accept_is_409(client: TestClient, repos: Repos) -> None:
    _, _, issued = _invite(client, repos, "once@example.com")
    url = f"/v1/invitations/{issued['token']}/accept"

    first = client.post(url, headers=auth(mint_token(email="once@example.com")))
    second = client.post(url, headers=auth(mint_token(email="once@example.com")))

    assert first.status_code == 200
    assert second.status_code == 409
    assert second.json() == {
        "error": "invitation_used",
        "message": "Invitation has already been used",
    }


def test_wrong_email_is_403(client: TestClient, repos: Repos) -> None:
    _, _, issued = _invite(client, repos, "right@example.com")

    resp = client.post(
        f"/v1/invitations/{issued['token']}/accept",
        headers=auth(mint_token(email="wrong@example.com")),
    )

    assert resp.status_code == 403
    assert resp.json()["error"] == "email_mismatch"


def test_unknown_token(client: TestClient) -> None:
    assert client.get("/v1/invitations/does-not-exist").status_code == 404
    resp = client.post(
        "/v1/invitations/does-not-exist/accept",
        headers=auth(mint_token(email="a@example.com")),
    )
    assert resp.status_code == 404
    assert resp.json()["error"] == "invalid_token"


def test_accept_requires_auth(client: TestClient, repos: Repos) -> None:
    _, _, issued = _invite(client, repos, "a@example.com")
    assert client.post(f"/v1/invitations/{issued['token']}/accept").status_code == 401


def test_pending_list_drops_accepted(client: TestClient, repos: Repos) -> None:
    _, admin, issued = _invite(client, repos, "p@example.com")
    headers = auth(mint_token(admin))

    pending = client.get("/v1/team/invitations", headers=headers).json()
    assert [i["email"] for i in pending] == ["p@example.com"]
    assert "token" not in pending[0]

    client.post(
        f"/v1/invitations/{issued['token']}/accept",
        headers=auth(mint_token(email="p@example.com")),
    )
    assert client.get("/v1/team/invitations", headers=headers).json() == []
