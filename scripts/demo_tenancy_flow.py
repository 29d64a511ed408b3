#!/usr/bin/env python3
"""Walk through the tenancy flow against an in-process app.

RUN:  pip install -e ".[test]" && python scripts/demo_tenancy_flow.py

Runs the app in-process over httpx's ASGI transport, so tokens minted
with the dev signing key are accepted.  Uses the in-memory store unless
DATABASE_URL is set.

  1. Alice creates "Acme" and resolves her active organization
  2. Alice invites bob@example.com as editor
  3. Bob accepts; his active organization becomes Acme
  4. Bob creates his own organization and switches between the two
  5. Bob tries to demote Alice, and Alice cannot demote herself
"""

from __future__ import annotations

import asyncio
import uuid

import httpx

from crm.main import app
from crm.services import token_service


def _headers(user_id: uuid.UUID, email: str) -> dict[str, str]:
    token = token_service.create_access_token(sub=str(user_id), email=email)
    return {"Authorization": f"Bearer {token}"}


def _show(label: str, resp: httpx.Response) -> None:
    print(f"  {label:<40} {resp.status_code}  {resp.text[:100]}")


async def main() -> None:
    alice_id, bob_id = uuid.uuid4(), uuid.uuid4()
    alice = _headers(alice_id, "alice@example.com")
    bob = _headers(bob_id, "bob@example.com")
    transport = httpx.ASGITransport(app=app)

    async with (
        httpx.AsyncClient(transport=transport, base_url="http://demo") as alice_http,
        httpx.AsyncClient(transport=transport, base_url="http://demo") as bob_http,
    ):
        print("1. Alice creates an organization")
        resp = await alice_http.post(
            "/v1/organizations", json={"name": "Acme"}, headers=alice
        )
        _show("POST /v1/organizations", resp)
        acme_id = resp.json()["id"]
        _show(
            "GET /v1/organizations/active",
            await alice_http.get("/v1/organizations/active", headers=alice),
        )

        print("2. Alice invites Bob")
        resp = await alice_http.post(
            "/v1/team/invitations",
            json={"email": "bob@example.com", "role": "editor"},
            headers=alice,
        )
        _show("POST /v1/team/invitations", resp)
        token = resp.json()["token"]

        print("3. Bob looks up and accepts the invitation")
        _show("GET /v1/invitations/{token}", await bob_http.get(f"/v1/invitations/{token}"))
        _show(
            "POST /v1/invitations/{token}/accept",
            await bob_http.post(f"/v1/invitations/{token}/accept", headers=bob),
        )
        _show(
            "  accept again",
            await bob_http.post(f"/v1/invitations/{token}/accept", headers=bob),
        )

        print("4. Bob creates his own organization and switches")
        resp = await bob_http.post(
            "/v1/organizations", json={"name": "Bob Co"}, headers=bob
        )
        _show("POST /v1/organizations", resp)
        bob_co_id = resp.json()["id"]
        _show(
            "POST /v1/organizations/{bob_co}/switch",
            await bob_http.post(f"/v1/organizations/{bob_co_id}/switch", headers=bob),
        )
        _show(
            "GET /v1/organizations/active",
            await bob_http.get("/v1/organizations/active", headers=bob),
        )
        _show(
            "POST /v1/organizations/{acme}/switch",
            await bob_http.post(f"/v1/organizations/{acme_id}/switch", headers=bob),
        )

        print("5. Guards")
        _show(
            "Bob (editor) demotes Alice",
            await bob_http.patch(
                f"/v1/team/members/{alice_id}", json={"role": "viewer"}, headers=bob
            ),
        )
        _show(
            "Alice demotes herself",
            await alice_http.patch(
                f"/v1/team/members/{alice_id}", json={"role": "admin"}, headers=alice
            ),
        )
        _show(
            "Alice lists members",
            await alice_http.get("/v1/team/members", headers=alice),
        )


if __name__ == "__main__":
    asyncio.run(main())
