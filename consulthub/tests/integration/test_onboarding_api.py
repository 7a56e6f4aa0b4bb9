from __future__ import annotations

from httpx import ASGITransport, AsyncClient

from consulthub.apps.api.main import create_app
from consulthub.persistence.db import SessionLocal
from consulthub.persistence.repos.accounts import AccountStore
from consulthub.services.audit import list_events
from consulthub.tests.utils.admin import create_test_admin
from consulthub.tests.utils.idp import bearer_headers, id_token_headers


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def test_consultant_registration_and_kyc_documents(fake_jwks) -> None:
    headers = id_token_headers("abc123", "a@x.com")
    async with _client(create_app()) as client:
        registered = await client.post(
            "/v1/consultants/register",
            headers=headers,
            json={"domain": "tax", "hourly_price": 120.5, "bio": "CPA", "languages": ["en"]},
        )
        duplicate = await client.post(
            "/v1/consultants/register",
            headers=headers,
            json={"domain": "tax", "hourly_price": 120.5},
        )
        document = await client.post(
            "/v1/consultants/kyc-documents",
            headers=headers,
            json={"document_type": "passport", "document_url": "https://files.example/p.pdf"},
        )
        status = await client.get("/v1/consultants/kyc-status", headers=headers)
        me = await client.get("/v1/auth/me", headers=headers)

    assert registered.status_code == 201
    profile = registered.json()["data"]
    assert profile["kyc_status"] == "pending"
    assert profile["hourly_price"] == 120.5
    assert profile["languages"] == ["en"]
    assert duplicate.status_code == 409
    assert document.status_code == 201
    assert document.json()["data"]["status"] == "pending"
    kyc = status.json()["data"]
    assert kyc["consultant_id"] == profile["id"]
    assert [doc["document_type"] for doc in kyc["documents"]] == ["passport"]
    assert me.json()["data"]["role"] == "consultant"
    assert me.json()["data"]["is_verified"] is False


async def test_consultant_registration_validates_payload(fake_jwks) -> None:
    async with _client(create_app()) as client:
        response = await client.post(
            "/v1/consultants/register",
            headers=id_token_headers("abc123", "a@x.com"),
            json={"domain": "tax", "hourly_price": -5},
        )
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "REQUEST_VALIDATION_ERROR"


async def test_enterprise_invite_lifecycle(fake_jwks) -> None:
    owner_headers = id_token_headers("own001", "owner@corp.com")
    member_headers = id_token_headers("mem001", "m@x.com")
    _admin, admin_token = await create_test_admin()
    async with _client(create_app()) as client:
        registered = await client.post("/v1/enterprises/register", headers=owner_headers, json={"name": "Corp"})
        enterprise_id = registered.json()["data"]["id"]

        # Owners cannot invite until an admin verifies the enterprise.
        blocked = await client.post("/v1/enterprises/invites", headers=owner_headers, json={"email": "m@x.com"})
        await client.put(f"/v1/admin/enterprises/{enterprise_id}/verify", headers=bearer_headers(admin_token))

        invited = await client.post(
            "/v1/enterprises/invites",
            headers=owner_headers,
            json={"email": "m@x.com", "name": "Mia"},
        )
        invite = invited.json()["data"]
        details = await client.get(f"/v1/enterprises/invites/{invite['invite_token']}")
        bad_password = await client.post(
            "/v1/enterprises/invites/accept",
            headers=member_headers,
            json={
                "invite_token": invite["invite_token"],
                "temp_username": invite["temp_username"],
                "temp_password": "nope",
            },
        )
        accepted = await client.post(
            "/v1/enterprises/invites/accept",
            headers=member_headers,
            json={
                "invite_token": invite["invite_token"],
                "temp_username": invite["temp_username"],
                "temp_password": invite["temp_password"],
            },
        )
        team = await client.get("/v1/enterprises/team", headers=owner_headers)
        member_me = await client.get("/v1/auth/me", headers=member_headers)
        member_team = await client.get("/v1/enterprises/team", headers=member_headers)

    assert registered.status_code == 201
    assert registered.json()["data"]["status"] == "pending"
    assert blocked.status_code == 403
    assert invited.status_code == 201
    assert details.status_code == 200
    assert details.json()["data"]["enterprise_name"] == "Corp"
    assert "temp_password" not in details.json()["data"]
    assert bad_password.status_code == 401
    assert accepted.status_code == 200
    assert accepted.json()["data"]["is_verified"] is True
    assert accepted.json()["data"]["invite_pending"] is False
    members = team.json()["data"]["members"]
    assert [member["email"] for member in members] == ["m@x.com"]
    assert member_me.json()["data"]["role"] == "enterprise_member"
    assert member_me.json()["data"]["enterprise_id"] == enterprise_id
    assert member_team.status_code == 403

    async with SessionLocal() as session:
        created_events = await list_events(session, event_type="enterprise.invite.created")
        accepted_events = await list_events(session, event_type="enterprise.invite.accepted")
    assert len(created_events) == 1
    assert "temp_password" not in created_events[0].metadata_json
    assert len(accepted_events) == 1


async def test_unknown_invite_is_not_found() -> None:
    async with _client(create_app()) as client:
        response = await client.get("/v1/enterprises/invites/missing-token")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


async def test_consultant_profile_read_update_and_kyc_delete(fake_jwks) -> None:
    headers = id_token_headers("abc123", "a@x.com")
    async with _client(create_app()) as client:
        missing = await client.get("/v1/consultants/profile", headers=headers)
        await client.post(
            "/v1/consultants/register",
            headers=headers,
            json={"domain": "tax", "hourly_price": 120.0, "bio": "CPA", "languages": ["en"]},
        )
        fetched = await client.get("/v1/consultants/profile", headers=headers)
        updated = await client.put(
            "/v1/consultants/profile",
            headers=headers,
            json={"hourly_price": 150.0, "languages": ["en", "fr"], "bio": ""},
        )
        invalid = await client.put("/v1/consultants/profile", headers=headers, json={"hourly_price": 0})
        document = await client.post(
            "/v1/consultants/kyc-documents",
            headers=headers,
            json={"document_type": "passport", "document_url": "https://files.example/p.pdf"},
        )
        document_id = document.json()["data"]["id"]
        deleted = await client.delete(f"/v1/consultants/kyc-documents/{document_id}", headers=headers)
        deleted_again = await client.delete(f"/v1/consultants/kyc-documents/{document_id}", headers=headers)
        status = await client.get("/v1/consultants/kyc-status", headers=headers)

    # Plain users have no consultant profile to read.
    assert missing.status_code == 403
    assert fetched.status_code == 200
    assert fetched.json()["data"]["domain"] == "tax"
    profile = updated.json()["data"]
    assert profile["domain"] == "tax"
    assert profile["hourly_price"] == 150.0
    assert profile["languages"] == ["en", "fr"]
    assert profile["bio"] is None
    assert profile["kyc_status"] == "pending"
    assert invalid.status_code == 422
    assert deleted.status_code == 200
    assert deleted.json()["data"] == {"id": document_id, "deleted": True}
    assert deleted_again.status_code == 404
    assert status.json()["data"]["documents"] == []

    async with SessionLocal() as session:
        events = await list_events(session, event_type="consultant.kyc_document.deleted")
    assert [event.resource_id for event in events] == [document_id]


async def test_verified_kyc_document_cannot_be_deleted(fake_jwks) -> None:
    headers = id_token_headers("abc123", "a@x.com")
    _admin, admin_token = await create_test_admin()
    async with _client(create_app()) as client:
        registered = await client.post(
            "/v1/consultants/register",
            headers=headers,
            json={"domain": "tax", "hourly_price": 120.0},
        )
        document = await client.post(
            "/v1/consultants/kyc-documents",
            headers=headers,
            json={"document_type": "passport", "document_url": "https://files.example/p.pdf"},
        )
        consultant_id = registered.json()["data"]["id"]
        await client.put(f"/v1/admin/consultants/{consultant_id}/verify", headers=bearer_headers(admin_token))
        response = await client.delete(
            f"/v1/consultants/kyc-documents/{document.json()['data']['id']}",
            headers=headers,
        )
    assert response.status_code == 409


async def _verified_enterprise_with_member(client: AsyncClient, owner_headers, member_headers) -> tuple[str, str]:
    _admin, admin_token = await create_test_admin()
    registered = await client.post("/v1/enterprises/register", headers=owner_headers, json={"name": "Corp"})
    enterprise_id = registered.json()["data"]["id"]
    await client.put(f"/v1/admin/enterprises/{enterprise_id}/verify", headers=bearer_headers(admin_token))
    invite = (
        await client.post("/v1/enterprises/invites", headers=owner_headers, json={"email": "m@x.com", "name": "Mia"})
    ).json()["data"]
    await client.post(
        "/v1/enterprises/invites/accept",
        headers=member_headers,
        json={
            "invite_token": invite["invite_token"],
            "temp_username": invite["temp_username"],
            "temp_password": invite["temp_password"],
        },
    )
    return enterprise_id, invite["account_id"]


async def test_owner_edits_and_removes_team_members(fake_jwks) -> None:
    owner_headers = id_token_headers("own001", "owner@corp.com")
    member_headers = id_token_headers("mem001", "m@x.com")
    async with _client(create_app()) as client:
        _enterprise_id, member_id = await _verified_enterprise_with_member(client, owner_headers, member_headers)
        renamed = await client.patch(f"/v1/enterprises/team/{member_id}", headers=owner_headers, json={"name": "Mia R"})
        email_change = await client.patch(
            f"/v1/enterprises/team/{member_id}",
            headers=owner_headers,
            json={"email": "other@x.com"},
        )
        by_member = await client.patch(f"/v1/enterprises/team/{member_id}", headers=member_headers, json={"name": "X"})
        unknown = await client.delete("/v1/enterprises/team/missing", headers=owner_headers)
        removed = await client.delete(f"/v1/enterprises/team/{member_id}", headers=owner_headers)
        team = await client.get("/v1/enterprises/team", headers=owner_headers)
        member_me = await client.get("/v1/auth/me", headers=member_headers)

    assert renamed.status_code == 200
    assert renamed.json()["data"]["name"] == "Mia R"
    # The member already signed in, so the email belongs to the identity provider.
    assert email_change.status_code == 409
    assert by_member.status_code == 403
    assert unknown.status_code == 404
    assert removed.status_code == 200
    assert removed.json()["data"] == {"id": member_id, "deleted": False}
    assert team.json()["data"]["members"] == []
    assert member_me.json()["data"]["id"] == member_id
    assert member_me.json()["data"]["role"] == "user"
    assert member_me.json()["data"]["enterprise_id"] is None

    async with SessionLocal() as session:
        updated_events = await list_events(session, event_type="enterprise.member.updated")
        removed_events = await list_events(session, event_type="enterprise.member.removed")
    assert updated_events[0].metadata_json["fields"] == ["name"]
    assert removed_events[0].metadata_json["deleted"] is False


async def test_removing_pending_member_deletes_the_account(fake_jwks) -> None:
    owner_headers = id_token_headers("own001", "owner@corp.com")
    _admin, admin_token = await create_test_admin()
    async with _client(create_app()) as client:
        registered = await client.post("/v1/enterprises/register", headers=owner_headers, json={"name": "Corp"})
        enterprise_id = registered.json()["data"]["id"]
        await client.put(f"/v1/admin/enterprises/{enterprise_id}/verify", headers=bearer_headers(admin_token))
        invite = (
            await client.post("/v1/enterprises/invites", headers=owner_headers, json={"email": "p@x.com"})
        ).json()["data"]
        corrected = await client.patch(
            f"/v1/enterprises/team/{invite['account_id']}",
            headers=owner_headers,
            json={"email": "pat@x.com"},
        )
        removed = await client.delete(f"/v1/enterprises/team/{invite['account_id']}", headers=owner_headers)

    # No identity is linked yet, so the owner may still correct the address.
    assert corrected.status_code == 200
    assert corrected.json()["data"]["email"] == "pat@x.com"
    assert removed.json()["data"] == {"id": invite["account_id"], "deleted": True}
    assert await AccountStore(SessionLocal).find_by_email("pat@x.com") is None
