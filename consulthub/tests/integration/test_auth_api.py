from __future__ import annotations

from httpx import ASGITransport, AsyncClient

from consulthub.apps.api.main import create_app
from consulthub.core.config import get_settings
from consulthub.persistence.db import SessionLocal
from consulthub.persistence.repos.accounts import AccountStore
from consulthub.services.audit import list_events
from consulthub.tests.utils.idp import bearer_headers, id_token_headers, mint_id_token


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def test_health_reports_auth_mode() -> None:
    async with _client(create_app()) as client:
        response = await client.get("/v1/health", headers={"X-Request-Id": "req-health"})
    assert response.status_code == 200
    body = response.json()
    assert body["data"] == {"status": "ok", "auth_mode": "production"}
    assert body["meta"]["request_id"] == "req-health"
    assert response.headers["X-Request-Id"] == "req-health"


async def test_missing_bearer_is_rejected_and_audited(fake_jwks) -> None:
    async with _client(create_app()) as client:
        response = await client.get("/v1/auth/me")
    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"
    assert response.json()["error"]["code"] == "AUTH_MISSING_CREDENTIAL"
    async with SessionLocal() as session:
        events = await list_events(session, event_type="auth.access.failure")
    assert len(events) == 1
    assert events[0].error_code == "AUTH_MISSING_CREDENTIAL"


async def test_invalid_token_is_rejected(fake_jwks) -> None:
    async with _client(create_app()) as client:
        response = await client.get("/v1/auth/me", headers=bearer_headers("garbage"))
        wrong_audience = mint_id_token(subject="abc123", email="a@x.com", audience="other-project")
        rejected = await client.get("/v1/auth/me", headers=bearer_headers(wrong_audience))
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTH_INVALID_CREDENTIAL"
    assert rejected.status_code == 401
    assert rejected.json()["error"]["code"] == "AUTH_INVALID_CREDENTIAL"


async def test_sync_creates_then_returns_existing_account(fake_jwks) -> None:
    headers = id_token_headers("abc123", "a@x.com", name="Ada")
    async with _client(create_app()) as client:
        created = await client.post("/v1/auth/sync", headers=headers)
        repeated = await client.post("/v1/auth/sync", headers=headers)
        me = await client.get("/v1/auth/me", headers=headers)

    assert created.status_code == 200
    first = created.json()["data"]
    assert first["resolution"] == "created"
    assert first["account"]["role"] == "user"
    assert first["account"]["is_verified"] is True
    second = repeated.json()["data"]
    assert second["resolution"] == "existing"
    assert second["account"]["id"] == first["account"]["id"]
    assert me.json()["data"]["id"] == first["account"]["id"]

    async with SessionLocal() as session:
        events = await list_events(session, event_type="identity.account.created")
    assert len(events) == 1
    assert events[0].resource_id == first["account"]["id"]


async def test_sync_links_preprovisioned_account(fake_jwks) -> None:
    seeded = await AccountStore(SessionLocal).create(email="b@x.com")
    async with _client(create_app()) as client:
        response = await client.post("/v1/auth/sync", headers=id_token_headers("def456", "b@x.com"))
    data = response.json()["data"]
    assert data["resolution"] == "linked"
    assert data["account"]["id"] == seeded.id
    assert data["account"]["subject_id"] == "def456"


async def test_unconfirmed_email_cannot_claim_preprovisioned_account(fake_jwks) -> None:
    seeded = await AccountStore(SessionLocal).create(email="victim@x.com")
    async with _client(create_app()) as client:
        hijack = await client.post(
            "/v1/auth/sync",
            headers=id_token_headers("attacker", "victim@x.com", email_verified=False),
        )
        owner = await client.post("/v1/auth/sync", headers=id_token_headers("real-victim", "victim@x.com"))

    assert hijack.status_code == 403
    assert hijack.json()["error"]["code"] == "IDENTITY_EMAIL_UNVERIFIED"
    assert owner.status_code == 200
    assert owner.json()["data"]["account"]["id"] == seeded.id
    assert owner.json()["data"]["account"]["subject_id"] == "real-victim"
    async with SessionLocal() as session:
        failures = await list_events(session, event_type="auth.access.failure")
    assert [event.error_code for event in failures] == ["IDENTITY_EMAIL_UNVERIFIED"]


async def test_sync_updates_display_name(fake_jwks) -> None:
    headers = id_token_headers("abc123", "a@x.com")
    async with _client(create_app()) as client:
        response = await client.post("/v1/auth/sync", headers=headers, json={"name": "Ada Lovelace"})
    assert response.status_code == 200
    assert response.json()["data"]["account"]["name"] == "Ada Lovelace"


async def test_token_without_email_is_bad_request(fake_jwks) -> None:
    async with _client(create_app()) as client:
        response = await client.post("/v1/auth/sync", headers=id_token_headers("abc123", None))
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "IDENTITY_MISSING_EMAIL"


async def test_consultant_route_forbids_plain_user(fake_jwks) -> None:
    async with _client(create_app()) as client:
        response = await client.get("/v1/consultants/kyc-status", headers=id_token_headers("abc123", "a@x.com"))
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "AUTH_FORBIDDEN"
    async with SessionLocal() as session:
        events = await list_events(session, event_type="rbac.forbidden")
    assert len(events) == 1


async def test_email_header_ignored_in_production_mode(fake_jwks) -> None:
    await AccountStore(SessionLocal).create(email="a@x.com")
    async with _client(create_app()) as client:
        response = await client.get("/v1/auth/me", headers={"x-user-email": "a@x.com"})
    assert response.status_code == 401


async def test_degraded_mode_trusts_email_header_for_existing_accounts(monkeypatch) -> None:
    # Fallback mode is chosen at startup and never creates accounts.
    monkeypatch.setenv("AUTH_MODE", "degraded_fallback")
    get_settings.cache_clear()
    account = await AccountStore(SessionLocal).create(email="a@x.com", is_verified=True)
    app = create_app()
    async with _client(app) as client:
        health = await client.get("/v1/health")
        known = await client.get("/v1/auth/me", headers={"x-user-email": "A@x.com"})
        unknown = await client.get("/v1/auth/me", headers={"x-user-email": "ghost@x.com"})
    assert health.json()["data"]["auth_mode"] == "degraded_fallback"
    assert known.status_code == 200
    assert known.json()["data"]["id"] == account.id
    assert unknown.status_code == 404
    assert unknown.json()["error"]["code"] == "ACCOUNT_NOT_FOUND"


class _CountingSessionFactory:
    # Wraps the test session factory to show which sessions the app opened through it.
    def __init__(self) -> None:
        self.opened = 0

    def __call__(self):
        self.opened += 1
        return SessionLocal()


async def test_app_uses_injected_session_factory(fake_jwks) -> None:
    factory = _CountingSessionFactory()
    app = create_app(session_factory=factory)
    assert app.state.session_factory is factory
    async with _client(app) as client:
        rejected = await client.get("/v1/auth/me")
        after_audit = factory.opened
        synced = await client.post("/v1/auth/sync", headers=id_token_headers("abc123", "a@x.com"))

    assert rejected.status_code == 401
    # The failed-auth audit row was written through the injected factory.
    assert after_audit >= 1
    assert synced.status_code == 200
    # Store lookups and the sync route's request session come from the same factory.
    assert factory.opened > after_audit
