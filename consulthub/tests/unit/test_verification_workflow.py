from __future__ import annotations

import asyncio

import pytest

from consulthub.core.errors import NotFound
from consulthub.domain.models import Account
from consulthub.persistence.db import SessionLocal
from consulthub.persistence.repos.accounts import AccountStore
from consulthub.persistence.repos.profiles import list_kyc_documents
from consulthub.services.audit import list_events
from consulthub.services.auth.identity import IdentityResolver, ResolvedAccount
from consulthub.services.auth.token_verifier import VerifiedIdentity
from consulthub.services.onboarding import register_consultant, register_enterprise, submit_kyc_document
from consulthub.services.verification import verify_consultant, verify_enterprise
from consulthub.tests.utils.admin import create_test_admin


async def _user(subject: str, email: str) -> ResolvedAccount:
    return await IdentityResolver(AccountStore(SessionLocal)).resolve(
        VerifiedIdentity(subject_id=subject, email=email, email_verified=True)
    )


async def _pending_consultant(subject: str = "abc123", email: str = "a@x.com") -> tuple[str, str]:
    account = await _user(subject, email)
    async with SessionLocal() as session:
        profile = await register_consultant(session=session, account=account, domain="tax", hourly_price=120.0)
    consultant = await IdentityResolver(AccountStore(SessionLocal)).refresh(account.id)
    async with SessionLocal() as session:
        await submit_kyc_document(
            session=session,
            account=consultant,
            document_type="passport",
            document_url="https://files.example/passport.pdf",
        )
    return account.id, profile.id


async def test_registration_leaves_consultant_pending_and_unverified() -> None:
    account_id, consultant_id = await _pending_consultant()
    refreshed = await IdentityResolver(AccountStore(SessionLocal)).refresh(account_id)
    assert refreshed.role == "consultant"
    assert refreshed.is_verified is False
    assert refreshed.consultant_profile_id == consultant_id
    assert refreshed.consultant_status == "pending"


async def test_verify_consultant_is_idempotent_with_one_audit_event() -> None:
    account_id, consultant_id = await _pending_consultant()
    admin, _token = await create_test_admin()

    async with SessionLocal() as session:
        first = await verify_consultant(session=session, admin=admin, consultant_id=consultant_id)
    async with SessionLocal() as session:
        second = await verify_consultant(session=session, admin=admin, consultant_id=consultant_id)

    assert first.changed is True
    assert first.status == "verified"
    assert first.verified_by_admin_id == admin.id
    assert second.changed is False
    assert second.status == "verified"
    assert second.verified_at == first.verified_at

    async with SessionLocal() as session:
        events = await list_events(
            session,
            event_type="verification.consultant.verified",
            resource_id=consultant_id,
        )
        account = await session.get(Account, account_id)
        documents = await list_kyc_documents(session, consultant_id)
    assert len(events) == 1
    assert events[0].actor_id == admin.id
    assert account.is_verified is True
    assert [document.status for document in documents] == ["verified"]


async def test_concurrent_verifications_transition_once() -> None:
    _account_id, consultant_id = await _pending_consultant()
    admin, _token = await create_test_admin()

    async def _verify():
        async with SessionLocal() as session:
            return await verify_consultant(session=session, admin=admin, consultant_id=consultant_id)

    results = await asyncio.gather(_verify(), _verify())
    assert sorted(result.changed for result in results) == [False, True]
    async with SessionLocal() as session:
        events = await list_events(session, event_type="verification.consultant.verified")
    assert len(events) == 1


async def test_verify_unknown_consultant_is_not_found() -> None:
    admin, _token = await create_test_admin()
    async with SessionLocal() as session:
        with pytest.raises(NotFound):
            await verify_consultant(session=session, admin=admin, consultant_id="missing")


async def test_verify_enterprise_marks_owner_verified_and_keeps_notes() -> None:
    owner = await _user("own001", "owner@corp.com")
    async with SessionLocal() as session:
        enterprise = await register_enterprise(session=session, account=owner, name="Corp", industry="finance")
    admin, _token = await create_test_admin()

    async with SessionLocal() as session:
        first = await verify_enterprise(
            session=session,
            admin=admin,
            enterprise_id=enterprise.id,
            notes="registry checked",
        )
    async with SessionLocal() as session:
        second = await verify_enterprise(session=session, admin=admin, enterprise_id=enterprise.id, notes="again")

    assert first.changed is True
    assert second.changed is False
    refreshed = await IdentityResolver(AccountStore(SessionLocal)).refresh(owner.id)
    assert refreshed.role == "enterprise_owner"
    assert refreshed.is_verified is True
    assert refreshed.owned_enterprise_id == enterprise.id
    assert refreshed.enterprise_status == "verified"

    async with SessionLocal() as session:
        events = await list_events(session, event_type="verification.enterprise.verified")
    assert len(events) == 1
    assert events[0].metadata_json["notes"] == "registry checked"
