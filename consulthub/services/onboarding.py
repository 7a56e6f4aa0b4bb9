from __future__ import annotations

from datetime import datetime, timezone
import logging
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from consulthub.core.errors import Conflict, Forbidden, InvalidRequest, NotFound
from consulthub.domain.models import Account, ConsultantProfile, Enterprise, KycDocument
from consulthub.persistence.repos.profiles import (
    get_consultant_profile_for_account,
    get_enterprise_for_owner,
    list_kyc_documents,
)
from consulthub.services.auth.identity import ResolvedAccount
from consulthub.services.auth.roles import Role
from consulthub.services.verification import VerificationStatus


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    # Keep onboarding timestamps in UTC.
    return datetime.now(timezone.utc)


async def _load_account(session: AsyncSession, account_id: str) -> Account:
    account = await session.get(Account, account_id)
    if account is None:
        raise NotFound("Account not found")
    return account


async def register_consultant(
    *,
    session: AsyncSession,
    account: ResolvedAccount,
    domain: str,
    hourly_price: float,
    bio: str | None = None,
    languages: list[str] | None = None,
) -> ConsultantProfile:
    # Plain users become consultants; verification waits for an admin.
    if account.role not in {Role.USER.value, Role.CONSULTANT.value}:
        raise Forbidden("Only plain users can register as consultants")
    if not domain.strip():
        raise InvalidRequest("domain is required")
    if hourly_price <= 0:
        raise InvalidRequest("hourly_price must be positive")
    if await get_consultant_profile_for_account(session, account.id) is not None:
        raise Conflict("Consultant profile already exists")

    now = _utc_now()
    row = await _load_account(session, account.id)
    row.role = Role.CONSULTANT.value
    row.is_verified = False
    row.updated_at = now
    profile = ConsultantProfile(
        id=uuid4().hex,
        account_id=account.id,
        domain=domain.strip(),
        hourly_price=hourly_price,
        bio=bio,
        languages_json=languages or [],
        kyc_status=VerificationStatus.PENDING.value,
        created_at=now,
        updated_at=now,
    )
    session.add(profile)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise Conflict("Consultant profile already exists") from exc
    logger.info("consultant_registered account_id=%s consultant_id=%s", account.id, profile.id)
    return profile


async def get_own_consultant_profile(session: AsyncSession, account: ResolvedAccount) -> ConsultantProfile:
    profile = await get_consultant_profile_for_account(session, account.id)
    if profile is None:
        raise NotFound("Consultant profile not found")
    return profile


async def update_consultant_profile(
    *,
    session: AsyncSession,
    account: ResolvedAccount,
    domain: str | None = None,
    hourly_price: float | None = None,
    bio: str | None = None,
    languages: list[str] | None = None,
) -> ConsultantProfile:
    """Apply the supplied listing fields; omitted ones keep their value.

    Editing a listing leaves ``kyc_status`` where the admin put it.
    An empty ``bio`` clears it.
    """
    profile = await get_own_consultant_profile(session, account)
    if domain is not None:
        if not domain.strip():
            raise InvalidRequest("domain is required")
        profile.domain = domain.strip()
    if hourly_price is not None:
        if hourly_price <= 0:
            raise InvalidRequest("hourly_price must be positive")
        profile.hourly_price = hourly_price
    if bio is not None:
        profile.bio = bio or None
    if languages is not None:
        profile.languages_json = list(languages)
    profile.updated_at = _utc_now()
    await session.commit()
    logger.info("consultant_profile_updated account_id=%s consultant_id=%s", account.id, profile.id)
    return profile


async def submit_kyc_document(
    *,
    session: AsyncSession,
    account: ResolvedAccount,
    document_type: str,
    document_url: str,
) -> KycDocument:
    profile = await get_own_consultant_profile(session, account)
    document = KycDocument(
        id=uuid4().hex,
        consultant_id=profile.id,
        document_type=document_type,
        document_url=document_url,
        status=VerificationStatus.PENDING.value,
        submitted_at=_utc_now(),
    )
    session.add(document)
    await session.commit()
    logger.info("kyc_document_submitted consultant_id=%s document_id=%s", profile.id, document.id)
    return document


async def get_kyc_status(
    *,
    session: AsyncSession,
    account: ResolvedAccount,
) -> tuple[ConsultantProfile, list[KycDocument]]:
    profile = await get_own_consultant_profile(session, account)
    return profile, await list_kyc_documents(session, profile.id)


async def delete_kyc_document(*, session: AsyncSession, account: ResolvedAccount, document_id: str) -> None:
    # Verified documents back an admin decision and stay on file.
    profile = await get_own_consultant_profile(session, account)
    document = await session.get(KycDocument, document_id)
    if document is None or document.consultant_id != profile.id:
        raise NotFound("KYC document not found")
    if document.status != VerificationStatus.PENDING.value:
        raise Conflict("Verified KYC documents cannot be deleted")
    await session.delete(document)
    await session.commit()
    logger.info("kyc_document_deleted consultant_id=%s document_id=%s", profile.id, document_id)


async def register_enterprise(
    *,
    session: AsyncSession,
    account: ResolvedAccount,
    name: str,
    industry: str | None = None,
    website: str | None = None,
) -> Enterprise:
    # The registering account becomes the owner; members join later through invites.
    if account.role not in {Role.USER.value, Role.ENTERPRISE_OWNER.value}:
        raise Forbidden("Only plain users can register an enterprise")
    if not name.strip():
        raise InvalidRequest("name is required")
    if await get_enterprise_for_owner(session, account.id) is not None:
        raise Conflict("Enterprise already registered for this account")

    now = _utc_now()
    enterprise = Enterprise(
        id=uuid4().hex,
        owner_account_id=account.id,
        name=name.strip(),
        industry=industry,
        website=website,
        status=VerificationStatus.PENDING.value,
        created_at=now,
        updated_at=now,
    )
    row = await _load_account(session, account.id)
    row.role = Role.ENTERPRISE_OWNER.value
    row.is_verified = False
    row.enterprise_id = enterprise.id
    row.updated_at = now
    session.add(enterprise)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise Conflict("Enterprise already registered for this account") from exc
    logger.info("enterprise_registered account_id=%s enterprise_id=%s", account.id, enterprise.id)
    return enterprise
