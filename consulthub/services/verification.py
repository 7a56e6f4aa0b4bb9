from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
import logging

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from consulthub.core.errors import NotFound
from consulthub.domain.models import Account, AdminAccount, ConsultantProfile, Enterprise, KycDocument
from consulthub.persistence.repos.profiles import get_consultant_profile, get_enterprise
from consulthub.services.audit import record_event


logger = logging.getLogger(__name__)


class VerificationStatus(str, Enum):
    # No rejected state exists; an unapproved entity simply stays pending.
    PENDING = "pending"
    VERIFIED = "verified"


@dataclass(frozen=True)
class VerificationResult:
    entity_type: str
    entity_id: str
    status: str
    verified_at: datetime | None
    verified_by_admin_id: str | None
    changed: bool


def _utc_now() -> datetime:
    # Keep verification timestamps in UTC.
    return datetime.now(timezone.utc)


async def _mark_owner_verified(session: AsyncSession, account_id: str, now: datetime) -> None:
    await session.execute(
        update(Account).where(Account.id == account_id).values(is_verified=True, updated_at=now)
    )


async def verify_consultant(
    *,
    session: AsyncSession,
    admin: AdminAccount,
    consultant_id: str,
    request: Request | None = None,
) -> VerificationResult:
    """Move a consultant profile from pending to verified.

    The conditional update only matches pending rows, so a repeat or
    concurrent verify is a no-op that returns the current state.
    """
    now = _utc_now()
    result = await session.execute(
        update(ConsultantProfile)
        .where(
            ConsultantProfile.id == consultant_id,
            ConsultantProfile.kyc_status == VerificationStatus.PENDING.value,
        )
        .values(
            kyc_status=VerificationStatus.VERIFIED.value,
            verified_at=now,
            verified_by_admin_id=admin.id,
            updated_at=now,
        )
    )
    changed = result.rowcount == 1
    if changed:
        profile = await get_consultant_profile(session, consultant_id)
        await session.execute(
            update(KycDocument)
            .where(
                KycDocument.consultant_id == consultant_id,
                KycDocument.status == VerificationStatus.PENDING.value,
            )
            .values(status=VerificationStatus.VERIFIED.value)
        )
        await _mark_owner_verified(session, profile.account_id, now)
        await record_event(
            session=session,
            actor_type="admin",
            actor_id=admin.id,
            actor_role="admin",
            event_type="verification.consultant.verified",
            outcome="success",
            resource_type="consultant_profile",
            resource_id=consultant_id,
            request=request,
            metadata={"account_id": profile.account_id},
        )
        await session.commit()
        logger.info("consultant_verified consultant_id=%s admin_id=%s", consultant_id, admin.id)
    else:
        await session.rollback()

    profile = await get_consultant_profile(session, consultant_id)
    if profile is None:
        raise NotFound("Consultant not found")
    if not changed:
        logger.info("consultant_verify_noop consultant_id=%s status=%s", consultant_id, profile.kyc_status)
    # Reload so the response reflects the committed row rather than the identity map.
    await session.refresh(profile)
    return VerificationResult(
        entity_type="consultant",
        entity_id=profile.id,
        status=profile.kyc_status,
        verified_at=profile.verified_at,
        verified_by_admin_id=profile.verified_by_admin_id,
        changed=changed,
    )


async def verify_enterprise(
    *,
    session: AsyncSession,
    admin: AdminAccount,
    enterprise_id: str,
    notes: str | None = None,
    request: Request | None = None,
) -> VerificationResult:
    # Same conditional-update shape as consultants; notes are only written on the transition.
    now = _utc_now()
    result = await session.execute(
        update(Enterprise)
        .where(
            Enterprise.id == enterprise_id,
            Enterprise.status == VerificationStatus.PENDING.value,
        )
        .values(
            status=VerificationStatus.VERIFIED.value,
            verification_notes=notes,
            verified_at=now,
            verified_by_admin_id=admin.id,
            updated_at=now,
        )
    )
    changed = result.rowcount == 1
    if changed:
        enterprise = await get_enterprise(session, enterprise_id)
        await _mark_owner_verified(session, enterprise.owner_account_id, now)
        await record_event(
            session=session,
            actor_type="admin",
            actor_id=admin.id,
            actor_role="admin",
            event_type="verification.enterprise.verified",
            outcome="success",
            resource_type="enterprise",
            resource_id=enterprise_id,
            request=request,
            metadata={"owner_account_id": enterprise.owner_account_id, "notes": notes},
        )
        await session.commit()
        logger.info("enterprise_verified enterprise_id=%s admin_id=%s", enterprise_id, admin.id)
    else:
        await session.rollback()

    enterprise = await get_enterprise(session, enterprise_id)
    if enterprise is None:
        raise NotFound("Enterprise not found")
    if not changed:
        logger.info("enterprise_verify_noop enterprise_id=%s status=%s", enterprise_id, enterprise.status)
    await session.refresh(enterprise)
    return VerificationResult(
        entity_type="enterprise",
        entity_id=enterprise.id,
        status=enterprise.status,
        verified_at=enterprise.verified_at,
        verified_by_admin_id=enterprise.verified_by_admin_id,
        changed=changed,
    )
