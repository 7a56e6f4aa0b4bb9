from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
import re
import secrets
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from consulthub.core.config import Settings
from consulthub.core.errors import Conflict, Forbidden, InviteExpired, NotFound, Unauthorized
from consulthub.domain.models import Account, Enterprise
from consulthub.persistence.repos.accounts import normalize_email
from consulthub.persistence.repos.profiles import (
    get_account_by_invite_token,
    get_enterprise,
    list_enterprise_members,
)
from consulthub.services.auth.identity import ResolvedAccount
from consulthub.services.auth.passwords import generate_temp_password, hash_password, verify_password
from consulthub.services.auth.roles import Role


logger = logging.getLogger(__name__)

_USERNAME_CLEANUP = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class IssuedInvite:
    account: Account
    enterprise: Enterprise
    invite_token: str
    expires_at: datetime
    temp_username: str
    # Returned once to the inviting owner; only the hash is stored.
    temp_password: str


def _utc_now() -> datetime:
    # Keep invite expiry comparisons in UTC.
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite returns naive datetimes; treat them as UTC.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def generate_temp_username(seed: str) -> str:
    base = _USERNAME_CLEANUP.sub("", seed.lower())[:16] or "member"
    return f"{base}_{secrets.token_hex(3)}"


async def _owned_enterprise(session: AsyncSession, owner: ResolvedAccount) -> Enterprise:
    if not owner.owned_enterprise_id:
        raise Forbidden("Only enterprise owners can manage members")
    enterprise = await get_enterprise(session, owner.owned_enterprise_id)
    if enterprise is None:
        raise NotFound("Enterprise not found")
    return enterprise


async def create_invite(
    *,
    session: AsyncSession,
    owner: ResolvedAccount,
    email: str,
    name: str | None,
    settings: Settings,
) -> IssuedInvite:
    """Create or refresh a pending enterprise-member account for ``email``.

    Existing plain users are converted in place and a pending invite is
    reissued with fresh credentials. Any other existing account is
    rejected with ``Conflict``.
    """
    enterprise = await _owned_enterprise(session, owner)
    normalized = normalize_email(email)
    if normalized == owner.email:
        raise Conflict("Owners cannot invite themselves")

    now = _utc_now()
    invite_token = secrets.token_urlsafe(32)
    expires_at = now + timedelta(days=settings.invite_ttl_days)
    temp_username = generate_temp_username(name or normalized.split("@", 1)[0])
    temp_password = generate_temp_password(settings.temp_password_length)

    member = (await session.execute(select(Account).where(Account.email == normalized))).scalar_one_or_none()
    if member is None:
        member = Account(
            id=uuid4().hex,
            email=normalized,
            name=name,
            role=Role.ENTERPRISE_MEMBER.value,
            is_verified=False,
            enterprise_id=enterprise.id,
            created_at=now,
        )
        session.add(member)
    else:
        same_enterprise = member.enterprise_id == enterprise.id
        if member.role == Role.ENTERPRISE_MEMBER.value and not same_enterprise:
            raise Conflict("Account already belongs to another enterprise")
        if member.role not in {Role.USER.value, Role.ENTERPRISE_MEMBER.value}:
            raise Conflict("Account already holds a role that cannot join an enterprise")
        if same_enterprise and member.role == Role.ENTERPRISE_MEMBER.value and member.invite_token is None:
            # Accepted members keep their standing; only pending invites are reissued.
            raise Conflict("Account is already an active member of this enterprise")
        member.role = Role.ENTERPRISE_MEMBER.value
        member.enterprise_id = enterprise.id
        member.is_verified = False
        if name:
            member.name = name

    member.temp_username = temp_username
    member.temp_password_hash = hash_password(temp_password)
    member.invite_token = invite_token
    member.invite_expires_at = expires_at
    member.updated_at = now
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise Conflict("Invite collided with an existing account") from exc
    logger.info(
        "enterprise_invite_created enterprise_id=%s account_id=%s email=%s",
        enterprise.id,
        member.id,
        normalized,
    )
    return IssuedInvite(
        account=member,
        enterprise=enterprise,
        invite_token=invite_token,
        expires_at=expires_at,
        temp_username=temp_username,
        temp_password=temp_password,
    )


async def get_invite(*, session: AsyncSession, invite_token: str) -> tuple[Account, Enterprise]:
    account = await get_account_by_invite_token(session, invite_token)
    if account is None or account.enterprise_id is None:
        raise NotFound("Invite not found")
    if account.invite_expires_at is None or _as_utc(account.invite_expires_at) <= _utc_now():
        raise InviteExpired("Invite has expired")
    enterprise = await get_enterprise(session, account.enterprise_id)
    if enterprise is None:
        raise NotFound("Invite not found")
    return account, enterprise


async def accept_invite(
    *,
    session: AsyncSession,
    account: ResolvedAccount,
    invite_token: str,
    temp_username: str,
    temp_password: str,
) -> Account:
    # The caller's resolved account must be the invited one; temp credentials prove receipt.
    invited, _enterprise = await get_invite(session=session, invite_token=invite_token)
    if invited.id != account.id:
        logger.warning(
            "enterprise_invite_account_mismatch invite_account_id=%s caller_account_id=%s",
            invited.id,
            account.id,
        )
        raise Forbidden("Invite was issued to a different email")
    if invited.temp_username != temp_username or not verify_password(temp_password, invited.temp_password_hash):
        logger.info("enterprise_invite_bad_credentials account_id=%s", invited.id)
        raise Unauthorized("Invalid temporary credentials")
    if invited.subject_id is None and account.subject_id is not None:
        invited.subject_id = account.subject_id
    invited.is_verified = True
    invited.invite_token = None
    invited.invite_expires_at = None
    invited.temp_username = None
    invited.temp_password_hash = None
    invited.updated_at = _utc_now()
    await session.commit()
    logger.info("enterprise_invite_accepted account_id=%s enterprise_id=%s", invited.id, invited.enterprise_id)
    return invited


async def list_team(*, session: AsyncSession, owner: ResolvedAccount) -> tuple[Enterprise, list[Account]]:
    enterprise = await _owned_enterprise(session, owner)
    return enterprise, await list_enterprise_members(session, enterprise.id)


async def _team_member(session: AsyncSession, enterprise: Enterprise, member_id: str) -> Account:
    member = await session.get(Account, member_id)
    if member is None or member.enterprise_id != enterprise.id or member.role != Role.ENTERPRISE_MEMBER.value:
        raise NotFound("Team member not found")
    return member


async def update_member(
    *,
    session: AsyncSession,
    owner: ResolvedAccount,
    member_id: str,
    name: str | None = None,
    email: str | None = None,
) -> Account:
    """Edit a member's display name or, while no identity is linked, their email.

    Once the member has signed in, the email belongs to the identity
    provider and changing it here raises ``Conflict``.
    """
    enterprise = await _owned_enterprise(session, owner)
    member = await _team_member(session, enterprise, member_id)
    if name is not None and name.strip():
        member.name = name.strip()
    if email is not None:
        normalized = normalize_email(email)
        if normalized != member.email:
            if member.subject_id is not None:
                raise Conflict("Email of a signed-in member cannot be changed")
            member.email = normalized
    member.updated_at = _utc_now()
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise Conflict("Email already belongs to another account") from exc
    logger.info("enterprise_member_updated enterprise_id=%s account_id=%s", enterprise.id, member.id)
    return member


async def remove_member(*, session: AsyncSession, owner: ResolvedAccount, member_id: str) -> bool:
    """Take a member out of the owner's enterprise.

    Accounts that never signed in are deleted. Linked accounts keep their
    identity and become plain users. Returns True when the row was deleted.
    """
    enterprise = await _owned_enterprise(session, owner)
    member = await _team_member(session, enterprise, member_id)
    deleted = member.subject_id is None
    if deleted:
        await session.delete(member)
    else:
        member.role = Role.USER.value
        member.enterprise_id = None
        member.is_verified = True
        member.invite_token = None
        member.invite_expires_at = None
        member.temp_username = None
        member.temp_password_hash = None
        member.updated_at = _utc_now()
    await session.commit()
    logger.info(
        "enterprise_member_removed enterprise_id=%s account_id=%s deleted=%s",
        enterprise.id,
        member_id,
        deleted,
    )
    return deleted
