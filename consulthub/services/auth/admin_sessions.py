from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging

import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from consulthub.core.config import Settings
from consulthub.core.errors import Conflict, InvalidRequest, Unauthorized
from consulthub.domain.models import AdminAccount
from consulthub.persistence.repos.admins import create_admin, get_admin, get_admin_by_email
from consulthub.services.auth.passwords import hash_password, validate_password, verify_password


logger = logging.getLogger(__name__)

ADMIN_TOKEN_TYPE = "admin"
# Verified against a throwaway hash so unknown emails cost the same as bad passwords.
_DUMMY_HASH = hash_password("consulthub-timing-guard")


def _utc_now() -> datetime:
    # Keep admin session timestamps in UTC for consistent expiry checks.
    return datetime.now(timezone.utc)


def issue_admin_token(
    admin_id: str,
    *,
    settings: Settings,
    now: datetime | None = None,
) -> tuple[str, datetime]:
    # Expiry is fixed at issuance; there is no refresh path.
    issued_at = now or _utc_now()
    expires_at = issued_at + timedelta(minutes=settings.admin_session_ttl_minutes)
    payload = {
        "sub": admin_id,
        "typ": ADMIN_TOKEN_TYPE,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    token = jwt.encode(payload, settings.admin_jwt_secret, algorithm=settings.admin_jwt_algorithm)
    return token, expires_at


def decode_admin_token(token: str, *, settings: Settings) -> str:
    try:
        claims = jwt.decode(
            token,
            settings.admin_jwt_secret,
            algorithms=[settings.admin_jwt_algorithm],
            options={"require": ["exp", "iat", "sub"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise Unauthorized("Admin session expired") from exc
    except jwt.InvalidTokenError as exc:
        raise Unauthorized("Invalid admin session token") from exc
    if claims.get("typ") != ADMIN_TOKEN_TYPE:
        raise Unauthorized("Invalid admin session token")
    return str(claims["sub"])


def parse_admin_bearer(header_value: str | None) -> str:
    if not header_value:
        raise Unauthorized("No admin token provided")
    parts = header_value.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise Unauthorized("Admin token must use the Bearer scheme")
    return parts[1]


async def resolve_admin_session(
    *,
    session: AsyncSession,
    header_value: str | None,
    settings: Settings,
) -> AdminAccount:
    # Every admin operation needs a live token that maps to an existing admin.
    admin_id = decode_admin_token(parse_admin_bearer(header_value), settings=settings)
    admin = await get_admin(session, admin_id)
    if admin is None:
        logger.warning("admin_session_orphaned admin_id=%s", admin_id)
        raise Unauthorized("Admin not found")
    return admin


async def signup_admin(
    *,
    session: AsyncSession,
    email: str,
    password: str,
    name: str,
    settings: Settings,
    commit: bool = True,
) -> AdminAccount:
    problems = validate_password(password, min_length=settings.admin_password_min_length)
    if problems:
        raise InvalidRequest("Password " + ", ".join(problems))
    if await get_admin_by_email(session, email) is not None:
        raise Conflict("Admin with this email already exists")
    admin = await create_admin(
        session,
        email=email,
        password_hash=hash_password(password),
        name=name,
        commit=commit,
    )
    logger.info("admin_created admin_id=%s email=%s", admin.id, admin.email)
    return admin


async def authenticate_admin(
    *,
    session: AsyncSession,
    email: str,
    password: str,
) -> AdminAccount:
    admin = await get_admin_by_email(session, email)
    if admin is None:
        verify_password(password, _DUMMY_HASH)
        logger.info("admin_signin_failed email=%s reason=unknown_email", email)
        raise Unauthorized("Invalid email or password")
    if not verify_password(password, admin.password_hash):
        logger.info("admin_signin_failed email=%s reason=bad_password", email)
        raise Unauthorized("Invalid email or password")
    admin.last_login_at = _utc_now()
    await session.commit()
    return admin
