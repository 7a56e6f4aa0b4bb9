from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from consulthub.core.errors import Conflict
from consulthub.domain.models import AdminAccount
from consulthub.persistence.repos.accounts import normalize_email


async def get_admin(session: AsyncSession, admin_id: str) -> AdminAccount | None:
    return await session.get(AdminAccount, admin_id)


async def get_admin_by_email(session: AsyncSession, email: str) -> AdminAccount | None:
    result = await session.execute(
        select(AdminAccount).where(AdminAccount.email == normalize_email(email))
    )
    return result.scalar_one_or_none()


async def create_admin(
    session: AsyncSession,
    *,
    email: str,
    password_hash: str,
    name: str,
    commit: bool = True,
) -> AdminAccount:
    admin = AdminAccount(
        id=uuid4().hex,
        email=normalize_email(email),
        password_hash=password_hash,
        name=name,
        created_at=datetime.now(timezone.utc),
    )
    session.add(admin)
    try:
        # Flush only when the caller commits it together with its own writes.
        if commit:
            await session.commit()
        else:
            await session.flush()
    except IntegrityError as exc:
        # The unique email index settles concurrent signups for the same address.
        await session.rollback()
        raise Conflict("Admin with this email already exists") from exc
    return admin
