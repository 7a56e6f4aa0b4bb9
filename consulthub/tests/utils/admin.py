from __future__ import annotations

from consulthub.core.config import get_settings
from consulthub.domain.models import AdminAccount
from consulthub.persistence.db import SessionLocal
from consulthub.services.auth.admin_sessions import issue_admin_token, signup_admin


async def create_test_admin(
    *,
    email: str = "ops@example.com",
    password: str = "Operator123",
    name: str = "Ops",
) -> tuple[AdminAccount, str]:
    # Provision an admin plus a live session token for admin route tests.
    settings = get_settings()
    async with SessionLocal() as session:
        admin = await signup_admin(
            session=session,
            email=email,
            password=password,
            name=name,
            settings=settings,
        )
    token, _expires_at = issue_admin_token(admin.id, settings=settings)
    return admin, token
