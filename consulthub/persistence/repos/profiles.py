from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from consulthub.domain.models import Account, ConsultantProfile, Enterprise, KycDocument


async def get_consultant_profile(session: AsyncSession, consultant_id: str) -> ConsultantProfile | None:
    return await session.get(ConsultantProfile, consultant_id)


async def get_consultant_profile_for_account(
    session: AsyncSession, account_id: str
) -> ConsultantProfile | None:
    result = await session.execute(
        select(ConsultantProfile).where(ConsultantProfile.account_id == account_id)
    )
    return result.scalar_one_or_none()


async def list_kyc_documents(session: AsyncSession, consultant_id: str) -> list[KycDocument]:
    result = await session.execute(
        select(KycDocument)
        .where(KycDocument.consultant_id == consultant_id)
        .order_by(KycDocument.submitted_at.asc(), KycDocument.id.asc())
    )
    return list(result.scalars().all())


async def list_consultants_by_status(
    session: AsyncSession, status: str
) -> list[tuple[ConsultantProfile, Account]]:
    # Join owners so admin listings can show who submitted each profile.
    result = await session.execute(
        select(ConsultantProfile, Account)
        .join(Account, Account.id == ConsultantProfile.account_id)
        .where(ConsultantProfile.kyc_status == status)
        .order_by(ConsultantProfile.created_at.asc(), ConsultantProfile.id.asc())
    )
    return [(profile, account) for profile, account in result.all()]


async def get_enterprise(session: AsyncSession, enterprise_id: str) -> Enterprise | None:
    return await session.get(Enterprise, enterprise_id)


async def get_enterprise_for_owner(session: AsyncSession, account_id: str) -> Enterprise | None:
    result = await session.execute(select(Enterprise).where(Enterprise.owner_account_id == account_id))
    return result.scalar_one_or_none()


async def list_enterprises(
    session: AsyncSession, status: str | None = None
) -> list[tuple[Enterprise, Account]]:
    statement = select(Enterprise, Account).join(Account, Account.id == Enterprise.owner_account_id)
    if status is not None:
        statement = statement.where(Enterprise.status == status)
    result = await session.execute(statement.order_by(Enterprise.created_at.asc(), Enterprise.id.asc()))
    return [(enterprise, owner) for enterprise, owner in result.all()]


async def list_enterprise_members(session: AsyncSession, enterprise_id: str) -> list[Account]:
    result = await session.execute(
        select(Account)
        .where(Account.enterprise_id == enterprise_id, Account.role == "enterprise_member")
        .order_by(Account.created_at.asc(), Account.id.asc())
    )
    return list(result.scalars().all())


async def get_account_by_invite_token(session: AsyncSession, invite_token: str) -> Account | None:
    result = await session.execute(select(Account).where(Account.invite_token == invite_token))
    return result.scalar_one_or_none()
