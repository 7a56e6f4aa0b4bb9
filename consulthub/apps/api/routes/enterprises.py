from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from consulthub.apps.api.deps import get_current_account, get_db, require_account
from consulthub.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from consulthub.apps.api.response import SuccessEnvelope, success_response
from consulthub.core.config import get_settings
from consulthub.domain.models import Account, Enterprise
from consulthub.services.audit import record_event
from consulthub.services.auth.identity import ResolvedAccount
from consulthub.services.auth.roles import is_enterprise_owner, is_verified
from consulthub.services.invites import (
    accept_invite,
    create_invite,
    get_invite,
    list_team,
    remove_member,
    update_member,
)
from consulthub.services.onboarding import register_enterprise


router = APIRouter(prefix="/enterprises", tags=["enterprises"], responses=DEFAULT_ERROR_RESPONSES)


class EnterpriseRegisterRequest(BaseModel):
    name: str = Field(min_length=1, max_length=256)
    industry: str | None = Field(default=None, max_length=128)
    website: str | None = Field(default=None, max_length=2048)


class EnterpriseResponse(BaseModel):
    id: str
    owner_account_id: str
    name: str
    industry: str | None
    website: str | None
    status: str
    verified_at: datetime | None


class InviteRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")
    name: str | None = Field(default=None, max_length=128)


class InviteCreatedResponse(BaseModel):
    account_id: str
    email: str
    invite_token: str
    expires_at: datetime
    temp_username: str
    temp_password: str


class InviteDetailsResponse(BaseModel):
    email: str
    name: str | None
    enterprise_id: str
    enterprise_name: str
    expires_at: datetime | None


class AcceptInviteRequest(BaseModel):
    invite_token: str = Field(min_length=1)
    temp_username: str = Field(min_length=1)
    temp_password: str = Field(min_length=1)


class MemberResponse(BaseModel):
    id: str
    email: str
    name: str | None
    is_verified: bool
    invite_pending: bool


class MemberUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=128)
    email: str | None = Field(default=None, min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")


class MemberRemovedResponse(BaseModel):
    id: str
    # False when the account was kept as a plain user because it had already signed in.
    deleted: bool


class TeamResponse(BaseModel):
    enterprise_id: str
    members: list[MemberResponse]


def enterprise_payload(enterprise: Enterprise) -> EnterpriseResponse:
    return EnterpriseResponse(
        id=enterprise.id,
        owner_account_id=enterprise.owner_account_id,
        name=enterprise.name,
        industry=enterprise.industry,
        website=enterprise.website,
        status=enterprise.status,
        verified_at=enterprise.verified_at,
    )


def member_payload(account: Account) -> MemberResponse:
    return MemberResponse(
        id=account.id,
        email=account.email,
        name=account.name,
        is_verified=account.is_verified,
        invite_pending=account.invite_token is not None,
    )


@router.post(
    "/register",
    response_model=SuccessEnvelope[EnterpriseResponse],
    status_code=status.HTTP_201_CREATED,
)
async def register(
    request: Request,
    payload: EnterpriseRegisterRequest,
    account: ResolvedAccount = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
) -> dict:
    enterprise = await register_enterprise(
        session=db,
        account=account,
        name=payload.name,
        industry=payload.industry,
        website=payload.website,
    )
    return success_response(request=request, data=enterprise_payload(enterprise))


@router.post(
    "/invites",
    response_model=SuccessEnvelope[InviteCreatedResponse],
    status_code=status.HTTP_201_CREATED,
)
async def invite_member(
    request: Request,
    payload: InviteRequest,
    owner: ResolvedAccount = Depends(require_account(is_enterprise_owner, is_verified)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Temp credentials are shown once here; only their hash is kept.
    invite = await create_invite(
        session=db,
        owner=owner,
        email=payload.email,
        name=payload.name,
        settings=get_settings(),
    )
    await record_event(
        session=db,
        actor_type="account",
        actor_id=owner.id,
        actor_role=owner.role,
        event_type="enterprise.invite.created",
        outcome="success",
        resource_type="account",
        resource_id=invite.account.id,
        request=request,
        metadata={"enterprise_id": invite.enterprise.id, "email": invite.account.email},
        commit=True,
    )
    data = InviteCreatedResponse(
        account_id=invite.account.id,
        email=invite.account.email,
        invite_token=invite.invite_token,
        expires_at=invite.expires_at,
        temp_username=invite.temp_username,
        temp_password=invite.temp_password,
    )
    return success_response(request=request, data=data)


@router.get("/invites/{invite_token}", response_model=SuccessEnvelope[InviteDetailsResponse])
async def invite_details(
    request: Request,
    invite_token: str,
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Public lookup used by the invite landing page; never returns credentials.
    account, enterprise = await get_invite(session=db, invite_token=invite_token)
    data = InviteDetailsResponse(
        email=account.email,
        name=account.name,
        enterprise_id=enterprise.id,
        enterprise_name=enterprise.name,
        expires_at=account.invite_expires_at,
    )
    return success_response(request=request, data=data)


@router.post("/invites/accept", response_model=SuccessEnvelope[MemberResponse])
async def accept(
    request: Request,
    payload: AcceptInviteRequest,
    account: ResolvedAccount = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
) -> dict:
    member = await accept_invite(
        session=db,
        account=account,
        invite_token=payload.invite_token,
        temp_username=payload.temp_username,
        temp_password=payload.temp_password,
    )
    await record_event(
        session=db,
        actor_type="account",
        actor_id=member.id,
        actor_role=member.role,
        event_type="enterprise.invite.accepted",
        outcome="success",
        resource_type="account",
        resource_id=member.id,
        request=request,
        metadata={"enterprise_id": member.enterprise_id},
        commit=True,
    )
    return success_response(request=request, data=member_payload(member))


@router.get("/team", response_model=SuccessEnvelope[TeamResponse])
async def team(
    request: Request,
    owner: ResolvedAccount = Depends(require_account(is_enterprise_owner)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    enterprise, members = await list_team(session=db, owner=owner)
    data = TeamResponse(
        enterprise_id=enterprise.id,
        members=[member_payload(member) for member in members],
    )
    return success_response(request=request, data=data)


@router.patch("/team/{member_id}", response_model=SuccessEnvelope[MemberResponse])
async def update_team_member(
    request: Request,
    member_id: str,
    payload: MemberUpdateRequest,
    owner: ResolvedAccount = Depends(require_account(is_enterprise_owner)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    member = await update_member(
        session=db,
        owner=owner,
        member_id=member_id,
        name=payload.name,
        email=payload.email,
    )
    await record_event(
        session=db,
        actor_type="account",
        actor_id=owner.id,
        actor_role=owner.role,
        event_type="enterprise.member.updated",
        outcome="success",
        resource_type="account",
        resource_id=member.id,
        request=request,
        metadata={"enterprise_id": member.enterprise_id, "fields": sorted(payload.model_fields_set)},
        commit=True,
    )
    return success_response(request=request, data=member_payload(member))


@router.delete("/team/{member_id}", response_model=SuccessEnvelope[MemberRemovedResponse])
async def remove_team_member(
    request: Request,
    member_id: str,
    owner: ResolvedAccount = Depends(require_account(is_enterprise_owner)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    deleted = await remove_member(session=db, owner=owner, member_id=member_id)
    await record_event(
        session=db,
        actor_type="account",
        actor_id=owner.id,
        actor_role=owner.role,
        event_type="enterprise.member.removed",
        outcome="success",
        resource_type="account",
        resource_id=member_id,
        request=request,
        metadata={"enterprise_id": owner.owned_enterprise_id, "deleted": deleted},
        commit=True,
    )
    return success_response(request=request, data=MemberRemovedResponse(id=member_id, deleted=deleted))
