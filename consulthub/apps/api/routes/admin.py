from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from consulthub.apps.api.deps import get_current_admin, get_db
from consulthub.apps.api.openapi import ADMIN_ERROR_RESPONSES
from consulthub.apps.api.response import SuccessEnvelope, success_response
from consulthub.core.config import get_settings
from consulthub.core.errors import ConsultHubError, Forbidden
from consulthub.domain.models import Account, AdminAccount, ConsultantProfile, Enterprise
from consulthub.persistence.repos.profiles import list_consultants_by_status, list_enterprises
from consulthub.services.audit import record_event
from consulthub.services.auth.admin_sessions import authenticate_admin, issue_admin_token, signup_admin
from consulthub.services.verification import VerificationResult, VerificationStatus, verify_consultant, verify_enterprise


router = APIRouter(prefix="/admin", tags=["admin"], responses=ADMIN_ERROR_RESPONSES)


class AdminSignupRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(min_length=1, max_length=256)
    name: str = Field(min_length=1, max_length=128)


class AdminSigninRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1, max_length=256)


class AdminProfileResponse(BaseModel):
    id: str
    email: str
    name: str
    last_login_at: datetime | None


class AdminSessionResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    expires_at: datetime
    admin: AdminProfileResponse


class PendingConsultantResponse(BaseModel):
    id: str
    account_id: str
    email: str
    name: str | None
    domain: str
    hourly_price: float
    kyc_status: str
    created_at: datetime | None


class EnterpriseSummaryResponse(BaseModel):
    id: str
    name: str
    owner_account_id: str
    owner_email: str
    industry: str | None
    status: str
    verification_notes: str | None
    verified_at: datetime | None


class VerifyEnterpriseRequest(BaseModel):
    verification_notes: str | None = Field(default=None, max_length=4000)


class VerificationResponse(BaseModel):
    entity_type: str
    entity_id: str
    status: str
    verified_at: datetime | None
    verified_by_admin_id: str | None
    # False when the entity was already verified.
    changed: bool


def admin_payload(admin: AdminAccount) -> AdminProfileResponse:
    return AdminProfileResponse(
        id=admin.id,
        email=admin.email,
        name=admin.name,
        last_login_at=admin.last_login_at,
    )


def consultant_payload(profile: ConsultantProfile, account: Account) -> PendingConsultantResponse:
    return PendingConsultantResponse(
        id=profile.id,
        account_id=account.id,
        email=account.email,
        name=account.name,
        domain=profile.domain,
        hourly_price=float(profile.hourly_price),
        kyc_status=profile.kyc_status,
        created_at=profile.created_at,
    )


def enterprise_summary(enterprise: Enterprise, owner: Account) -> EnterpriseSummaryResponse:
    return EnterpriseSummaryResponse(
        id=enterprise.id,
        name=enterprise.name,
        owner_account_id=owner.id,
        owner_email=owner.email,
        industry=enterprise.industry,
        status=enterprise.status,
        verification_notes=enterprise.verification_notes,
        verified_at=enterprise.verified_at,
    )


def verification_payload(result: VerificationResult) -> VerificationResponse:
    return VerificationResponse(
        entity_type=result.entity_type,
        entity_id=result.entity_id,
        status=result.status,
        verified_at=result.verified_at,
        verified_by_admin_id=result.verified_by_admin_id,
        changed=result.changed,
    )


@router.post(
    "/signup",
    response_model=SuccessEnvelope[AdminProfileResponse],
    status_code=status.HTTP_201_CREATED,
)
async def signup(
    request: Request,
    payload: AdminSignupRequest,
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Open signup is a bootstrap convenience; disable it once operators exist.
    settings = get_settings()
    if not settings.admin_signup_enabled:
        raise Forbidden("Admin signup is disabled")
    admin = await signup_admin(
        session=db,
        email=payload.email,
        password=payload.password,
        name=payload.name,
        settings=settings,
    )
    await record_event(
        session=db,
        actor_type="admin",
        actor_id=admin.id,
        actor_role="admin",
        event_type="admin.signup",
        outcome="success",
        resource_type="admin_account",
        resource_id=admin.id,
        request=request,
        metadata={"email": admin.email},
        commit=True,
    )
    return success_response(request=request, data=admin_payload(admin))


@router.post("/signin", response_model=SuccessEnvelope[AdminSessionResponse])
async def signin(
    request: Request,
    payload: AdminSigninRequest,
    db: AsyncSession = Depends(get_db),
) -> dict:
    settings = get_settings()
    try:
        admin = await authenticate_admin(session=db, email=payload.email, password=payload.password)
    except ConsultHubError as exc:
        await record_event(
            session=db,
            actor_type="admin",
            actor_id=None,
            actor_role=None,
            event_type="admin.signin.failure",
            outcome="failure",
            resource_type="admin_account",
            request=request,
            metadata={"email": payload.email},
            error_code=exc.code,
            commit=True,
        )
        raise
    token, expires_at = issue_admin_token(admin.id, settings=settings)
    await record_event(
        session=db,
        actor_type="admin",
        actor_id=admin.id,
        actor_role="admin",
        event_type="admin.signin.success",
        outcome="success",
        resource_type="admin_account",
        resource_id=admin.id,
        request=request,
        commit=True,
    )
    data = AdminSessionResponse(token=token, expires_at=expires_at, admin=admin_payload(admin))
    return success_response(request=request, data=data)


@router.get("/profile", response_model=SuccessEnvelope[AdminProfileResponse])
async def profile(
    request: Request,
    admin: AdminAccount = Depends(get_current_admin),
) -> dict:
    return success_response(request=request, data=admin_payload(admin))


@router.get("/consultants/pending", response_model=SuccessEnvelope[list[PendingConsultantResponse]])
async def pending_consultants(
    request: Request,
    admin: AdminAccount = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
) -> dict:
    rows = await list_consultants_by_status(db, VerificationStatus.PENDING.value)
    return success_response(
        request=request,
        data=[consultant_payload(profile, account) for profile, account in rows],
    )


@router.put("/consultants/{consultant_id}/verify", response_model=SuccessEnvelope[VerificationResponse])
async def verify_consultant_route(
    request: Request,
    consultant_id: str,
    admin: AdminAccount = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await verify_consultant(session=db, admin=admin, consultant_id=consultant_id, request=request)
    return success_response(request=request, data=verification_payload(result))


@router.get("/enterprises", response_model=SuccessEnvelope[list[EnterpriseSummaryResponse]])
async def all_enterprises(
    request: Request,
    admin: AdminAccount = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
) -> dict:
    rows = await list_enterprises(db)
    return success_response(request=request, data=[enterprise_summary(e, owner) for e, owner in rows])


@router.get("/enterprises/pending", response_model=SuccessEnvelope[list[EnterpriseSummaryResponse]])
async def pending_enterprises(
    request: Request,
    admin: AdminAccount = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
) -> dict:
    rows = await list_enterprises(db, VerificationStatus.PENDING.value)
    return success_response(request=request, data=[enterprise_summary(e, owner) for e, owner in rows])


@router.put("/enterprises/{enterprise_id}/verify", response_model=SuccessEnvelope[VerificationResponse])
async def verify_enterprise_route(
    request: Request,
    enterprise_id: str,
    payload: VerifyEnterpriseRequest | None = None,
    admin: AdminAccount = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await verify_enterprise(
        session=db,
        admin=admin,
        enterprise_id=enterprise_id,
        notes=payload.verification_notes if payload else None,
        request=request,
    )
    return success_response(request=request, data=verification_payload(result))
