from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from consulthub.apps.api.deps import get_current_account, get_db, require_account
from consulthub.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from consulthub.apps.api.response import SuccessEnvelope, success_response
from consulthub.domain.models import ConsultantProfile, KycDocument
from consulthub.services.audit import record_event
from consulthub.services.auth.identity import ResolvedAccount
from consulthub.services.auth.roles import is_consultant
from consulthub.services.onboarding import (
    delete_kyc_document,
    get_kyc_status,
    get_own_consultant_profile,
    register_consultant,
    submit_kyc_document,
    update_consultant_profile,
)


router = APIRouter(prefix="/consultants", tags=["consultants"], responses=DEFAULT_ERROR_RESPONSES)


class ConsultantRegisterRequest(BaseModel):
    domain: str = Field(min_length=1, max_length=128)
    hourly_price: float = Field(gt=0)
    bio: str | None = Field(default=None, max_length=4000)
    languages: list[str] | None = None


class ConsultantProfileUpdateRequest(BaseModel):
    # Omitted fields are left unchanged.
    domain: str | None = Field(default=None, min_length=1, max_length=128)
    hourly_price: float | None = Field(default=None, gt=0)
    bio: str | None = Field(default=None, max_length=4000)
    languages: list[str] | None = None


class KycDocumentRequest(BaseModel):
    document_type: str = Field(min_length=1, max_length=64)
    document_url: str = Field(min_length=1, max_length=2048)


class ConsultantProfileResponse(BaseModel):
    id: str
    account_id: str
    domain: str
    hourly_price: float
    bio: str | None
    languages: list[str]
    kyc_status: str
    verified_at: datetime | None


class KycDocumentResponse(BaseModel):
    id: str
    document_type: str
    document_url: str
    status: str
    submitted_at: datetime | None


class KycDocumentDeletedResponse(BaseModel):
    id: str
    deleted: bool


class KycStatusResponse(BaseModel):
    consultant_id: str
    kyc_status: str
    verified_at: datetime | None
    documents: list[KycDocumentResponse]


def profile_payload(profile: ConsultantProfile) -> ConsultantProfileResponse:
    return ConsultantProfileResponse(
        id=profile.id,
        account_id=profile.account_id,
        domain=profile.domain,
        hourly_price=float(profile.hourly_price),
        bio=profile.bio,
        languages=list(profile.languages_json or []),
        kyc_status=profile.kyc_status,
        verified_at=profile.verified_at,
    )


def document_payload(document: KycDocument) -> KycDocumentResponse:
    return KycDocumentResponse(
        id=document.id,
        document_type=document.document_type,
        document_url=document.document_url,
        status=document.status,
        submitted_at=document.submitted_at,
    )


@router.post(
    "/register",
    response_model=SuccessEnvelope[ConsultantProfileResponse],
    status_code=status.HTTP_201_CREATED,
)
async def register(
    request: Request,
    payload: ConsultantRegisterRequest,
    account: ResolvedAccount = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
) -> dict:
    # Registration leaves the profile pending until an admin verifies it.
    profile = await register_consultant(
        session=db,
        account=account,
        domain=payload.domain,
        hourly_price=payload.hourly_price,
        bio=payload.bio,
        languages=payload.languages,
    )
    return success_response(request=request, data=profile_payload(profile))


@router.post(
    "/kyc-documents",
    response_model=SuccessEnvelope[KycDocumentResponse],
    status_code=status.HTTP_201_CREATED,
)
async def add_kyc_document(
    request: Request,
    payload: KycDocumentRequest,
    account: ResolvedAccount = Depends(require_account(is_consultant)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    document = await submit_kyc_document(
        session=db,
        account=account,
        document_type=payload.document_type,
        document_url=payload.document_url,
    )
    return success_response(request=request, data=document_payload(document))


@router.get("/kyc-status", response_model=SuccessEnvelope[KycStatusResponse])
async def kyc_status(
    request: Request,
    account: ResolvedAccount = Depends(require_account(is_consultant)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    profile, documents = await get_kyc_status(session=db, account=account)
    data = KycStatusResponse(
        consultant_id=profile.id,
        kyc_status=profile.kyc_status,
        verified_at=profile.verified_at,
        documents=[document_payload(document) for document in documents],
    )
    return success_response(request=request, data=data)


@router.get("/profile", response_model=SuccessEnvelope[ConsultantProfileResponse])
async def get_profile(
    request: Request,
    account: ResolvedAccount = Depends(require_account(is_consultant)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    profile = await get_own_consultant_profile(db, account)
    return success_response(request=request, data=profile_payload(profile))


@router.put("/profile", response_model=SuccessEnvelope[ConsultantProfileResponse])
async def update_profile(
    request: Request,
    payload: ConsultantProfileUpdateRequest,
    account: ResolvedAccount = Depends(require_account(is_consultant)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    profile = await update_consultant_profile(
        session=db,
        account=account,
        domain=payload.domain,
        hourly_price=payload.hourly_price,
        bio=payload.bio,
        languages=payload.languages,
    )
    return success_response(request=request, data=profile_payload(profile))


@router.delete("/kyc-documents/{document_id}", response_model=SuccessEnvelope[KycDocumentDeletedResponse])
async def remove_kyc_document(
    request: Request,
    document_id: str,
    account: ResolvedAccount = Depends(require_account(is_consultant)),
    db: AsyncSession = Depends(get_db),
) -> dict:
    await delete_kyc_document(session=db, account=account, document_id=document_id)
    await record_event(
        session=db,
        actor_type="account",
        actor_id=account.id,
        actor_role=account.role,
        event_type="consultant.kyc_document.deleted",
        outcome="success",
        resource_type="kyc_document",
        resource_id=document_id,
        request=request,
        metadata={"consultant_id": account.consultant_profile_id},
        commit=True,
    )
    return success_response(request=request, data=KycDocumentDeletedResponse(id=document_id, deleted=True))
