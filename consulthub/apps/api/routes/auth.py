from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from consulthub.apps.api.deps import get_current_account, get_identity_resolver
from consulthub.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from consulthub.apps.api.response import SuccessEnvelope, success_response
from consulthub.services.auth.identity import IdentityResolver, ResolvedAccount


router = APIRouter(prefix="/auth", tags=["auth"], responses=DEFAULT_ERROR_RESPONSES)


class SyncRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=128)


class AccountResponse(BaseModel):
    id: str
    subject_id: str | None
    email: str
    name: str | None
    role: str
    is_verified: bool
    consultant_profile_id: str | None
    consultant_status: str | None
    owned_enterprise_id: str | None
    enterprise_id: str | None
    enterprise_status: str | None


class SyncResponse(BaseModel):
    account: AccountResponse
    # existing | linked | created
    resolution: str


def account_payload(account: ResolvedAccount) -> AccountResponse:
    return AccountResponse(**account.model_dump(exclude={"resolution"}))


@router.post("/sync", response_model=SuccessEnvelope[SyncResponse])
async def sync_account(
    request: Request,
    payload: SyncRequest | None = None,
    account: ResolvedAccount = Depends(get_current_account),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> dict:
    # Called by clients after every IdP sign-in; resolution already ran in the dependency.
    resolution = account.resolution
    if payload is not None and payload.name and payload.name != account.name:
        await resolver.store.update(account.id, name=payload.name)
        account = await resolver.refresh(account.id)
    data = SyncResponse(account=account_payload(account), resolution=resolution)
    return success_response(request=request, data=data)


@router.get("/me", response_model=SuccessEnvelope[AccountResponse])
async def me(
    request: Request,
    account: ResolvedAccount = Depends(get_current_account),
) -> dict:
    return success_response(request=request, data=account_payload(account))
