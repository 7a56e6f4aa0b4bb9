from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel

from consulthub.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from consulthub.apps.api.response import SuccessEnvelope, success_response

router = APIRouter(tags=["health"], responses=DEFAULT_ERROR_RESPONSES)


class HealthResponse(BaseModel):
    status: str
    auth_mode: str


@router.get("/health", response_model=SuccessEnvelope[HealthResponse])
async def health(request: Request) -> dict:
    # Report the startup-selected auth mode so degraded deployments are visible.
    payload = HealthResponse(status="ok", auth_mode=request.app.state.auth_mode.value)
    return success_response(request=request, data=payload)
