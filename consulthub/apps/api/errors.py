from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from consulthub.apps.api.response import error_json
from consulthub.core.errors import ConsultHubError


logger = logging.getLogger(__name__)

# Framework-raised errors carry no domain code; derive one from the status.
_STATUS_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    401: "AUTH_UNAUTHORIZED",
    403: "AUTH_FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    410: "GONE",
    500: "INTERNAL_ERROR",
}

_BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}


async def domain_exception_handler(request: Request, exc: ConsultHubError) -> JSONResponse:
    # Each error class owns its status and code; 401s also carry a Bearer challenge.
    if exc.status_code >= 500:
        logger.error("request_failed code=%s status=%s path=%s", exc.code, exc.status_code, request.url.path)
    else:
        logger.info("request_rejected code=%s status=%s path=%s", exc.code, exc.status_code, request.url.path)
    return error_json(
        request=request,
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        headers=_BEARER_CHALLENGE if exc.status_code == 401 else None,
    )


async def http_exception_handler(
    request: Request, exc: HTTPException | StarletteHTTPException
) -> JSONResponse:
    # Unknown routes and wrong methods still answer with the error envelope.
    details: dict[str, Any] | None = None
    if isinstance(exc.detail, str):
        message = exc.detail
    else:
        message = "Request failed"
        details = {"detail": jsonable_encoder(exc.detail)} if exc.detail is not None else None
    return error_json(
        request=request,
        status_code=exc.status_code,
        code=_STATUS_CODES.get(exc.status_code, "HTTP_ERROR"),
        message=message,
        details=details,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_json(
        request=request,
        status_code=422,
        code="REQUEST_VALIDATION_ERROR",
        message="Validation error",
        details={"errors": jsonable_encoder(exc.errors())},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Never leak stack traces to clients.
    logger.exception("request_unhandled_error path=%s", request.url.path, exc_info=exc)
    return error_json(
        request=request,
        status_code=500,
        code="INTERNAL_ERROR",
        message="Internal server error",
    )
