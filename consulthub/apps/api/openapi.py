from __future__ import annotations

from typing import Any

from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi

from consulthub.apps.api.response import API_VERSION, ErrorEnvelope


def _error_example(*, code: str, message: str) -> dict[str, Any]:
    # Build a consistent error envelope example for OpenAPI docs.
    return {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example", "api_version": "v1"},
    }


def _response(description: str, code: str, message: str) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {"application/json": {"example": _error_example(code=code, message=message)}},
    }


DEFAULT_ERROR_RESPONSES: dict[int, dict[str, Any]] = {
    400: _response("Bad request", "BAD_REQUEST", "Bad request"),
    401: _response("Unauthorized", "AUTH_INVALID_CREDENTIAL", "Bearer token failed verification"),
    403: _response("Forbidden", "AUTH_FORBIDDEN", "Requires role in consultant"),
    404: _response("Not found", "ACCOUNT_NOT_FOUND", "No account for this email"),
    409: _response("Conflict", "CONFLICT", "Account already exists for this identity"),
    422: _response("Validation error", "REQUEST_VALIDATION_ERROR", "Validation error"),
    500: _response("Internal server error", "STORAGE_ERROR", "Account lookup failed"),
}

ADMIN_ERROR_RESPONSES: dict[int, dict[str, Any]] = {
    **DEFAULT_ERROR_RESPONSES,
    401: _response("Unauthorized", "AUTH_UNAUTHORIZED", "Admin session expired"),
}

# Routes reachable without any bearer credential.
PUBLIC_PATHS = frozenset(
    {
        "/v1/health",
        "/v1/admin/signup",
        "/v1/admin/signin",
        "/v1/enterprises/invites/{invite_token}",
    }
)


def build_openapi_schema(app: FastAPI) -> dict[str, Any]:
    """Generate the schema once, tagging each operation with the credential it expects.

    Marketplace routes take an IdP ID token; ``/v1/admin`` routes take an
    admin session token. Both are plain bearer schemes on the wire.
    """
    if app.openapi_schema:
        return app.openapi_schema
    schema = get_openapi(title=app.title, version=API_VERSION, routes=app.routes)
    schemes = schema.setdefault("components", {}).setdefault("securitySchemes", {})
    schemes["IdTokenBearer"] = {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}
    schemes["AdminSessionBearer"] = {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}
    for path, operations in schema.get("paths", {}).items():
        if path in PUBLIC_PATHS:
            continue
        scheme = "AdminSessionBearer" if path.startswith(f"/{API_VERSION}/admin") else "IdTokenBearer"
        for operation in operations.values():
            operation.setdefault("security", [{scheme: []}])
    app.openapi_schema = schema
    return schema
