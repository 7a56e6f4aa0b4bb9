from __future__ import annotations

from contextlib import asynccontextmanager
import logging
import time
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from consulthub.apps.api import errors
from consulthub.apps.api.openapi import build_openapi_schema
from consulthub.apps.api.response import API_VERSION
from consulthub.apps.api.routes import admin, auth, consultants, enterprises, health
from consulthub.core.config import AuthMode, get_settings
from consulthub.core.errors import ConsultHubError
from consulthub.core.logging import configure_logging
from consulthub.persistence.db import SessionLocal, engine
from consulthub.persistence.repos.accounts import AccountStore
from consulthub.services.auth.token_verifier import TokenVerifier


logger = logging.getLogger(__name__)


async def assign_request_id(request: Request, call_next):
    # Echo the caller's X-Request-Id when present so audit rows and logs line up.
    request_id = request.headers.get("X-Request-Id") or str(uuid4())
    request.state.request_id = request_id
    started = time.monotonic()
    response = await call_next(request)
    logger.debug(
        "request_completed method=%s path=%s status=%s latency_ms=%.1f",
        request.method,
        request.url.path,
        response.status_code,
        (time.monotonic() - started) * 1000.0,
    )
    response.headers.setdefault("X-Request-Id", request_id)
    return response


def _mount_docs(app: FastAPI) -> None:
    @app.get(f"/{API_VERSION}/openapi.json", include_in_schema=False)
    async def openapi_json() -> JSONResponse:
        return JSONResponse(app.openapi())

    @app.get(f"/{API_VERSION}/docs", include_in_schema=False)
    async def versioned_docs() -> HTMLResponse:
        return get_swagger_ui_html(openapi_url=f"/{API_VERSION}/openapi.json", title=f"{app.title} {API_VERSION}")

    @app.get("/docs", include_in_schema=False)
    async def docs_redirect() -> RedirectResponse:
        return RedirectResponse(url=f"/{API_VERSION}/docs")


def create_app(
    *,
    account_store: AccountStore | None = None,
    token_verifier: TokenVerifier | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> FastAPI:
    configure_logging()
    settings = get_settings()
    # Request sessions, audit writes and the default store all come from one factory.
    sessions = session_factory or SessionLocal
    store = account_store or AccountStore(sessions, engine=engine if session_factory is None else None)
    verifier = token_verifier or TokenVerifier.from_settings(settings)
    # Fixed for the process lifetime; requests never switch modes.
    auth_mode = AuthMode(settings.auth_mode)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        logger.info("app_started auth_mode=%s", auth_mode.value)
        if auth_mode is AuthMode.DEGRADED_FALLBACK:
            logger.warning("auth_degraded_fallback_enabled header=%s", settings.auth_fallback_email_header)
        yield
        await store.close()
        logger.info("app_stopped")

    app = FastAPI(title="ConsultHub API", lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)
    app.state.session_factory = sessions
    app.state.account_store = store
    app.state.token_verifier = verifier
    app.state.auth_mode = auth_mode

    app.middleware("http")(assign_request_id)

    app.add_exception_handler(ConsultHubError, errors.domain_exception_handler)
    app.add_exception_handler(StarletteHTTPException, errors.http_exception_handler)
    app.add_exception_handler(RequestValidationError, errors.validation_exception_handler)
    app.add_exception_handler(Exception, errors.unhandled_exception_handler)

    for module in (health, auth, consultants, enterprises, admin):
        app.include_router(module.router, prefix=f"/{API_VERSION}")

    _mount_docs(app)
    app.openapi = lambda: build_openapi_schema(app)
    return app


app = create_app()
