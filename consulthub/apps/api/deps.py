from __future__ import annotations

from typing import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from consulthub.core.config import AuthMode, get_settings
from consulthub.core.errors import ConsultHubError, Forbidden
from consulthub.domain.models import AdminAccount
from consulthub.persistence.repos.accounts import AccountStore
from consulthub.services.audit import record_event
from consulthub.services.auth.admin_sessions import resolve_admin_session
from consulthub.services.auth.identity import IdentityResolver, ResolvedAccount
from consulthub.services.auth.roles import Predicate, check
from consulthub.services.auth.token_verifier import TokenVerifier


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request from the factory create_app() was given.
    async with request.app.state.session_factory() as session:
        yield session


def get_account_store(request: Request) -> AccountStore:
    # The store is opened by create_app() and closed on shutdown.
    return request.app.state.account_store


def get_token_verifier(request: Request) -> TokenVerifier:
    return request.app.state.token_verifier


def get_identity_resolver(store: AccountStore = Depends(get_account_store)) -> IdentityResolver:
    return IdentityResolver(store)


def _request_metadata(request: Request) -> dict[str, str]:
    # Include minimal request context for traceability without sensitive headers.
    return {"path": request.url.path, "method": request.method}


async def get_current_account(
    request: Request,
    verifier: TokenVerifier = Depends(get_token_verifier),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> ResolvedAccount:
    # Resolve the caller's local account; audit failures plus account creation and linking.
    settings = get_settings()
    header_value = request.headers.get(settings.auth_header)
    auth_mode: AuthMode = request.app.state.auth_mode
    fallback_email = request.headers.get(settings.auth_fallback_email_header)
    try:
        if auth_mode is AuthMode.DEGRADED_FALLBACK and fallback_email and not header_value:
            account = await resolver.resolve_by_email(fallback_email)
            request.state.auth_method = "fallback_email"
            return account
        identity = await verifier.verify_header(header_value)
        account = await resolver.resolve(identity)
    except ConsultHubError as exc:
        await record_event(
            actor_type="anonymous",
            actor_id=None,
            actor_role=None,
            event_type="auth.access.failure",
            outcome="failure",
            resource_type="auth",
            request=request,
            metadata={**_request_metadata(request), "auth_mode": auth_mode.value},
            error_code=exc.code,
        )
        raise
    request.state.auth_method = "id_token"
    if account.resolution != "existing":
        await record_event(
            actor_type="account",
            actor_id=account.id,
            actor_role=account.role,
            event_type=f"identity.account.{account.resolution}",
            outcome="success",
            resource_type="account",
            resource_id=account.id,
            request=request,
            metadata={"subject_id": account.subject_id, "email": account.email},
        )
    return account


def require_account(*predicates: Predicate):
    # Dependency factory applying role gate predicates at the route level.
    async def _dependency(
        request: Request,
        account: ResolvedAccount = Depends(get_current_account),
    ) -> ResolvedAccount:
        failed = check(account, *predicates)
        if failed is not None:
            await record_event(
                actor_type="account",
                actor_id=account.id,
                actor_role=account.role,
                event_type="rbac.forbidden",
                outcome="failure",
                resource_type="rbac",
                request=request,
                metadata={**_request_metadata(request), "required": failed.name},
                error_code=Forbidden.code,
            )
            raise Forbidden(f"Requires {failed.name}")
        return account

    return _dependency


async def get_current_admin(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> AdminAccount:
    # Admin routes accept only the admin session token, never an IdP token.
    settings = get_settings()
    try:
        return await resolve_admin_session(
            session=db,
            header_value=request.headers.get(settings.auth_header),
            settings=settings,
        )
    except ConsultHubError as exc:
        await record_event(
            actor_type="admin",
            actor_id=None,
            actor_role=None,
            event_type="auth.access.failure",
            outcome="failure",
            resource_type="admin_auth",
            request=request,
            metadata=_request_metadata(request),
            error_code=exc.code,
        )
        raise
