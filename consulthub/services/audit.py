from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import re
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.requests import Request

from consulthub.domain.models import AuditEvent
from consulthub.persistence.db import SessionLocal


logger = logging.getLogger(__name__)

# Keys naming credentials are redacted wherever they appear in event metadata.
_SENSITIVE_KEY = re.compile(r"authorization|token|secret|password|credential", re.IGNORECASE)
REDACTED = "[REDACTED]"


def sanitize_metadata(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            str(key): REDACTED if _SENSITIVE_KEY.search(str(key)) else sanitize_metadata(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [sanitize_metadata(item) for item in value]
    return value


@dataclass(frozen=True)
class RequestContext:
    request_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None

    @classmethod
    def from_request(cls, request: Request | None) -> RequestContext:
        # Prefer the middleware-assigned id so audit rows join against request logs.
        if request is None:
            return cls()
        return cls(
            request_id=getattr(request.state, "request_id", None) or request.headers.get("X-Request-Id"),
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )


def _session_factory(request: Request | None) -> async_sessionmaker[AsyncSession]:
    # Prefer the factory the app was built with; scripts and tests fall back to the module default.
    if request is not None:
        factory = getattr(request.app.state, "session_factory", None)
        if factory is not None:
            return factory
    return SessionLocal


async def _persist(session: AsyncSession, event: AuditEvent, *, commit: bool) -> None:
    session.add(event)
    if commit:
        await session.commit()


async def record_event(
    *,
    session: AsyncSession | None = None,
    occurred_at: datetime | None = None,
    actor_type: str,
    actor_id: str | None,
    actor_role: str | None,
    event_type: str,
    outcome: str,
    resource_type: str | None = None,
    resource_id: str | None = None,
    request: Request | None = None,
    metadata: dict[str, Any] | None = None,
    error_code: str | None = None,
    commit: bool | None = None,
    best_effort: bool = True,
) -> None:
    """Append one audit row.

    With ``session`` the row joins the caller's transaction and is only
    committed when ``commit`` is true; without it the row is written in a
    short session of its own, opened from the app's session factory when
    ``request`` is given. Write failures are logged and swallowed unless
    ``best_effort`` is false.
    """
    context = RequestContext.from_request(request)
    event = AuditEvent(
        occurred_at=occurred_at or datetime.now(timezone.utc),
        actor_type=actor_type,
        actor_id=actor_id,
        actor_role=actor_role,
        event_type=event_type,
        outcome=outcome,
        resource_type=resource_type,
        resource_id=resource_id,
        request_id=context.request_id,
        ip_address=context.ip_address,
        user_agent=context.user_agent,
        metadata_json=sanitize_metadata(metadata or {}),
        error_code=error_code,
    )
    try:
        if session is None:
            async with _session_factory(request)() as own_session:
                await _persist(own_session, event, commit=True)
        else:
            await _persist(session, event, commit=bool(commit))
    except SQLAlchemyError as exc:
        if session is not None and commit:
            await session.rollback()
        log = logger.warning if best_effort else logger.error
        log(
            "audit_event_write_failed event_type=%s request_id=%s",
            event_type,
            context.request_id,
            exc_info=exc,
        )
        if not best_effort:
            raise


async def list_events(
    session: AsyncSession,
    *,
    event_type: str | None = None,
    resource_id: str | None = None,
) -> list[AuditEvent]:
    statement = select(AuditEvent)
    if event_type is not None:
        statement = statement.where(AuditEvent.event_type == event_type)
    if resource_id is not None:
        statement = statement.where(AuditEvent.resource_id == resource_id)
    result = await session.execute(statement.order_by(AuditEvent.id.asc()))
    return list(result.scalars().all())
