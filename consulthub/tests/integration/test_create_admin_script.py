from __future__ import annotations

import pytest
from sqlalchemy.exc import SQLAlchemyError

from consulthub.persistence.db import SessionLocal
from consulthub.persistence.repos.admins import get_admin_by_email
from consulthub.services import audit
from consulthub.services.audit import list_events
from scripts.create_admin import _build_parser, _create_admin


def _args(email: str = "ops@example.com"):
    return _build_parser().parse_args(["--email", email, "--name", "Ops"])


async def test_create_admin_writes_admin_and_audit_row() -> None:
    assert await _create_admin(_args(), "Operator123") == 0
    async with SessionLocal() as session:
        admin = await get_admin_by_email(session, "ops@example.com")
        events = await list_events(session, event_type="admin.signup")
    assert admin is not None
    assert [event.resource_id for event in events] == [admin.id]
    assert events[0].metadata_json["source"] == "cli"


async def test_failed_audit_write_leaves_no_admin(monkeypatch) -> None:
    async def _unavailable(session, event, *, commit):
        raise SQLAlchemyError("audit_events unavailable")

    monkeypatch.setattr(audit, "_persist", _unavailable)
    with pytest.raises(SQLAlchemyError):
        await _create_admin(_args(), "Operator123")

    async with SessionLocal() as session:
        assert await get_admin_by_email(session, "ops@example.com") is None
