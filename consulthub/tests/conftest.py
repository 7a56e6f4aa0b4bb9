from __future__ import annotations

import os
from pathlib import Path
import tempfile

# Point settings at a throwaway SQLite file before any consulthub module builds the engine.
_TEST_DB_PATH = Path(tempfile.gettempdir()) / f"consulthub-test-{os.getpid()}.db"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB_PATH}"
os.environ.setdefault("AUTH_MODE", "production")

import pytest  # noqa: E402

from consulthub.core.config import get_settings  # noqa: E402

get_settings.cache_clear()

from consulthub.domain.models import Base  # noqa: E402
from consulthub.persistence.db import engine  # noqa: E402
from consulthub.services.auth import token_verifier as token_verifier_module  # noqa: E402
from consulthub.tests.utils.idp import signing_jwks  # noqa: E402


@pytest.fixture(autouse=True)
async def reset_database_between_tests() -> None:
    # Recreate the schema per test so identity rows never leak across cases.
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    # Dispose the async engine to prevent cross-loop connection reuse between tests.
    await engine.dispose()


@pytest.fixture(autouse=True)
def reset_settings_cache() -> None:
    # Tests that monkeypatch env vars must not leak cached settings to later tests.
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_jwks(monkeypatch) -> dict:
    # Serve the test signing key instead of calling the identity provider.
    jwks = signing_jwks()

    async def _fake_fetch(_jwks_url: str) -> dict:
        return jwks

    monkeypatch.setattr(token_verifier_module, "_fetch_jwks", _fake_fetch)
    return jwks


def pytest_sessionfinish(session, exitstatus) -> None:
    _TEST_DB_PATH.unlink(missing_ok=True)
