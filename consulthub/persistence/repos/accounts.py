from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from consulthub.core.errors import Conflict, NotFound, StorageError
from consulthub.domain.models import Account, ConsultantProfile, Enterprise


logger = logging.getLogger(__name__)

_UNSET = object()


def _utc_now() -> datetime:
    # Keep account timestamps in UTC.
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    # Compare emails case-insensitively so the unique constraint matches user intent.
    return email.strip().lower()


@dataclass(frozen=True)
class AccountCapabilities:
    consultant_profile_id: str | None = None
    consultant_status: str | None = None
    owned_enterprise_id: str | None = None
    enterprise_id: str | None = None
    enterprise_status: str | None = None


class AccountStore:
    """Account persistence behind the identity resolver.

    Each call runs in its own short session so a failed write never poisons the
    caller's request transaction. Lookups return ``None`` for missing rows;
    writes raise ``NotFound``, ``Conflict`` (unique constraint collisions) or
    ``StorageError``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine = engine
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        # Release pooled connections at shutdown; the store is unusable afterwards.
        if self._closed:
            return
        self._closed = True
        if self._engine is not None:
            await self._engine.dispose()

    def _session(self) -> AsyncSession:
        if self._closed:
            raise StorageError("Account store is closed")
        return self._session_factory()

    async def _find_one(self, statement, **log_fields: str | None) -> Account | None:
        try:
            async with self._session() as session:
                result = await session.execute(statement)
                return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error(
                "account_store_read_failed %s",
                " ".join(f"{key}={value}" for key, value in log_fields.items()),
                exc_info=exc,
            )
            raise StorageError("Account lookup failed") from exc

    async def find_by_id(self, account_id: str) -> Account | None:
        return await self._find_one(select(Account).where(Account.id == account_id), account_id=account_id)

    async def find_by_subject_id(self, subject_id: str) -> Account | None:
        return await self._find_one(
            select(Account).where(Account.subject_id == subject_id),
            subject_id=subject_id,
        )

    async def find_by_email(self, email: str) -> Account | None:
        normalized = normalize_email(email)
        return await self._find_one(select(Account).where(Account.email == normalized), email=normalized)

    async def create(
        self,
        *,
        email: str,
        subject_id: str | None = None,
        name: str | None = None,
        role: str = "user",
        is_verified: bool = False,
    ) -> Account:
        # Uniqueness on email and subject_id settles concurrent first logins.
        normalized = normalize_email(email)
        now = _utc_now()
        account = Account(
            id=uuid4().hex,
            subject_id=subject_id,
            email=normalized,
            name=name,
            role=role,
            is_verified=is_verified,
            created_at=now,
            updated_at=now,
        )
        async with self._session() as session:
            session.add(account)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                logger.info("account_create_conflict email=%s subject_id=%s", normalized, subject_id)
                raise Conflict("Account already exists for this identity") from exc
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("account_create_failed email=%s subject_id=%s", normalized, subject_id, exc_info=exc)
                raise StorageError("Account create failed") from exc
        return account

    async def update(
        self,
        account_id: str,
        *,
        subject_id: str | None | object = _UNSET,
        is_verified: bool | None = None,
        name: str | None = None,
        role: str | None = None,
    ) -> Account:
        """Apply field updates to one account.

        ``subject_id`` may only move from null to a value; rewriting a set
        subject to a different one raises ``Conflict``.
        """
        async with self._session() as session:
            try:
                account = await session.get(Account, account_id)
                if account is None:
                    raise NotFound("Account not found")
                if subject_id is not _UNSET and subject_id != account.subject_id:
                    if account.subject_id is not None:
                        logger.warning(
                            "account_subject_rebind_rejected account_id=%s subject_id=%s",
                            account_id,
                            account.subject_id,
                        )
                        raise Conflict("Account is already linked to another identity")
                    account.subject_id = subject_id
                if is_verified is not None:
                    account.is_verified = is_verified
                if name is not None:
                    account.name = name
                if role is not None:
                    account.role = role
                account.updated_at = _utc_now()
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                logger.info("account_update_conflict account_id=%s", account_id)
                raise Conflict("Account update collided with an existing identity") from exc
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("account_update_failed account_id=%s", account_id, exc_info=exc)
                raise StorageError("Account update failed") from exc
        return account

    async def load_capabilities(self, account: Account) -> AccountCapabilities:
        # Collect consultant and enterprise associations for the resolved account.
        try:
            async with self._session() as session:
                profile = (
                    await session.execute(
                        select(ConsultantProfile).where(ConsultantProfile.account_id == account.id)
                    )
                ).scalar_one_or_none()
                owned = (
                    await session.execute(
                        select(Enterprise).where(Enterprise.owner_account_id == account.id)
                    )
                ).scalar_one_or_none()
                membership = owned
                if membership is None and account.enterprise_id:
                    membership = await session.get(Enterprise, account.enterprise_id)
        except SQLAlchemyError as exc:
            logger.error("account_capabilities_failed account_id=%s", account.id, exc_info=exc)
            raise StorageError("Account lookup failed") from exc
        return AccountCapabilities(
            consultant_profile_id=profile.id if profile else None,
            consultant_status=profile.kyc_status if profile else None,
            owned_enterprise_id=owned.id if owned else None,
            enterprise_id=membership.id if membership else None,
            enterprise_status=membership.status if membership else None,
        )
