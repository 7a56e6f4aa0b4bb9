from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel

from consulthub.core.errors import AccountNotFound, Conflict, MissingEmail, UnverifiedEmail
from consulthub.domain.models import Account
from consulthub.persistence.repos.accounts import AccountStore, normalize_email
from consulthub.services.auth.roles import Role
from consulthub.services.auth.token_verifier import VerifiedIdentity


logger = logging.getLogger(__name__)

Resolution = Literal["existing", "linked", "created"]


class ResolvedAccount(BaseModel):
    # Detached snapshot of the account plus its consultant and enterprise associations.
    id: str
    subject_id: str | None
    email: str
    name: str | None
    role: str
    is_verified: bool
    consultant_profile_id: str | None = None
    consultant_status: str | None = None
    owned_enterprise_id: str | None = None
    enterprise_id: str | None = None
    enterprise_status: str | None = None
    resolution: Resolution = "existing"


class IdentityResolver:
    """Map a verified identity onto exactly one local account.

    Order: subject lookup, then email lookup with a one-time link, then
    creation as a verified plain user. The last two steps require an email
    the provider has confirmed. A create that loses the unique-email
    race is retried once as a read so both racers see the same row.
    """

    def __init__(self, store: AccountStore) -> None:
        self.store = store

    async def resolve(self, identity: VerifiedIdentity) -> ResolvedAccount:
        if not identity.email:
            logger.warning("identity_missing_email subject_id=%s", identity.subject_id)
            raise MissingEmail("Verified identity has no email")
        email = normalize_email(identity.email)

        account = await self.store.find_by_subject_id(identity.subject_id)
        if account is not None:
            return await self._snapshot(account, "existing")

        # Email only identifies a new subject once the provider has confirmed it.
        if not identity.email_verified:
            logger.warning("identity_email_unverified subject_id=%s email=%s", identity.subject_id, email)
            raise UnverifiedEmail("Email is not verified by the identity provider")

        account = await self.store.find_by_email(email)
        if account is not None:
            return await self._snapshot(await self._link(account, identity), "linked")

        try:
            account = await self.store.create(
                subject_id=identity.subject_id,
                email=email,
                name=identity.name,
                role=Role.USER.value,
                is_verified=True,
            )
        except Conflict:
            # A concurrent first login won the insert; read its row instead.
            logger.info(
                "identity_create_conflict_retry subject_id=%s email=%s",
                identity.subject_id,
                email,
            )
            return await self._resolve_after_conflict(identity, email)
        logger.info(
            "identity_account_created account_id=%s subject_id=%s email=%s",
            account.id,
            identity.subject_id,
            email,
        )
        return await self._snapshot(account, "created")

    async def resolve_by_email(self, email: str) -> ResolvedAccount:
        # Degraded-mode lookup: never creates or links.
        account = await self.store.find_by_email(email)
        if account is None:
            logger.info("identity_fallback_account_not_found email=%s", normalize_email(email))
            raise AccountNotFound("No account for this email")
        return await self._snapshot(account, "existing")

    async def refresh(self, account_id: str) -> ResolvedAccount:
        account = await self.store.find_by_id(account_id)
        if account is None:
            raise AccountNotFound("Account not found")
        return await self._snapshot(account, "existing")

    async def _resolve_after_conflict(self, identity: VerifiedIdentity, email: str) -> ResolvedAccount:
        account = await self.store.find_by_subject_id(identity.subject_id)
        if account is not None:
            return await self._snapshot(account, "existing")
        account = await self.store.find_by_email(email)
        if account is None:
            logger.error(
                "identity_conflict_unresolved subject_id=%s email=%s",
                identity.subject_id,
                email,
            )
            raise Conflict("Account creation conflicted and no account was found")
        return await self._snapshot(await self._link(account, identity), "linked")

    async def _link(self, account: Account, identity: VerifiedIdentity) -> Account:
        if account.subject_id == identity.subject_id:
            return account
        if account.subject_id is not None:
            logger.warning(
                "identity_link_rejected account_id=%s subject_id=%s",
                account.id,
                identity.subject_id,
            )
            raise Conflict("Email is already linked to another identity")
        linked = await self.store.update(account.id, subject_id=identity.subject_id, is_verified=True)
        logger.info(
            "identity_account_linked account_id=%s subject_id=%s email=%s",
            linked.id,
            identity.subject_id,
            linked.email,
        )
        return linked

    async def _snapshot(self, account: Account, resolution: Resolution) -> ResolvedAccount:
        capabilities = await self.store.load_capabilities(account)
        return ResolvedAccount(
            id=account.id,
            subject_id=account.subject_id,
            email=account.email,
            name=account.name,
            role=account.role,
            is_verified=account.is_verified,
            consultant_profile_id=capabilities.consultant_profile_id,
            consultant_status=capabilities.consultant_status,
            owned_enterprise_id=capabilities.owned_enterprise_id,
            enterprise_id=capabilities.enterprise_id,
            enterprise_status=capabilities.enterprise_status,
            resolution=resolution,
        )
