"""Role gate predicates.

Predicates are pure functions of account state (``role`` and ``is_verified``)
and compose with :func:`all_of` / :func:`any_of`. :func:`require` raises
``Forbidden`` naming the first predicate that failed.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Protocol

from consulthub.core.errors import Forbidden


class Role(str, Enum):
    USER = "user"
    CONSULTANT = "consultant"
    ENTERPRISE_OWNER = "enterprise_owner"
    ENTERPRISE_MEMBER = "enterprise_member"
    ADMIN = "admin"


ROLES = tuple(role.value for role in Role)


class GatedAccount(Protocol):
    role: str
    is_verified: bool


def normalize_role(role: str) -> str:
    # Accept legacy upper-case role names and the ENTERPRISE_ADMIN alias for owners.
    normalized = (role or "").strip().lower()
    if normalized == "enterprise_admin":
        normalized = Role.ENTERPRISE_OWNER.value
    if normalized not in ROLES:
        raise ValueError(f"Invalid role: {role}")
    return normalized


@dataclass(frozen=True)
class Predicate:
    name: str
    check: Callable[[Any], bool]

    def __call__(self, account: GatedAccount) -> bool:
        return bool(self.check(account))

    def __and__(self, other: Predicate) -> Predicate:
        return all_of(self, other)

    def __or__(self, other: Predicate) -> Predicate:
        return any_of(self, other)


def has_role(*roles: Role | str) -> Predicate:
    allowed = frozenset(normalize_role(role.value if isinstance(role, Role) else role) for role in roles)
    return Predicate(
        name="role in " + "|".join(sorted(allowed)),
        check=lambda account: account.role in allowed,
    )


def all_of(*predicates: Predicate) -> Predicate:
    return Predicate(
        name=" and ".join(predicate.name for predicate in predicates),
        check=lambda account: all(predicate(account) for predicate in predicates),
    )


def any_of(*predicates: Predicate) -> Predicate:
    return Predicate(
        name="(" + " or ".join(predicate.name for predicate in predicates) + ")",
        check=lambda account: any(predicate(account) for predicate in predicates),
    )


is_user = has_role(Role.USER)
is_consultant = has_role(Role.CONSULTANT)
is_enterprise_owner = has_role(Role.ENTERPRISE_OWNER)
is_enterprise_member = has_role(Role.ENTERPRISE_MEMBER)
is_admin = has_role(Role.ADMIN)
is_verified = Predicate(name="verified", check=lambda account: account.is_verified is True)


def check(account: GatedAccount, *predicates: Predicate) -> Predicate | None:
    # Return the first failing predicate, or None when every predicate permits.
    for predicate in predicates:
        if not predicate(account):
            return predicate
    return None


def require(account: GatedAccount, *predicates: Predicate) -> GatedAccount:
    failed = check(account, *predicates)
    if failed is not None:
        raise Forbidden(f"Requires {failed.name}")
    return account
