from __future__ import annotations

from dataclasses import dataclass

import pytest

from consulthub.core.errors import Forbidden
from consulthub.services.auth.roles import (
    ROLES,
    all_of,
    any_of,
    check,
    has_role,
    is_admin,
    is_consultant,
    is_enterprise_member,
    is_enterprise_owner,
    is_user,
    is_verified,
    normalize_role,
    require,
)


@dataclass
class _Account:
    role: str
    is_verified: bool = True


def test_consultant_gate_admits_only_consultants() -> None:
    for role in ROLES:
        allowed = is_consultant(_Account(role=role))
        assert allowed is (role == "consultant")


def test_each_role_predicate_matches_its_role() -> None:
    predicates = {
        "user": is_user,
        "consultant": is_consultant,
        "enterprise_owner": is_enterprise_owner,
        "enterprise_member": is_enterprise_member,
        "admin": is_admin,
    }
    for role, predicate in predicates.items():
        assert predicate(_Account(role=role))
        assert not any(other(_Account(role=role)) for name, other in predicates.items() if name != role)


def test_verified_predicate_uses_account_flag() -> None:
    assert is_verified(_Account(role="consultant", is_verified=True))
    assert not is_verified(_Account(role="consultant", is_verified=False))


def test_composition_with_operators() -> None:
    verified_consultant = is_consultant & is_verified
    enterprise_side = is_enterprise_owner | is_enterprise_member
    assert verified_consultant(_Account(role="consultant"))
    assert not verified_consultant(_Account(role="consultant", is_verified=False))
    assert enterprise_side(_Account(role="enterprise_member"))
    assert not enterprise_side(_Account(role="user"))


def test_all_of_and_any_of_names_describe_the_gate() -> None:
    gate = all_of(has_role("consultant"), is_verified)
    assert gate.name == "role in consultant and verified"
    either = any_of(is_admin, is_enterprise_owner)
    assert either.name == "(role in admin or role in enterprise_owner)"


def test_check_reports_first_failing_predicate() -> None:
    account = _Account(role="enterprise_owner", is_verified=False)
    assert check(account, is_enterprise_owner, is_verified) is is_verified
    assert check(account, is_enterprise_owner) is None


def test_require_raises_forbidden() -> None:
    account = _Account(role="user")
    assert require(account, is_user) is account
    with pytest.raises(Forbidden) as excinfo:
        require(account, is_consultant)
    assert "consultant" in excinfo.value.message


def test_normalize_role_accepts_legacy_names() -> None:
    assert normalize_role("CONSULTANT") == "consultant"
    assert normalize_role("ENTERPRISE_ADMIN") == "enterprise_owner"
    with pytest.raises(ValueError):
        normalize_role("superuser")
