from __future__ import annotations

import secrets
import string

from passlib.context import CryptContext
from passlib.exc import UnknownHashError


def _argon2_available() -> bool:
    # Prefer argon2 only when its backend is installed.
    from passlib.handlers.argon2 import argon2

    return bool(argon2.has_backend())


def _build_pwd_context() -> CryptContext:
    if _argon2_available():
        # Keep PBKDF2 verifiable for hashes written before argon2 was installed.
        return CryptContext(schemes=["argon2", "pbkdf2_sha256"], default="argon2", deprecated="auto")
    return CryptContext(schemes=["pbkdf2_sha256"], default="pbkdf2_sha256", deprecated="auto")


pwd_context = _build_pwd_context()

_TEMP_ALPHABET = string.ascii_letters + string.digits


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        return pwd_context.verify(plain_password, password_hash)
    except (UnknownHashError, ValueError):
        return False


def validate_password(password: str, *, min_length: int) -> list[str]:
    # Return policy violations; an empty list means the password is acceptable.
    problems: list[str] = []
    if len(password) < min_length:
        problems.append(f"must be at least {min_length} characters")
    if not any(ch.isalpha() for ch in password):
        problems.append("must contain a letter")
    if not any(ch.isdigit() for ch in password):
        problems.append("must contain a digit")
    return problems


def generate_temp_password(length: int = 12) -> str:
    return "".join(secrets.choice(_TEMP_ALPHABET) for _ in range(max(8, length)))
