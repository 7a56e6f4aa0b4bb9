from __future__ import annotations

from dataclasses import dataclass
import asyncio
import json
import logging
import time
from typing import Any

import httpx
import jwt

from consulthub.core.config import Settings, get_settings
from consulthub.core.errors import InvalidCredential, MissingCredential


logger = logging.getLogger(__name__)

_ALLOWED_ALGS = {"RS256", "RS384", "RS512", "ES256", "ES384", "ES512"}


@dataclass(frozen=True)
class VerifiedIdentity:
    subject_id: str
    email: str | None
    name: str | None = None
    email_verified: bool = False


def parse_bearer_token(header_value: str | None) -> str:
    # Reject absent or non-Bearer headers before any verification work.
    if not header_value:
        raise MissingCredential("Missing bearer token")
    parts = header_value.split()
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1]:
        raise MissingCredential("Authorization header must use the Bearer scheme")
    return parts[1]


async def _fetch_jwks(jwks_url: str) -> dict[str, Any]:
    # Fetch JWKS from the identity provider for signature verification.
    settings = get_settings()
    timeout = settings.ext_call_timeout_ms / 1000
    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.get(jwks_url)
    response.raise_for_status()
    return response.json()


def _select_jwk(jwks: dict[str, Any], kid: str | None) -> dict[str, Any] | None:
    # Select the appropriate JWK based on the kid header.
    keys = jwks.get("keys") or []
    if kid:
        for key in keys:
            if key.get("kid") == kid:
                return key
        return None
    if len(keys) == 1:
        return keys[0]
    return None


def _jwk_to_key(jwk: dict[str, Any], alg: str) -> Any:
    # Convert a JWK payload into a cryptography key for PyJWT.
    payload = json.dumps(jwk)
    if alg.startswith("RS"):
        return jwt.algorithms.RSAAlgorithm.from_jwk(payload)
    if alg.startswith("ES"):
        return jwt.algorithms.ECAlgorithm.from_jwk(payload)
    raise InvalidCredential("Unsupported token algorithm")


def _claim_is_true(value: Any) -> bool:
    # Some providers serialize boolean claims as strings.
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True


def extract_identity(claims: dict[str, Any]) -> VerifiedIdentity:
    # Normalize provider claims into the identity consumed by the resolver.
    subject = claims.get("sub") or claims.get("user_id")
    if not subject:
        raise InvalidCredential("Token missing subject")
    email = claims.get("email")
    return VerifiedIdentity(
        subject_id=str(subject),
        email=str(email) if email else None,
        name=claims.get("name"),
        email_verified=_claim_is_true(claims.get("email_verified")),
    )


class TokenVerifier:
    """Verify identity-provider ID tokens against the provider's published JWKS.

    Verification is bounded by ``timeout_ms``; timeouts and key-fetch failures
    surface as ``InvalidCredential`` so callers see one failure kind for any
    token that could not be proven valid.
    """

    def __init__(
        self,
        *,
        issuer: str,
        audience: str,
        jwks_url: str,
        clock_skew_seconds: int = 60,
        timeout_ms: int = 5000,
        jwks_cache_ttl_s: int = 3600,
    ) -> None:
        self.issuer = issuer
        self.audience = audience
        self.jwks_url = jwks_url
        self.clock_skew_seconds = clock_skew_seconds
        self.timeout_ms = timeout_ms
        self.jwks_cache_ttl_s = jwks_cache_ttl_s
        self._jwks: dict[str, Any] | None = None
        self._jwks_expires_at = 0.0
        self._jwks_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenVerifier:
        return cls(
            issuer=settings.resolved_idp_issuer,
            audience=settings.resolved_idp_audience,
            jwks_url=settings.idp_jwks_url,
            clock_skew_seconds=settings.idp_clock_skew_seconds,
            timeout_ms=settings.idp_verify_timeout_ms,
            jwks_cache_ttl_s=settings.idp_jwks_cache_ttl_s,
        )

    async def verify_header(self, header_value: str | None) -> VerifiedIdentity:
        return await self.verify(parse_bearer_token(header_value))

    async def verify(self, token: str) -> VerifiedIdentity:
        if not token:
            raise MissingCredential("Missing bearer token")
        try:
            return await asyncio.wait_for(self._verify(token), timeout=self.timeout_ms / 1000)
        except asyncio.TimeoutError as exc:
            logger.warning("idp_token_verification_timeout timeout_ms=%s", self.timeout_ms)
            raise InvalidCredential("Identity verification timed out") from exc

    async def _verify(self, token: str) -> VerifiedIdentity:
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as exc:
            raise InvalidCredential("Malformed bearer token") from exc
        alg = header.get("alg")
        if not alg or alg not in _ALLOWED_ALGS:
            raise InvalidCredential("Unsupported token algorithm")
        jwk = await self._get_jwk(header.get("kid"))
        key = _jwk_to_key(jwk, alg)
        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=[alg],
                audience=self.audience,
                issuer=self.issuer,
                leeway=self.clock_skew_seconds,
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise InvalidCredential("Bearer token expired") from exc
        except jwt.InvalidTokenError as exc:
            logger.info("idp_token_rejected reason=%s", exc.__class__.__name__)
            raise InvalidCredential("Bearer token failed verification") from exc
        return extract_identity(claims)

    async def _get_jwk(self, kid: str | None) -> dict[str, Any]:
        # Refetch once on a kid miss to pick up provider key rotation.
        jwks = await self._load_jwks(force=False)
        jwk = _select_jwk(jwks, kid)
        if jwk is None:
            jwks = await self._load_jwks(force=True)
            jwk = _select_jwk(jwks, kid)
        if jwk is None:
            raise InvalidCredential("No matching signing key for token")
        return jwk

    async def _load_jwks(self, *, force: bool) -> dict[str, Any]:
        async with self._jwks_lock:
            now = time.monotonic()
            if not force and self._jwks is not None and self._jwks_expires_at > now:
                return self._jwks
            try:
                jwks = await _fetch_jwks(self.jwks_url)
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning("idp_jwks_fetch_failed url=%s error=%s", self.jwks_url, exc.__class__.__name__)
                raise InvalidCredential("Signing keys unavailable") from exc
            self._jwks = jwks
            self._jwks_expires_at = now + max(0, self.jwks_cache_ttl_s)
            return jwks
