from __future__ import annotations


class ConsultHubError(Exception):
    """Base error for ConsultHub."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str | None = None) -> None:
        # Fall back to the class docstring so every error carries a readable message.
        self.message = message or (self.__doc__ or self.code)
        super().__init__(self.message)


class MissingCredential(ConsultHubError):
    """No bearer credential was supplied."""

    code = "AUTH_MISSING_CREDENTIAL"
    status_code = 401


class InvalidCredential(ConsultHubError):
    """Bearer credential is malformed, expired, or failed signature checks."""

    code = "AUTH_INVALID_CREDENTIAL"
    status_code = 401


class Unauthorized(ConsultHubError):
    """Admin session is missing, invalid, expired, or orphaned."""

    code = "AUTH_UNAUTHORIZED"
    status_code = 401


class Forbidden(ConsultHubError):
    """Authenticated account lacks the role or verification required."""

    code = "AUTH_FORBIDDEN"
    status_code = 403


class UnverifiedEmail(Forbidden):
    """Identity provider has not confirmed the token's email."""

    code = "IDENTITY_EMAIL_UNVERIFIED"


class InvalidRequest(ConsultHubError):
    """Request payload failed a domain rule."""

    code = "BAD_REQUEST"
    status_code = 400


class MissingEmail(ConsultHubError):
    """Verified identity carries no email."""

    code = "IDENTITY_MISSING_EMAIL"
    status_code = 400


class NotFound(ConsultHubError):
    """Requested record does not exist."""

    code = "NOT_FOUND"
    status_code = 404


class AccountNotFound(NotFound):
    """No account matches the supplied identity."""

    code = "ACCOUNT_NOT_FOUND"


class InviteExpired(ConsultHubError):
    """Enterprise invite is past its expiry."""

    code = "INVITE_EXPIRED"
    status_code = 410


class StorageError(ConsultHubError):
    """Account store failure."""

    code = "STORAGE_ERROR"
    status_code = 500


class Conflict(StorageError):
    """Write collided with a uniqueness constraint."""

    code = "CONFLICT"
    status_code = 409
