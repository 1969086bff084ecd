"""Domain error taxonomy.

Every error carries the HTTP status it maps to and a short, user-presentable
message. Exception handlers render them in the response envelope; the original
cause (an ``httpx`` error, an ``IntegrityError``) stays attached via ``__cause__``
for logging and is never sent to the client.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from src.authsync.core.models.claims import AccessTokenClaims


class AuthError(Exception):
    """Base class for every error surfaced to API clients."""

    status_code: int = 500
    default_message: str = "internal error"

    def __init__(self, message: str | None = None, **payload: Any) -> None:
        self.message = message or self.default_message
        self.payload = payload
        super().__init__(self.message)


# --- 400 --------------------------------------------------------------
class ValidationFailed(AuthError):
    status_code = 400
    default_message = "invalid request"


# --- 401 --------------------------------------------------------------
class AuthenticationFailed(AuthError):
    """Authentication errors; the response must clear the session cookies."""

    status_code = 401
    default_message = "unauthorized"


class MissingSession(AuthenticationFailed):
    default_message = "missing session"


class InvalidCredentials(AuthenticationFailed):
    default_message = "invalid credentials"


class SessionExpired(AuthenticationFailed):
    """The refresh token was rejected; the user has to sign in again."""

    default_message = "session expired"


class TokenValidationError(AuthenticationFailed):
    """Base class for access token validation failures."""

    default_message = "invalid access token"


class EmptyToken(TokenValidationError):
    default_message = "missing access token"


class MalformedToken(TokenValidationError):
    default_message = "malformed access token"


class UnsupportedAlgorithm(TokenValidationError):
    default_message = "unsupported signing algorithm"


class UnknownSigningKey(TokenValidationError):
    default_message = "unknown signing key"


class InvalidSignature(TokenValidationError):
    default_message = "invalid token signature"


class InvalidIssuer(TokenValidationError):
    default_message = "invalid token issuer"


class InvalidAudience(TokenValidationError):
    default_message = "invalid token audience"


class InvalidSubject(TokenValidationError):
    default_message = "invalid token subject"


class InvalidClaim(TokenValidationError):
    default_message = "invalid token claim"


class TokenExpired(TokenValidationError):
    """A token that is valid in every respect except its expiry.

    ``claims`` holds the parsed claims so callers can decide whether a refresh
    is worth attempting.
    """

    default_message = "access token expired"

    def __init__(self, claims: AccessTokenClaims, message: str | None = None) -> None:
        super().__init__(message)
        self.claims = claims


# --- 403 --------------------------------------------------------------
class Forbidden(AuthError):
    status_code = 403
    default_message = "forbidden"


class EmailVerificationRequired(Forbidden):
    default_message = "email verification required"

    def __init__(
        self,
        message: str | None = None,
        *,
        confirmation_id: str | None = None,
        email: str | None = None,
    ) -> None:
        super().__init__(message, confirmation_id=confirmation_id, email=email)
        self.confirmation_id = confirmation_id
        self.email = email


# --- 404 / 409 / 429 --------------------------------------------------
class NotFound(AuthError):
    status_code = 404
    default_message = "not found"


class Conflict(AuthError):
    status_code = 409
    default_message = "conflict"


class RateLimited(AuthError):
    status_code = 429
    default_message = "too many requests"


# --- 5xx --------------------------------------------------------------
class UpstreamError(AuthError):
    """The identity provider failed or answered with an unexpected error."""

    status_code = 502
    default_message = "identity provider unavailable"

    def __init__(
        self,
        message: str | None = None,
        *,
        upstream_status: int | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status
        self.code = code


class KeyFetchError(UpstreamError):
    default_message = "failed to fetch signing keys"


class PersistenceError(AuthError):
    status_code = 500
    default_message = "failed to persist user"
