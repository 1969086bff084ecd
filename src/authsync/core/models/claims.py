"""Typed views over provider tokens and provider user records."""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AccessTokenClaims(BaseModel):
    """Validated access token claims.

    Only the token verifier builds this from the raw claim map; everything
    downstream works with the typed fields.
    """

    model_config = ConfigDict(frozen=True)

    subject: str = Field(description="Provider user id (sub)")
    session_id: str | None = Field(default=None, description="Provider session id (sid)")
    email: str | None = Field(default=None, description="Email claim, if present")
    email_verified: bool = Field(default=False, description="Email verified flag")
    issued_at: datetime | None = Field(default=None, description="iat")
    expires_at: datetime = Field(description="exp")
    raw: dict[str, Any] = Field(default_factory=dict, description="All claims as sent")

    @property
    def expires_at_timestamp(self) -> int:
        return int(self.expires_at.timestamp())


class ProviderUser(BaseModel):
    """A user record as returned by the identity provider."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(description="Provider user id")
    email: str | None = Field(default=None)
    first_name: str | None = Field(default=None)
    last_name: str | None = Field(default=None)
    nickname: str | None = Field(default=None)
    email_verified: bool = Field(default=False)
    profile_picture_url: str | None = Field(default=None)
    updated_at: datetime | None = Field(default=None)

    @property
    def display_name(self) -> str | None:
        """First and last name joined, falling back to whichever part is set, then nickname."""
        parts = [p.strip() for p in (self.first_name, self.last_name) if p and p.strip()]
        if parts:
            return " ".join(parts)
        if self.nickname and self.nickname.strip():
            return self.nickname.strip()
        return None

    def verified_timestamp(self) -> datetime | None:
        if not self.email_verified:
            return None
        return self.updated_at or datetime.now(UTC)


class AuthenticationResult(BaseModel):
    """Outcome of a successful grant against the identity provider."""

    access_token: str
    refresh_token: str | None = None
    user: ProviderUser
    authentication_method: str | None = None


class SessionState(BaseModel):
    """Contents of the encrypted session bundle cookie."""

    refresh_token: str
    session_id: str | None = None


class OAuthState(BaseModel):
    """Contents of the encrypted OAuth ``state`` parameter."""

    redirect: str
    nonce: str
