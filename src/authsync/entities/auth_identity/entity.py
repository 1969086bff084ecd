"""Linked credential domain entity."""

from pydantic import Field

from src.authsync.entities._base import Entity


class AuthIdentity(Entity):
    """Link between a local user and one external authentication method.

    Tokens are held in plaintext on the entity; the repository encrypts them
    before they reach the database.
    """

    user_id: int = Field(description="Owning user id")
    provider: str = Field(description="Provider tag, e.g. 'workos'")
    subject: str = Field(description="Provider-side subject id")
    email: str | None = Field(default=None, description="Provider email snapshot")
    access_token: str | None = Field(default=None, description="Latest access token")
    refresh_token: str | None = Field(default=None, description="Latest refresh token")

    @property
    def has_refresh_token(self) -> bool:
        return bool(self.refresh_token and self.refresh_token.strip())
