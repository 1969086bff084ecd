"""User domain entity."""

from datetime import datetime

from pydantic import Field

from src.authsync.entities._base import Entity


class User(Entity):
    """Local identity anchor for a person.

    Mirrors the identity provider's user record (email, name, avatar,
    verification) and is never hard-deleted.
    """

    email: str | None = Field(default=None, description="Normalized email address")
    name: str | None = Field(default=None, description="Display name")
    avatar_url: str | None = Field(default=None, description="Avatar image URL")
    external_id: str | None = Field(
        default=None, description="User id at the identity provider"
    )
    email_verified_at: datetime | None = Field(
        default=None, description="When the email was verified; None if unverified"
    )
    deleted_at: datetime | None = Field(default=None, description="Soft-delete marker")

    @property
    def is_verified(self) -> bool:
        return self.email_verified_at is not None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
