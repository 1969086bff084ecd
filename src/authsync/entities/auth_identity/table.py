"""Linked credential database table model."""

import sqlalchemy as sa
from sqlmodel import Field

from src.authsync.entities._base import EntityTable


class AuthIdentityTable(EntityTable, table=True):
    """Database persistence model for linked credentials.

    ``(provider, subject)`` is unique: an external identity links to at most one user.
    """

    __tablename__ = "auth_identities"
    __table_args__ = (
        sa.UniqueConstraint("provider", "subject", name="uq_identity_provider_subject"),
    )

    user_id: int = Field(foreign_key="users.id", index=True, nullable=False)
    provider: str = Field(max_length=64, nullable=False)
    subject: str = Field(max_length=255, nullable=False, index=True)
    email: str | None = Field(default=None, max_length=320)
    access_token_encrypted: str | None = Field(default=None, sa_type=sa.Text)
    refresh_token_encrypted: str | None = Field(default=None, sa_type=sa.Text)
