"""User database table model."""

from datetime import datetime

import sqlalchemy as sa
from sqlmodel import Field

from src.authsync.entities._base import EntityTable

_ACTIVE = sa.text("deleted_at IS NULL")


class UserTable(EntityTable, table=True):
    """Database persistence model for users.

    Email and external id are unique among rows that are not soft-deleted.
    Emails are stored normalized (trimmed, lower-cased), which makes the
    uniqueness case-insensitive.
    """

    __tablename__ = "users"
    __table_args__ = (
        sa.Index(
            "uq_users_email_active",
            "email",
            unique=True,
            sqlite_where=_ACTIVE,
            postgresql_where=_ACTIVE,
        ),
        sa.Index(
            "uq_users_external_id_active",
            "external_id",
            unique=True,
            sqlite_where=_ACTIVE,
            postgresql_where=_ACTIVE,
        ),
    )

    email: str | None = Field(default=None, max_length=320)
    name: str | None = Field(default=None, max_length=255)
    avatar_url: str | None = Field(default=None, max_length=2048)
    external_id: str | None = Field(default=None, max_length=255)
    email_verified_at: datetime | None = Field(
        default=None, sa_type=sa.DateTime(timezone=True)
    )
    deleted_at: datetime | None = Field(
        default=None, sa_type=sa.DateTime(timezone=True)
    )
