from datetime import UTC, datetime

import sqlalchemy as sa
from pydantic import BaseModel, ConfigDict
from pydantic import Field as PydanticField
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


class Entity(BaseModel):
    """Base domain entity.

    Rows are keyed by database-assigned integers, so ``id`` stays ``None``
    until the entity has been persisted.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int | None = PydanticField(
        default=None, description="Database identifier, assigned on insert"
    )
    created_at: datetime = PydanticField(default_factory=utc_now)
    updated_at: datetime = PydanticField(default_factory=utc_now)


class EntityTable(SQLModel, table=False):
    """Base table with an autoincrement integer key and timestamps."""

    id: int | None = Field(default=None, primary_key=True)

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_type=sa.DateTime(timezone=True),
        nullable=False,
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_type=sa.DateTime(timezone=True),
        nullable=False,
        sa_column_kwargs={
            "server_default": sa.func.now(),
            "onupdate": utc_now,
        },
    )
