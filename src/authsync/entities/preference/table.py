"""User preference database table model."""

from sqlmodel import Field

from src.authsync.entities._base import EntityTable


class UserPreferenceTable(EntityTable, table=True):
    """One preferences row per user."""

    __tablename__ = "user_preferences"

    user_id: int = Field(foreign_key="users.id", unique=True, nullable=False)
    theme: str = Field(default="system", max_length=32)
    language: str = Field(default="en", max_length=16)
