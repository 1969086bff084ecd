"""User preference domain entity."""

from pydantic import Field

from src.authsync.entities._base import Entity


class UserPreference(Entity):
    """Per-user UI preferences, created alongside the user."""

    user_id: int = Field(description="Owning user id")
    theme: str = Field(default="system", description="UI theme")
    language: str = Field(default="en", description="UI language")
