"""Team and membership domain entities."""

from enum import StrEnum

from pydantic import Field

from src.authsync.entities._base import Entity


class TeamRole(StrEnum):
    OWNER = "owner"
    ADMIN = "admin"
    REGULAR = "regular"


class Team(Entity):
    """Collaboration container with exactly one owner."""

    name: str = Field(description="Team name")
    icon: str | None = Field(default=None, description="Icon identifier")
    owner_id: int = Field(description="Owning user id")


class TeamMembership(Entity):
    """Join row between a team and a user, carrying the member's role."""

    team_id: int
    user_id: int
    role: TeamRole = Field(default=TeamRole.REGULAR)
