"""Team and membership database table models."""

import sqlalchemy as sa
from sqlmodel import Field

from src.authsync.entities._base import EntityTable


class TeamTable(EntityTable, table=True):
    __tablename__ = "teams"

    name: str = Field(max_length=255, nullable=False)
    icon: str | None = Field(default=None, max_length=64)
    owner_id: int = Field(foreign_key="users.id", index=True, nullable=False)


class TeamMembershipTable(EntityTable, table=True):
    """Membership rows; one per (team, user)."""

    __tablename__ = "team_memberships"
    __table_args__ = (
        sa.UniqueConstraint("team_id", "user_id", name="uq_membership_team_user"),
    )

    team_id: int = Field(foreign_key="teams.id", index=True, nullable=False)
    user_id: int = Field(foreign_key="users.id", index=True, nullable=False)
    role: str = Field(default="regular", max_length=16, nullable=False)
