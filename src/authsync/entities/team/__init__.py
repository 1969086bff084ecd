"""Team entity package."""

from .entity import Team, TeamMembership, TeamRole
from .repository import TeamRepository
from .table import TeamMembershipTable, TeamTable

__all__ = [
    "Team",
    "TeamMembership",
    "TeamMembershipTable",
    "TeamRepository",
    "TeamRole",
    "TeamTable",
]
