"""Entities organized by concept.

Each entity package contains:
- entity.py: domain model
- table.py: database persistence model
- repository.py: data access layer

Importing this package registers every table with the SQLModel metadata.
"""

from .auth_identity import AuthIdentity, AuthIdentityRepository, AuthIdentityTable
from .identity_store import IdentityStore
from .preference import PreferenceRepository, UserPreference, UserPreferenceTable
from .team import (
    Team,
    TeamMembership,
    TeamMembershipTable,
    TeamRepository,
    TeamRole,
    TeamTable,
)
from .user import User, UserRepository, UserTable

__all__ = [
    "AuthIdentity",
    "AuthIdentityRepository",
    "AuthIdentityTable",
    "IdentityStore",
    "PreferenceRepository",
    "Team",
    "TeamMembership",
    "TeamMembershipTable",
    "TeamRepository",
    "TeamRole",
    "TeamTable",
    "User",
    "UserPreference",
    "UserPreferenceTable",
    "UserRepository",
    "UserTable",
]
