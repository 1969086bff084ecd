"""User preference entity package."""

from .entity import UserPreference
from .repository import PreferenceRepository
from .table import UserPreferenceTable

__all__ = ["UserPreference", "UserPreferenceTable", "PreferenceRepository"]
