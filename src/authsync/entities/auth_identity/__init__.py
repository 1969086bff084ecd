"""Linked credential entity package."""

from .entity import AuthIdentity
from .repository import AuthIdentityRepository
from .table import AuthIdentityTable

__all__ = ["AuthIdentity", "AuthIdentityTable", "AuthIdentityRepository"]
