"""Shared pytest fixtures and helpers for auth tests."""

from .app import *  # noqa: F401,F403
from .database import *  # noqa: F401,F403
from .keys import *  # noqa: F401,F403
from .provider import *  # noqa: F401,F403
