"""Access token verification package."""

from .jwt_utils import preview_jwt
from .key_cache import KeyCache
from .token_verifier import TokenVerifier

__all__ = ["KeyCache", "TokenVerifier", "preview_jwt"]
