"""Token, provider user and session transport models."""

from .claims import (
    AccessTokenClaims,
    AuthenticationResult,
    OAuthState,
    ProviderUser,
    SessionState,
)

__all__ = [
    "AccessTokenClaims",
    "AuthenticationResult",
    "OAuthState",
    "ProviderUser",
    "SessionState",
]
