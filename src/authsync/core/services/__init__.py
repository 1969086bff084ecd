"""Core services exports."""

# Database Service
from .database.db_session import DbSessionService

# Token verification
from .jwt import KeyCache, TokenVerifier

# Identity provider
from .provider_client import ProviderClient

# Session Services
from .session.cookies import SessionCookies
from .session.credential_verifiers import (
    CredentialRequest,
    CredentialVerifier,
    CredentialVerifierRegistry,
)
from .session.session_manager import (
    EstablishedSession,
    SessionLifecycle,
    SessionManager,
    SessionPhase,
)

# User Services
from .user.identity_reconciler import IdentityReconciler, ensure_default_team

__all__ = [
    # Database Service
    "DbSessionService",
    # Token verification
    "KeyCache",
    "TokenVerifier",
    # Identity provider
    "ProviderClient",
    # Session Services
    "CredentialRequest",
    "CredentialVerifier",
    "CredentialVerifierRegistry",
    "EstablishedSession",
    "SessionCookies",
    "SessionLifecycle",
    "SessionManager",
    "SessionPhase",
    # User Services
    "IdentityReconciler",
    "ensure_default_team",
]
