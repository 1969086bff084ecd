"""FastAPI dependency implementations."""

from __future__ import annotations

from collections.abc import Iterator

from fastapi import Depends, Request

from src.authsync.api.http.app_data import ApplicationDependencies
from src.authsync.api.http.middleware.auth import AuthContext
from src.authsync.core.errors import AuthenticationFailed
from src.authsync.core.services import (
    CredentialVerifierRegistry,
    IdentityReconciler,
    ProviderClient,
    SessionLifecycle,
    SessionManager,
)
from src.authsync.entities import IdentityStore
from src.authsync.runtime.config.config_data import ConfigData


def get_app_dependencies(request: Request) -> ApplicationDependencies:
    return request.app.state.app_dependencies


def get_app_config(
    deps: ApplicationDependencies = Depends(get_app_dependencies),
) -> ConfigData:
    """Configuration the running application was built with."""
    return deps.config


def get_session_manager(
    deps: ApplicationDependencies = Depends(get_app_dependencies),
) -> SessionManager:
    """Get the Session Manager instance."""
    return deps.session_manager


def get_provider_client(
    deps: ApplicationDependencies = Depends(get_app_dependencies),
) -> ProviderClient:
    """Get the identity provider client instance."""
    return deps.provider_client


def get_credential_verifiers(
    deps: ApplicationDependencies = Depends(get_app_dependencies),
) -> CredentialVerifierRegistry:
    return deps.credential_verifiers


def get_identity_store(
    deps: ApplicationDependencies = Depends(get_app_dependencies),
) -> Iterator[IdentityStore]:
    """Yield an identity store bound to a request-scoped database session."""
    with deps.database_service.session_scope() as db:
        yield IdentityStore(db, deps.cipher)


def get_auth_context(request: Request) -> AuthContext:
    """The authenticated identity; only available behind the auth middleware."""
    lifecycle: SessionLifecycle | None = getattr(request.state, "session", None)
    context: AuthContext | None = getattr(request.state, "auth", None)
    if lifecycle is None or context is None:
        raise AuthenticationFailed()
    lifecycle.require_active()
    return context


def get_identity_reconciler(
    deps: ApplicationDependencies = Depends(get_app_dependencies),
) -> IdentityReconciler:
    return deps.identity_reconciler
