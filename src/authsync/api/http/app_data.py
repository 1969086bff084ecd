from dataclasses import dataclass

from src.authsync.core.security import SecretBox
from src.authsync.core.services import (
    CredentialVerifierRegistry,
    DbSessionService,
    IdentityReconciler,
    KeyCache,
    ProviderClient,
    SessionCookies,
    SessionManager,
    TokenVerifier,
)
from src.authsync.runtime.config.config_data import ConfigData


@dataclass
class ApplicationDependencies:
    config: ConfigData
    database_service: DbSessionService
    cipher: SecretBox
    key_cache: KeyCache
    token_verifier: TokenVerifier
    provider_client: ProviderClient
    session_cookies: SessionCookies
    identity_reconciler: IdentityReconciler
    session_manager: SessionManager
    credential_verifiers: CredentialVerifierRegistry


def build_application_dependencies(
    config: ConfigData,
    *,
    database_service: DbSessionService | None = None,
    provider_client: ProviderClient | None = None,
    key_cache: KeyCache | None = None,
    cipher: SecretBox | None = None,
) -> ApplicationDependencies:
    """Wire the application-wide services from configuration.

    Any service passed in is used as-is, which is how tests swap in fakes.
    """
    idp = config.identity_provider
    if cipher is None:
        cipher = SecretBox(config.auth.cookie_encryption_key or SecretBox.generate_key())
    if provider_client is None:
        provider_client = ProviderClient(idp)
    if key_cache is None:
        key_cache = KeyCache(
            idp.resolved_jwks_url,
            ttl_seconds=idp.jwks_cache_ttl_seconds,
            timeout_seconds=idp.jwks_timeout_seconds,
        )
    token_verifier = TokenVerifier(
        key_cache,
        client_id=provider_client.client_id,
        allowed_issuer_hosts=idp.allowed_issuer_hosts,
        algorithms=idp.allowed_algorithms,
    )
    session_cookies = SessionCookies(
        config.auth, cipher, secure=config.app.is_production
    )
    reconciler = IdentityReconciler(idp.name)
    session_manager = SessionManager(
        provider_client, token_verifier, session_cookies, reconciler
    )
    return ApplicationDependencies(
        config=config,
        database_service=database_service or DbSessionService(),
        cipher=cipher,
        key_cache=key_cache,
        token_verifier=token_verifier,
        provider_client=provider_client,
        session_cookies=session_cookies,
        identity_reconciler=reconciler,
        session_manager=session_manager,
        credential_verifiers=CredentialVerifierRegistry.from_methods(
            config.auth.methods, session_manager
        ),
    )
