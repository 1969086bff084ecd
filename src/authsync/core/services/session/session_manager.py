"""Session lifecycle: authenticate, refresh, persist, transport and revoke."""

from dataclasses import dataclass
from enum import StrEnum

from fastapi import Response
from loguru import logger

from src.authsync.core.errors import (
    AuthenticationFailed,
    NotFound,
    SessionExpired,
    UpstreamError,
)
from src.authsync.core.models.claims import (
    AccessTokenClaims,
    AuthenticationResult,
    SessionState,
)
from src.authsync.core.security import RequestMetadata
from src.authsync.core.services.jwt.token_verifier import TokenVerifier
from src.authsync.core.services.provider_client import ProviderClient
from src.authsync.core.services.session.cookies import SessionCookies
from src.authsync.core.services.user.identity_reconciler import (
    IdentityReconciler,
    ensure_default_team,
)
from src.authsync.entities import AuthIdentity, IdentityStore, User


class SessionPhase(StrEnum):
    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    ACTIVE = "active"
    EXPIRED = "expired"
    REFRESHING = "refreshing"
    LOGGED_OUT = "logged_out"


_TRANSITIONS: dict[SessionPhase, frozenset[SessionPhase]] = {
    SessionPhase.ANONYMOUS: frozenset(
        {SessionPhase.AUTHENTICATING, SessionPhase.LOGGED_OUT}
    ),
    SessionPhase.AUTHENTICATING: frozenset(
        {SessionPhase.ACTIVE, SessionPhase.EXPIRED, SessionPhase.ANONYMOUS}
    ),
    SessionPhase.ACTIVE: frozenset({SessionPhase.EXPIRED, SessionPhase.LOGGED_OUT}),
    SessionPhase.EXPIRED: frozenset({SessionPhase.REFRESHING, SessionPhase.ANONYMOUS}),
    SessionPhase.REFRESHING: frozenset({SessionPhase.ACTIVE, SessionPhase.ANONYMOUS}),
    SessionPhase.LOGGED_OUT: frozenset(),
}


class InvalidTransition(RuntimeError):
    pass


class SessionLifecycle:
    """Per-request session state.

    Anonymous -> Authenticating -> Active, with Expired -> Refreshing on the way
    when the access token has lapsed, and Logged out as the terminal phase.
    Only Active permits protected operations.
    """

    def __init__(self) -> None:
        self.phase = SessionPhase.ANONYMOUS

    def advance(self, phase: SessionPhase) -> None:
        if phase not in _TRANSITIONS[self.phase]:
            raise InvalidTransition(f"{self.phase} -> {phase}")
        self.phase = phase

    @property
    def is_active(self) -> bool:
        return self.phase is SessionPhase.ACTIVE

    def require_active(self) -> None:
        if not self.is_active:
            raise AuthenticationFailed()


@dataclass(frozen=True)
class EstablishedSession:
    """A provider grant whose access token passed validation."""

    result: AuthenticationResult
    claims: AccessTokenClaims

    @property
    def access_token(self) -> str:
        return self.result.access_token

    @property
    def refresh_token(self) -> str | None:
        return self.result.refresh_token

    @property
    def state(self) -> SessionState | None:
        if not self.result.refresh_token:
            return None
        return SessionState(
            refresh_token=self.result.refresh_token,
            session_id=self.claims.session_id,
        )


class SessionManager:
    """Orchestrates provider grants, token validation, local sync and cookies."""

    def __init__(
        self,
        provider: ProviderClient,
        verifier: TokenVerifier,
        cookies: SessionCookies,
        reconciler: IdentityReconciler,
    ) -> None:
        self._provider = provider
        self._verifier = verifier
        self._cookies = cookies
        self._reconciler = reconciler

    @property
    def provider_name(self) -> str:
        return self._reconciler.provider_name

    @property
    def cookies(self) -> SessionCookies:
        return self._cookies

    async def _validated(self, result: AuthenticationResult) -> EstablishedSession:
        claims = await self._verifier.parse_and_validate(result.access_token)
        if claims.subject != result.user.id:
            logger.warning("Access token subject does not match the authenticated user")
            raise AuthenticationFailed("token subject mismatch")
        return EstablishedSession(result=result, claims=claims)

    async def authenticate_with_password(
        self, email: str, password: str, metadata: RequestMetadata | None = None
    ) -> EstablishedSession:
        result = await self._provider.authenticate_with_password(email, password, metadata)
        return await self._validated(result)

    async def authenticate_with_code(
        self, code: str, metadata: RequestMetadata | None = None
    ) -> EstablishedSession:
        result = await self._provider.authenticate_with_code(code, metadata)
        return await self._validated(result)

    async def authenticate_with_refresh_token(
        self, refresh_token: str, metadata: RequestMetadata | None = None
    ) -> EstablishedSession:
        """Mint a new access token; a rejected refresh token means the session is dead."""
        if not refresh_token or not refresh_token.strip():
            raise SessionExpired()
        result = await self._provider.authenticate_with_refresh_token(refresh_token, metadata)
        return await self._validated(result)

    def establish(self, store: IdentityStore, session: EstablishedSession) -> User:
        """Reconcile the provider user locally and run the post-login hook."""
        user = self._reconciler.ensure_local_user(
            store,
            session.result.user,
            access_token=session.access_token,
            refresh_token=session.refresh_token,
        )
        ensure_default_team(store, user)
        return user

    async def refresh_identity(
        self,
        store: IdentityStore,
        identity: AuthIdentity,
        metadata: RequestMetadata | None = None,
    ) -> EstablishedSession:
        """Refresh using the identity's stored refresh token and persist the new pair."""
        if not identity.has_refresh_token or identity.id is None:
            raise SessionExpired()
        session = await self.authenticate_with_refresh_token(
            identity.refresh_token or "", metadata
        )
        if session.claims.subject != identity.subject:
            raise AuthenticationFailed("refreshed token belongs to another subject")
        with store.transaction():
            store.identities.update_tokens(
                identity.id, session.access_token, session.refresh_token
            )
        return session

    def set_session_cookies(self, response: Response, session: EstablishedSession) -> None:
        self._cookies.set_session_cookies(
            response, session.access_token, session.claims.expires_at, session.state
        )

    def clear_session_cookies(self, response: Response) -> None:
        self._cookies.clear_session_cookies(response)

    async def revoke_session(self, session_id: str | None) -> None:
        """Best-effort revocation; a session the provider no longer knows is not an error."""
        if not session_id:
            return
        try:
            await self._provider.revoke_session(session_id)
        except UpstreamError as exc:
            if exc.upstream_status != 401:
                raise
            logger.info("Session already revoked at the identity provider")
        except NotFound:
            logger.info("Session already revoked at the identity provider")
