"""Per-request session gate for protected routes."""

import re
from dataclasses import dataclass

from fastapi import Request
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from src.authsync.api.http.app_data import ApplicationDependencies
from src.authsync.core.errors import AuthError, AuthenticationFailed, TokenExpired
from src.authsync.core.models.claims import AccessTokenClaims
from src.authsync.core.security import DecryptionError, extract_request_metadata
from src.authsync.core.services import EstablishedSession, SessionLifecycle, SessionPhase
from src.authsync.entities import IdentityStore, User


@dataclass(frozen=True)
class AuthContext:
    """Identity attached to ``request.state.auth`` for downstream handlers."""

    email: str | None
    user: User
    claims: AccessTokenClaims


def is_public_path(
    path: str, skip_paths: list[str], patterns: list[re.Pattern[str]]
) -> bool:
    if path in skip_paths:
        return True
    return any(p.match(path) for p in patterns)


class AuthMiddleware(BaseHTTPMiddleware):
    """Validate the access cookie, refresh it once when expired, and load the user.

    Every rejection is a 401 in the standard envelope that also clears both
    session cookies. Infrastructure failures fail closed.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request.state.session = SessionLifecycle()
        deps: ApplicationDependencies = request.app.state.app_dependencies
        auth_config = deps.config.auth
        patterns = [re.compile(p) for p in auth_config.skip_path_patterns]

        if request.method == "OPTIONS" or is_public_path(
            request.url.path, auth_config.skip_paths, patterns
        ):
            return await call_next(request)

        try:
            context, refreshed = await self._authenticate(request, deps)
        except AuthError as exc:
            logger.info("Rejected request to {}: {}", request.url.path, exc.message)
            return self._reject(deps, exc.message)
        except SQLAlchemyError as exc:
            logger.error("Session lookup failed: {}", exc)
            return self._reject(deps, AuthenticationFailed.default_message)
        except (DecryptionError, LookupError) as exc:
            # stored tokens sealed under another key, or the identity vanished mid-refresh
            logger.warning("Stored identity unusable: {}", exc)
            return self._reject(deps, AuthenticationFailed.default_message)

        request.state.auth = context
        with logger.contextualize(user_id=context.user.id):
            response = await call_next(request)
        if refreshed is not None:
            deps.session_manager.set_session_cookies(response, refreshed)
        return response

    @staticmethod
    def _reject(deps: ApplicationDependencies, message: str) -> JSONResponse:
        response = JSONResponse(
            status_code=401, content={"success": False, "message": message}
        )
        deps.session_manager.clear_session_cookies(response)
        return response

    async def _authenticate(
        self, request: Request, deps: ApplicationDependencies
    ) -> tuple[AuthContext, EstablishedSession | None]:
        lifecycle: SessionLifecycle = request.state.session
        sessions = deps.session_manager

        token = sessions.cookies.read_access_token(request)
        if token is None:
            raise AuthenticationFailed("missing session")

        lifecycle.advance(SessionPhase.AUTHENTICATING)
        expired = False
        try:
            claims = await deps.token_verifier.parse_and_validate(token)
        except TokenExpired as exc:
            claims = exc.claims
            expired = True
            lifecycle.advance(SessionPhase.EXPIRED)

        refreshed: EstablishedSession | None = None
        with deps.database_service.session_scope() as db:
            store = IdentityStore(db, deps.cipher)
            identity = store.find_identity(sessions.provider_name, claims.subject)
            if identity is None:
                raise AuthenticationFailed("unknown identity")

            if expired:
                lifecycle.advance(SessionPhase.REFRESHING)
                if not identity.has_refresh_token:
                    raise AuthenticationFailed("session expired")
                refreshed = await sessions.refresh_identity(
                    store, identity, extract_request_metadata(request)
                )
                claims = refreshed.claims
                logger.info("Refreshed expired session for identity {}", identity.id)

            user = store.load_user(identity.user_id)
            if user is None:
                raise AuthenticationFailed("unknown user")

        lifecycle.advance(SessionPhase.ACTIVE)
        return AuthContext(email=claims.email or user.email, user=user, claims=claims), refreshed
