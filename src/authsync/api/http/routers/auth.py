"""Session endpoints: signup, login, OAuth, refresh, logout, verification and password reset."""

from typing import Any

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse, RedirectResponse
from loguru import logger
from pydantic import BaseModel, EmailStr, Field

from src.authsync.api.http.deps import (
    get_app_config,
    get_auth_context,
    get_credential_verifiers,
    get_identity_reconciler,
    get_identity_store,
    get_provider_client,
    get_session_manager,
)
from src.authsync.api.http.envelope import success
from src.authsync.api.http.middleware.auth import AuthContext
from src.authsync.core.errors import (
    AuthError,
    MissingSession,
    NotFound,
    ValidationFailed,
)
from src.authsync.core.models.claims import OAuthState
from src.authsync.core.security import (
    DecryptionError,
    extract_request_metadata,
    generate_secure_token,
    resolve_redirect,
    sanitize_redirect,
)
from src.authsync.core.services import (
    CredentialRequest,
    CredentialVerifierRegistry,
    IdentityReconciler,
    ProviderClient,
    SessionManager,
    SessionPhase,
    ensure_default_team,
)
from src.authsync.entities import IdentityStore, Team, User
from src.authsync.runtime.config.config_data import ConfigData, OAuthProviderConfig

router = APIRouter(prefix="/auth", tags=["auth"])


class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=256)
    first_name: str | None = Field(default=None, max_length=128)
    last_name: str | None = Field(default=None, max_length=128)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=256)


class VerifyEmailRequest(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    confirmation_id: str | None = None
    user_id: str | None = None


class EmailRequest(BaseModel):
    email: EmailStr


class PasswordResetConfirmRequest(BaseModel):
    token: str = Field(min_length=1)
    password: str = Field(min_length=8, max_length=256)


def user_payload(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "external_id": user.external_id,
        "email": user.email,
        "email_verified": user.is_verified,
        "name": user.name,
        "avatar_url": user.avatar_url,
    }


def team_payload(team: Team, user: User, role: str | None) -> dict[str, Any]:
    return {
        "id": team.id,
        "name": team.name,
        "icon": team.icon,
        "is_owner": team.owner_id == user.id,
        "role": role,
    }


def _oauth_provider(config: ConfigData, name: str) -> OAuthProviderConfig:
    provider = config.identity_provider.oauth_providers.get(name.strip().lower())
    if provider is None or not provider.enabled:
        raise NotFound("provider not supported")
    return provider


def _seal_state(request: Request, config: ConfigData, redirect: str | None) -> str:
    path = sanitize_redirect(redirect, config.app.app_url) or config.app.post_login_path
    state = OAuthState(redirect=path, nonce=generate_secure_token(16))
    return request.app.state.app_dependencies.cipher.seal(state)


def _redirect_from_state(
    request: Request, config: ConfigData, state: str | None, *, required: bool
) -> str:
    """Return path carried by the OAuth ``state``; a tampered or stale state is rejected."""
    if not state:
        if required:
            raise ValidationFailed("missing state")
        return config.app.post_login_path
    try:
        decoded = request.app.state.app_dependencies.cipher.unseal(
            state, OAuthState, ttl=config.auth.oauth_state_ttl_seconds
        )
    except DecryptionError:
        raise ValidationFailed("invalid state") from None
    return decoded.redirect


# --- Password flows --------------------------------------------------------
@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(
    body: SignupRequest,
    verifiers: CredentialVerifierRegistry = Depends(get_credential_verifiers),
    provider: ProviderClient = Depends(get_provider_client),
    reconciler: IdentityReconciler = Depends(get_identity_reconciler),
    store: IdentityStore = Depends(get_identity_store),
) -> dict[str, Any]:
    """Register with the identity provider; no session until the email is verified."""
    verifiers.get("password")
    profile = await provider.create_user(
        body.email, body.password, body.first_name, body.last_name
    )
    reconciler.ensure_local_user(store, profile)

    try:
        await provider.send_verification_email(profile.id)
    except AuthError as exc:
        logger.warning("Failed to send verification email: {}", exc.message)

    return success("User registered", confirmation_id=profile.id)


@router.post("/login")
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    verifiers: CredentialVerifierRegistry = Depends(get_credential_verifiers),
    sessions: SessionManager = Depends(get_session_manager),
    store: IdentityStore = Depends(get_identity_store),
) -> dict[str, Any]:
    session = await verifiers.get("password").authenticate(
        CredentialRequest(
            metadata=extract_request_metadata(request),
            email=body.email,
            password=body.password,
        )
    )
    user = sessions.establish(store, session)
    sessions.set_session_cookies(response, session)
    return success(user=user_payload(user))


# --- OAuth / hosted login -------------------------------------------------
@router.get("/authorize")
async def authorize_hosted(
    request: Request,
    redirect: str | None = None,
    verifiers: CredentialVerifierRegistry = Depends(get_credential_verifiers),
    provider: ProviderClient = Depends(get_provider_client),
    config: ConfigData = Depends(get_app_config),
) -> RedirectResponse:
    """Send the browser to the provider's hosted login page."""
    verifiers.get("delegated")
    url = provider.authorization_url(state=_seal_state(request, config, redirect))
    return RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)


@router.get("/{provider_name}/authorize")
async def authorize_social(
    provider_name: str,
    request: Request,
    redirect: str | None = None,
    verifiers: CredentialVerifierRegistry = Depends(get_credential_verifiers),
    provider: ProviderClient = Depends(get_provider_client),
    config: ConfigData = Depends(get_app_config),
) -> RedirectResponse:
    verifiers.get("oauth")
    oauth = _oauth_provider(config, provider_name)
    url = provider.authorization_url(
        state=_seal_state(request, config, redirect),
        provider=oauth.provider,
        connection_id=oauth.connection_id,
    )
    return RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)


async def _complete_code_login(
    request: Request,
    method: str,
    code: str | None,
    error: str | None,
    redirect_path: str,
    verifiers: CredentialVerifierRegistry,
    sessions: SessionManager,
    store: IdentityStore,
    config: ConfigData,
) -> Response:
    if error and error.strip():
        logger.info("Provider returned an authorization error: {}", error)
        raise ValidationFailed("authentication failed")
    if not code or not code.strip():
        raise ValidationFailed("missing code")

    session = await verifiers.get(method).authenticate(
        CredentialRequest(metadata=extract_request_metadata(request), code=code)
    )
    user = sessions.establish(store, session)
    target = resolve_redirect(redirect_path, config.app.app_url, config.app.post_login_path)

    response: Response
    if request.method == "GET":
        response = RedirectResponse(url=target, status_code=status.HTTP_302_FOUND)
    else:
        response = JSONResponse(success(user=user_payload(user), redirect=target))
    sessions.set_session_cookies(response, session)
    return response


@router.api_route("/callback", methods=["GET", "POST"])
async def hosted_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    verifiers: CredentialVerifierRegistry = Depends(get_credential_verifiers),
    sessions: SessionManager = Depends(get_session_manager),
    store: IdentityStore = Depends(get_identity_store),
    config: ConfigData = Depends(get_app_config),
) -> Response:
    redirect_path = _redirect_from_state(request, config, state, required=False)
    return await _complete_code_login(
        request, "delegated", code, error, redirect_path, verifiers, sessions, store, config
    )


@router.api_route("/{provider_name}/callback", methods=["GET", "POST"])
async def social_callback(
    provider_name: str,
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    verifiers: CredentialVerifierRegistry = Depends(get_credential_verifiers),
    sessions: SessionManager = Depends(get_session_manager),
    store: IdentityStore = Depends(get_identity_store),
    config: ConfigData = Depends(get_app_config),
) -> Response:
    _oauth_provider(config, provider_name)
    redirect_path = _redirect_from_state(request, config, state, required=True)
    return await _complete_code_login(
        request, "oauth", code, error, redirect_path, verifiers, sessions, store, config
    )


# --- Session maintenance --------------------------------------------------
@router.post("/refresh")
async def refresh(
    request: Request,
    response: Response,
    sessions: SessionManager = Depends(get_session_manager),
    store: IdentityStore = Depends(get_identity_store),
) -> dict[str, Any]:
    """Mint a new access token from the session bundle cookie."""
    state = sessions.cookies.read_session_state(request)
    if state is None:
        raise MissingSession()
    session = await sessions.authenticate_with_refresh_token(
        state.refresh_token, extract_request_metadata(request)
    )
    user = sessions.establish(store, session)
    sessions.set_session_cookies(response, session)
    return success(user=user_payload(user))


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    sessions: SessionManager = Depends(get_session_manager),
) -> dict[str, Any]:
    """Clear the session locally; remote revocation is best-effort."""
    state = sessions.cookies.read_session_state(request)
    if state is not None and state.session_id:
        try:
            await sessions.revoke_session(state.session_id)
        except AuthError as exc:
            logger.warning("Failed to revoke session: {}", exc.message)
    sessions.clear_session_cookies(response)
    request.state.session.advance(SessionPhase.LOGGED_OUT)
    return success("Logged out")


@router.get("/me")
async def me(
    auth: AuthContext = Depends(get_auth_context),
    store: IdentityStore = Depends(get_identity_store),
) -> dict[str, Any]:
    user = auth.user
    teams = store.teams.list_for_user(user.id) if user.id is not None else []
    payload = []
    for team in teams:
        roles = {m.user_id: m.role for m in store.teams.members(team.id)}
        payload.append(team_payload(team, user, roles.get(user.id)))
    return success(user=user_payload(user), teams=payload)


# --- Email verification ---------------------------------------------------
@router.post("/verify/send")
async def send_verification(
    auth: AuthContext = Depends(get_auth_context),
    provider: ProviderClient = Depends(get_provider_client),
) -> dict[str, Any]:
    if not auth.user.external_id:
        raise ValidationFailed("account is not linked to the identity provider")
    await provider.send_verification_email(auth.user.external_id)
    return success("Verification email sent")


@router.post("/verify/confirm")
async def confirm_verification(
    body: VerifyEmailRequest,
    provider: ProviderClient = Depends(get_provider_client),
    reconciler: IdentityReconciler = Depends(get_identity_reconciler),
    store: IdentityStore = Depends(get_identity_store),
) -> dict[str, Any]:
    target = (body.confirmation_id or body.user_id or "").strip()
    if not target:
        raise ValidationFailed("user id required")
    profile = await provider.verify_email(target, body.code.strip())
    user = reconciler.ensure_local_user(store, profile)
    ensure_default_team(store, user)
    return success("Email verified", user=user_payload(user))


@router.post("/verify/resend")
async def resend_verification(
    body: EmailRequest,
    provider: ProviderClient = Depends(get_provider_client),
) -> dict[str, Any]:
    users = await provider.list_users_by_email(body.email)
    if not users:
        raise NotFound("user not found")
    await provider.send_verification_email(users[0].id)
    return success("Verification email sent", confirmation_id=users[0].id)


# --- Password reset -------------------------------------------------------
@router.post("/password/reset")
async def request_password_reset(
    body: EmailRequest,
    provider: ProviderClient = Depends(get_provider_client),
    config: ConfigData = Depends(get_app_config),
) -> dict[str, Any]:
    """Answer the same way whether or not the account exists."""
    reset_url = f"{config.app.app_url.rstrip('/')}/auth/password/confirm"
    try:
        await provider.send_password_reset(body.email, reset_url)
    except (NotFound, ValidationFailed):
        logger.debug("Password reset requested for an unknown account")
    return success("Password reset email sent")


@router.post("/password/confirm")
async def confirm_password_reset(
    body: PasswordResetConfirmRequest,
    provider: ProviderClient = Depends(get_provider_client),
) -> dict[str, Any]:
    await provider.reset_password(body.token.strip(), body.password)
    return success("Password updated")
