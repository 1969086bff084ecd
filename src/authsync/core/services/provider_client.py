"""HTTP client for the identity provider's user management API."""

from typing import Any
from urllib.parse import urlencode

import httpx
from loguru import logger
from pydantic import ValidationError

from src.authsync.core.errors import (
    AuthError,
    Conflict,
    EmailVerificationRequired,
    InvalidCredentials,
    NotFound,
    RateLimited,
    SessionExpired,
    UpstreamError,
    ValidationFailed,
)
from src.authsync.core.models.claims import AuthenticationResult, ProviderUser
from src.authsync.core.security import RequestMetadata
from src.authsync.runtime.config.config_data import IdentityProviderConfig

_GRANT_PASSWORD = "password"
_GRANT_CODE = "authorization_code"
_GRANT_REFRESH = "refresh_token"


def _error_body(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def map_provider_error(
    exc: httpx.HTTPStatusError, operation: str, *, grant: str | None = None
) -> AuthError:
    """Translate a provider HTTP error into a domain error.

    The returned error carries a safe message only; the provider's own message
    is logged here and the original exception is chained by the caller.
    """
    status = exc.response.status_code
    body = _error_body(exc.response)
    code = body.get("code") or body.get("error")
    logger.warning(
        "Identity provider rejected {} with {} ({}): {}",
        operation,
        status,
        code,
        body.get("message") or body.get("error_description"),
    )

    if status == 429:
        return RateLimited()
    if status == 403 and code == "email_verification_required":
        return EmailVerificationRequired(
            confirmation_id=body.get("user_id"),
            email=body.get("email"),
        )
    if grant == _GRANT_REFRESH and status in (400, 401):
        return SessionExpired()
    if grant is not None and status in (400, 401):
        return InvalidCredentials()
    if status == 404:
        return NotFound(f"{operation}: not found")
    if status == 409 or code in ("email_not_available", "user_already_exists"):
        return Conflict("account already exists")
    if status in (400, 422):
        return ValidationFailed(f"{operation} rejected")
    if status == 401:
        return UpstreamError("identity provider rejected our credentials", upstream_status=status)
    return UpstreamError(upstream_status=status, code=code)


class ProviderClient:
    """Async client for the provider's user management endpoints.

    Constructed once at startup and shared; every call carries bounded timeouts.
    """

    def __init__(
        self,
        config: IdentityProviderConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not config.client_id:
            raise ValueError("identity provider client_id is not configured")
        self._config = config
        self._client = httpx.AsyncClient(
            base_url=config.api_base_url.rstrip("/"),
            timeout=config.request_timeout_seconds,
            headers={"Authorization": f"Bearer {config.api_key or ''}"},
            transport=transport,
        )

    @property
    def client_id(self) -> str:
        return self._config.client_id or ""

    @property
    def jwks_url(self) -> str:
        return self._config.resolved_jwks_url

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        *,
        grant: str | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        try:
            resp = await self._client.request(method, path, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise map_provider_error(exc, operation, grant=grant) from exc
        except httpx.HTTPError as exc:
            logger.error("Identity provider call {} failed: {}", operation, exc)
            raise UpstreamError() from exc

        if not resp.content:
            return {}
        try:
            data = resp.json()
        except ValueError as exc:
            raise UpstreamError(f"{operation}: unreadable response") from exc
        return data if isinstance(data, dict) else {"data": data}

    @staticmethod
    def _user(data: Any, operation: str) -> ProviderUser:
        try:
            return ProviderUser.model_validate(data)
        except ValidationError as exc:
            raise UpstreamError(f"{operation}: unexpected user payload") from exc

    async def _authenticate(
        self, grant: str, params: dict[str, Any], metadata: RequestMetadata | None
    ) -> AuthenticationResult:
        payload: dict[str, Any] = {
            "client_id": self._config.client_id,
            "client_secret": self._config.api_key,
            "grant_type": grant,
            **params,
        }
        if metadata is not None:
            if metadata.ip_address:
                payload["ip_address"] = metadata.ip_address
            if metadata.user_agent:
                payload["user_agent"] = metadata.user_agent

        data = await self._request(
            "POST", "/user_management/authenticate", f"{grant} grant", grant=grant, json=payload
        )
        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise UpstreamError("authentication response without access token")
        return AuthenticationResult(
            access_token=access_token,
            refresh_token=data.get("refresh_token"),
            user=self._user(data.get("user"), f"{grant} grant"),
            authentication_method=data.get("authentication_method"),
        )

    async def authenticate_with_password(
        self, email: str, password: str, metadata: RequestMetadata | None = None
    ) -> AuthenticationResult:
        return await self._authenticate(
            _GRANT_PASSWORD, {"email": email, "password": password}, metadata
        )

    async def authenticate_with_code(
        self, code: str, metadata: RequestMetadata | None = None
    ) -> AuthenticationResult:
        return await self._authenticate(_GRANT_CODE, {"code": code}, metadata)

    async def authenticate_with_refresh_token(
        self, refresh_token: str, metadata: RequestMetadata | None = None
    ) -> AuthenticationResult:
        return await self._authenticate(
            _GRANT_REFRESH, {"refresh_token": refresh_token}, metadata
        )

    def authorization_url(
        self,
        *,
        state: str,
        provider: str | None = None,
        connection_id: str | None = None,
        redirect_uri: str | None = None,
    ) -> str:
        """Build the hosted authorization URL; no request is made."""
        params: dict[str, str] = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri or self._config.redirect_uri or "",
            "response_type": "code",
            "state": state,
        }
        if connection_id:
            params["connection_id"] = connection_id
        elif provider:
            params["provider"] = provider
        else:
            params["provider"] = "authkit"
        base = self._config.api_base_url.rstrip("/")
        return f"{base}/user_management/authorize?{urlencode(params)}"

    async def revoke_session(self, session_id: str) -> None:
        await self._request(
            "POST",
            "/user_management/sessions/revoke",
            "revoke session",
            json={"session_id": session_id},
        )

    async def send_verification_email(self, user_id: str) -> None:
        await self._request(
            "POST",
            f"/user_management/users/{user_id}/email_verification/send",
            "send verification email",
        )

    async def verify_email(self, user_id: str, code: str) -> ProviderUser:
        data = await self._request(
            "POST",
            f"/user_management/users/{user_id}/email_verification/confirm",
            "verify email",
            json={"code": code},
        )
        return self._user(data.get("user", data), "verify email")

    async def get_user(self, user_id: str) -> ProviderUser:
        data = await self._request(
            "GET", f"/user_management/users/{user_id}", "get user"
        )
        return self._user(data, "get user")

    async def list_users_by_email(self, email: str) -> list[ProviderUser]:
        data = await self._request(
            "GET",
            "/user_management/users",
            "list users",
            params={"email": email, "limit": 1},
        )
        return [self._user(item, "list users") for item in data.get("data") or []]

    async def create_user(
        self,
        email: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> ProviderUser:
        payload = {"email": email, "password": password}
        if first_name:
            payload["first_name"] = first_name
        if last_name:
            payload["last_name"] = last_name
        data = await self._request(
            "POST", "/user_management/users", "create user", json=payload
        )
        return self._user(data, "create user")

    async def send_password_reset(self, email: str, reset_url: str) -> None:
        await self._request(
            "POST",
            "/user_management/password_reset/send",
            "send password reset",
            json={"email": email, "password_reset_url": reset_url},
        )

    async def reset_password(self, token: str, new_password: str) -> ProviderUser:
        data = await self._request(
            "POST",
            "/user_management/password_reset/confirm",
            "reset password",
            json={"token": token, "new_password": new_password},
        )
        return self._user(data.get("user", data), "reset password")
