"""Cookie transport for provider sessions."""

import time
from datetime import UTC, datetime
from typing import Any

from fastapi import Request, Response
from loguru import logger

from src.authsync.core.models.claims import SessionState
from src.authsync.core.security import DecryptionError, SecretBox
from src.authsync.runtime.config.config_data import AuthConfig

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class SessionCookies:
    """Issues, reads and clears the two session cookies.

    * access cookie: the raw bearer access token, ``SameSite=Strict``
    * session bundle: ``{refresh_token, session_id}`` sealed with Fernet, ``SameSite=Lax``

    Both are HttpOnly and ``Secure`` in production.
    """

    def __init__(self, config: AuthConfig, cipher: SecretBox, *, secure: bool) -> None:
        self._config = config
        self._cipher = cipher
        self._secure = secure

    @property
    def access_cookie_name(self) -> str:
        return self._config.access_cookie_name

    @property
    def session_cookie_name(self) -> str:
        return self._config.session_cookie_name

    def _base_settings(self) -> dict[str, Any]:
        settings: dict[str, Any] = {
            "httponly": True,
            "secure": self._secure,
            "path": "/",
        }
        if self._config.cookie_domain:
            settings["domain"] = self._config.cookie_domain
        return settings

    def access_max_age(self, expires_at: datetime | None, now: float | None = None) -> int:
        """Seconds until ``expires_at``; the configured fallback when that is not positive."""
        fallback = self._config.access_cookie_min_max_age_seconds
        if expires_at is None:
            return fallback
        remaining = int(expires_at.timestamp() - (time.time() if now is None else now))
        return remaining if remaining > 0 else fallback

    def set_session_cookies(
        self,
        response: Response,
        access_token: str,
        expires_at: datetime | None,
        state: SessionState | None,
    ) -> None:
        base = self._base_settings()
        response.set_cookie(
            key=self._config.access_cookie_name,
            value=access_token,
            max_age=self.access_max_age(expires_at),
            samesite="strict",
            **base,
        )
        if state is not None and state.refresh_token:
            response.set_cookie(
                key=self._config.session_cookie_name,
                value=self._cipher.seal(state),
                max_age=self._config.refresh_cookie_max_age_seconds,
                samesite="lax",
                **base,
            )

    def clear_session_cookies(self, response: Response) -> None:
        """Overwrite both cookies with an empty value that has already expired."""
        base = self._base_settings()
        for name, samesite in (
            (self._config.access_cookie_name, "strict"),
            (self._config.session_cookie_name, "lax"),
        ):
            response.set_cookie(
                key=name,
                value="",
                max_age=0,
                expires=_EPOCH,
                samesite=samesite,
                **base,
            )

    def read_access_token(self, request: Request) -> str | None:
        value = request.cookies.get(self._config.access_cookie_name)
        return value.strip() if value and value.strip() else None

    def read_session_state(self, request: Request) -> SessionState | None:
        sealed = request.cookies.get(self._config.session_cookie_name)
        if not sealed:
            return None
        try:
            return self._cipher.unseal(sealed, SessionState)
        except DecryptionError:
            logger.debug("Ignoring session bundle that failed to decrypt")
            return None
