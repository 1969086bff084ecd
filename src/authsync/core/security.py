"""Security helpers: random tokens, authenticated encryption, redirects, client metadata."""

import base64
import secrets
from dataclasses import dataclass
from typing import TypeVar
from urllib.parse import urlsplit

from cryptography.fernet import Fernet, InvalidToken
from fastapi import Request
from pydantic import BaseModel, ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


def generate_secure_token(length: int = 32) -> str:
    """Generate a cryptographically secure random token.

    Args:
        length: Number of random bytes to generate (default 32)

    Returns:
        URL-safe base64 encoded token
    """
    return (
        base64.urlsafe_b64encode(secrets.token_bytes(length))
        .decode("utf-8")
        .rstrip("=")
    )


def normalize_email(email: str | None) -> str:
    """Trim and lower-case an email address; ``None`` becomes the empty string."""
    return (email or "").strip().lower()


class DecryptionError(ValueError):
    """Raised when a sealed value was tampered with, expired or is not ours."""


class SecretBox:
    """Authenticated encryption for values that round-trip through clients or storage.

    Backed by Fernet (AES-128-CBC + HMAC-SHA256), so any modification of the
    ciphertext is detected on decryption.
    """

    def __init__(self, key: str | bytes) -> None:
        self._fernet = Fernet(key)

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode()

    def encrypt(self, value: str) -> str:
        return self._fernet.encrypt(value.encode()).decode()

    def decrypt(self, token: str, *, ttl: int | None = None) -> str:
        try:
            return self._fernet.decrypt(token.encode(), ttl=ttl).decode()
        except (InvalidToken, UnicodeError) as exc:
            raise DecryptionError("invalid or expired sealed value") from exc

    def seal(self, model: BaseModel) -> str:
        return self.encrypt(model.model_dump_json())

    def unseal(self, token: str, model: type[ModelT], *, ttl: int | None = None) -> ModelT:
        raw = self.decrypt(token, ttl=ttl)
        try:
            return model.model_validate_json(raw)
        except ValidationError as exc:
            raise DecryptionError(f"sealed value is not a {model.__name__}") from exc


def sanitize_redirect(raw: str | None, app_url: str) -> str:
    """Reduce a caller-supplied redirect target to a safe path.

    Relative paths are kept as-is. Absolute URLs are accepted only when they point
    at the application host, in which case only path, query and fragment are kept.
    Anything else yields the empty string.
    """
    raw = (raw or "").strip()
    if not raw or any(ord(c) < 32 for c in raw):
        return ""
    if raw.startswith("/"):
        # Protocol-relative URLs ("//evil.example") would leave the site.
        return "" if raw.startswith("//") or raw.startswith("/\\") else raw

    target = urlsplit(raw)
    base = urlsplit(app_url)
    if target.scheme not in ("http", "https") or not target.netloc or not base.netloc:
        return ""
    if target.netloc.lower() != base.netloc.lower():
        return ""

    path = target.path or "/"
    if target.query:
        path += f"?{target.query}"
    if target.fragment:
        path += f"#{target.fragment}"
    return path


def resolve_redirect(path: str | None, app_url: str, default_path: str) -> str:
    """Turn a sanitized redirect path into an absolute URL on the application."""
    safe = sanitize_redirect(path, app_url) or sanitize_redirect(default_path, app_url)
    return app_url.rstrip("/") + (safe or "/")


@dataclass(frozen=True)
class RequestMetadata:
    """Client details forwarded to the identity provider for risk scoring."""

    ip_address: str | None
    user_agent: str | None


def extract_request_metadata(request: Request) -> RequestMetadata:
    forwarded = request.headers.get("x-forwarded-for", "")
    ip = forwarded.split(",")[0].strip() if forwarded else ""
    if not ip and request.client:
        ip = request.client.host
    return RequestMetadata(
        ip_address=ip or None,
        user_agent=request.headers.get("user-agent") or None,
    )
