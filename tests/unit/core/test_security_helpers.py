"""Unit tests for redirect sanitizing, sealing and request metadata."""

import pytest
from pydantic import BaseModel
from starlette.requests import Request

from src.authsync.core.models.claims import OAuthState
from src.authsync.core.security import (
    DecryptionError,
    SecretBox,
    extract_request_metadata,
    generate_secure_token,
    normalize_email,
    resolve_redirect,
    sanitize_redirect,
)

APP_URL = "https://app.example.com"


def make_request(headers: dict[str, str], client=("10.0.0.1", 1234)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": client,
    }
    return Request(scope)


class TestSanitizeRedirect:
    """Caller-supplied redirects never leave the application origin."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("/dashboard", "/dashboard"),
            ("/teams?tab=members#top", "/teams?tab=members#top"),
            ("https://app.example.com/settings?x=1", "/settings?x=1"),
            ("https://APP.example.com", "/"),
            ("https://evil.example.com/settings", ""),
            ("//evil.example.com", ""),
            ("/\\evil.example.com", ""),
            ("javascript:alert(1)", ""),
            ("/path\nwith-newline", ""),
            ("", ""),
            (None, ""),
        ],
    )
    def test_sanitize(self, raw, expected):
        assert sanitize_redirect(raw, APP_URL) == expected

    def test_resolve_falls_back_to_default(self):
        assert resolve_redirect("https://evil.example.com", APP_URL, "/home") == (
            "https://app.example.com/home"
        )

    def test_resolve_keeps_safe_path(self):
        assert resolve_redirect("/teams", APP_URL + "/", "/home") == (
            "https://app.example.com/teams"
        )


class TestSecretBox:
    """Authenticated encryption of cookie and state values."""

    def test_seal_unseal(self):
        box = SecretBox(SecretBox.generate_key())
        sealed = box.seal(OAuthState(redirect="/teams", nonce="n1"))

        assert "/teams" not in sealed
        assert box.unseal(sealed, OAuthState) == OAuthState(redirect="/teams", nonce="n1")

    def test_tampered_value_rejected(self):
        box = SecretBox(SecretBox.generate_key())
        sealed = box.encrypt("payload")
        tampered = sealed[:-4] + ("AAAA" if not sealed.endswith("AAAA") else "BBBB")

        with pytest.raises(DecryptionError):
            box.decrypt(tampered)

    def test_foreign_key_rejected(self):
        sealed = SecretBox(SecretBox.generate_key()).encrypt("payload")
        with pytest.raises(DecryptionError):
            SecretBox(SecretBox.generate_key()).decrypt(sealed)

    def test_wrong_model_rejected(self):
        class Other(BaseModel):
            value: int

        box = SecretBox(SecretBox.generate_key())
        sealed = box.seal(OAuthState(redirect="/", nonce="n"))
        with pytest.raises(DecryptionError, match="not a Other"):
            box.unseal(sealed, Other)

    def test_expired_value_rejected(self):
        box = SecretBox(SecretBox.generate_key())
        sealed = box.encrypt("payload")
        with pytest.raises(DecryptionError):
            box.decrypt(sealed, ttl=-1)


class TestHelpers:
    def test_normalize_email(self):
        assert normalize_email("  Alice@Example.COM ") == "alice@example.com"
        assert normalize_email(None) == ""

    def test_generate_secure_token_unique(self):
        first, second = generate_secure_token(), generate_secure_token()
        assert first != second
        assert "=" not in first

    def test_metadata_prefers_forwarded_for(self):
        request = make_request(
            {"X-Forwarded-For": "203.0.113.7, 10.0.0.2", "User-Agent": "pytest"}
        )
        metadata = extract_request_metadata(request)

        assert metadata.ip_address == "203.0.113.7"
        assert metadata.user_agent == "pytest"

    def test_metadata_falls_back_to_client(self):
        metadata = extract_request_metadata(make_request({}))

        assert metadata.ip_address == "10.0.0.1"
        assert metadata.user_agent is None
