"""Unit tests for the session-gating middleware."""

import time

from fastapi.testclient import TestClient

from src.authsync.api.http.app_data import ApplicationDependencies
from src.authsync.core.errors import KeyFetchError
from src.authsync.core.models.claims import ProviderUser
from src.authsync.core.security import SecretBox
from src.authsync.entities import AuthIdentityRepository, User
from tests.fixtures.app import set_cookies
from tests.fixtures.database import in_store
from tests.fixtures.keys import TokenMinter
from tests.fixtures.provider import FakeProviderClient


def seed(
    deps: ApplicationDependencies, profile: ProviderUser, refresh_token: str | None = None
) -> User:
    return in_store(
        deps.database_service,
        deps.cipher,
        lambda store: deps.identity_reconciler.ensure_local_user(
            store, profile, access_token="at_seed", refresh_token=refresh_token
        ),
    )


def cleared(response) -> bool:
    headers = response.headers.get_list("set-cookie")
    return any(h.startswith('access_token="";') and "Max-Age=0" in h for h in headers) and any(
        h.startswith('session_bundle="";') and "Max-Age=0" in h for h in headers
    )


class TestAuthMiddleware:
    """Protected routes require a valid, linked session."""

    def test_public_paths_skip_auth(self, client: TestClient):
        assert client.get("/health").status_code == 200
        assert client.post("/auth/password/reset", json={"email": "x@example.com"}).status_code == 200

    def test_missing_cookie(self, client: TestClient):
        response = client.get("/auth/me")

        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "missing session"}
        assert cleared(response)

    def test_valid_session(
        self,
        client: TestClient,
        app_dependencies: ApplicationDependencies,
        fake_provider: FakeProviderClient,
        tokens: TokenMinter,
    ):
        profile = fake_provider.add_user(email="alice@example.com", first_name="Alice")
        user = seed(app_dependencies, profile)
        set_cookies(client, access_token=tokens.mint(sub=profile.id))

        response = client.get("/auth/me")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["user"]["id"] == user.id
        assert body["user"]["email"] == "alice@example.com"

    def test_malformed_token(self, client: TestClient):
        set_cookies(client, access_token="not-a-token")

        response = client.get("/auth/me")

        assert response.status_code == 401
        assert response.json()["message"] == "malformed access token"
        assert cleared(response)

    def test_unlinked_subject(self, client: TestClient, tokens: TokenMinter):
        set_cookies(client, access_token=tokens.mint(sub="user_01STRANGER"))

        response = client.get("/auth/me")

        assert response.status_code == 401
        assert response.json()["message"] == "unknown identity"

    def test_soft_deleted_user(
        self,
        client: TestClient,
        app_dependencies: ApplicationDependencies,
        fake_provider: FakeProviderClient,
        tokens: TokenMinter,
    ):
        profile = fake_provider.add_user(email="alice@example.com")
        user = seed(app_dependencies, profile)
        in_store(
            app_dependencies.database_service,
            app_dependencies.cipher,
            lambda store: store.users.soft_delete(user.id),
        )
        set_cookies(client, access_token=tokens.mint(sub=profile.id))

        response = client.get("/auth/me")

        assert response.status_code == 401
        assert response.json()["message"] == "unknown user"

    def test_signing_key_outage_fails_closed(
        self,
        client: TestClient,
        app_dependencies: ApplicationDependencies,
        tokens: TokenMinter,
    ):
        app_dependencies.key_cache.document = KeyFetchError()
        set_cookies(client, access_token=tokens.mint())

        response = client.get("/auth/me")

        assert response.status_code == 401
        assert cleared(response)

    def test_tokens_sealed_under_another_key(
        self,
        client: TestClient,
        app_dependencies: ApplicationDependencies,
        fake_provider: FakeProviderClient,
        tokens: TokenMinter,
    ):
        """A rotated cookie key makes stored tokens unreadable; that is a 401, not a 500."""
        profile = fake_provider.add_user(email="alice@example.com")
        in_store(
            app_dependencies.database_service,
            SecretBox(SecretBox.generate_key()),
            lambda store: app_dependencies.identity_reconciler.ensure_local_user(
                store, profile, access_token="at_old", refresh_token="rt_old"
            ),
        )
        set_cookies(client, access_token=tokens.mint(sub=profile.id))

        response = client.get("/auth/me")

        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "unauthorized"}
        assert cleared(response)

    def test_preflight_is_not_gated(self, client: TestClient):
        response = client.options(
            "/auth/me",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "GET",
            },
        )
        assert response.status_code == 200


class TestExpiredSessionRefresh:
    """An expired access token is refreshed once from the stored refresh token."""

    def test_refresh_then_retry(
        self,
        client: TestClient,
        app_dependencies: ApplicationDependencies,
        fake_provider: FakeProviderClient,
        tokens: TokenMinter,
    ):
        profile = fake_provider.add_user(email="alice@example.com")
        user = seed(app_dependencies, profile, refresh_token="rt_seed")
        fake_provider.refresh_tokens["rt_seed"] = profile.id
        expired = tokens.mint(sub=profile.id, exp=int(time.time()) - 10)
        set_cookies(client, access_token=expired)

        response = client.get("/auth/me")

        assert response.status_code == 200
        assert response.json()["user"]["id"] == user.id
        new_access = response.cookies.get("access_token")
        assert new_access and new_access != expired
        assert ("refresh", "rt_seed") in fake_provider.calls

        identity = in_store(
            app_dependencies.database_service,
            app_dependencies.cipher,
            lambda store: store.find_identity("workos", profile.id),
        )
        assert identity.refresh_token != "rt_seed"
        assert identity.refresh_token in fake_provider.refresh_tokens
        assert identity.access_token == new_access

    def test_expired_without_refresh_token(
        self,
        client: TestClient,
        app_dependencies: ApplicationDependencies,
        fake_provider: FakeProviderClient,
        tokens: TokenMinter,
    ):
        profile = fake_provider.add_user(email="alice@example.com")
        seed(app_dependencies, profile)
        set_cookies(client, access_token=tokens.mint(sub=profile.id, exp=int(time.time()) - 10))

        response = client.get("/auth/me")

        assert response.status_code == 401
        assert response.json()["message"] == "session expired"
        assert cleared(response)

    def test_rejected_refresh_token(
        self,
        client: TestClient,
        app_dependencies: ApplicationDependencies,
        fake_provider: FakeProviderClient,
        tokens: TokenMinter,
    ):
        profile = fake_provider.add_user(email="alice@example.com")
        seed(app_dependencies, profile, refresh_token="rt_revoked")
        set_cookies(client, access_token=tokens.mint(sub=profile.id, exp=int(time.time()) - 10))

        response = client.get("/auth/me")

        assert response.status_code == 401
        assert response.json()["message"] == "session expired"
        assert ("refresh", "rt_revoked") in fake_provider.calls

    def test_expired_forgery_is_not_refreshed(
        self,
        client: TestClient,
        app_dependencies: ApplicationDependencies,
        fake_provider: FakeProviderClient,
        rotated_signing_key,
    ):
        """Only tokens that are valid apart from their expiry trigger a refresh."""
        profile = fake_provider.add_user(email="alice@example.com")
        seed(app_dependencies, profile, refresh_token="rt_seed")
        fake_provider.refresh_tokens["rt_seed"] = profile.id
        forged = TokenMinter(rotated_signing_key, "sso_oidc_key_pair_01").mint(
            sub=profile.id, exp=int(time.time()) - 10
        )
        set_cookies(client, access_token=forged)

        response = client.get("/auth/me")

        assert response.status_code == 401
        assert response.json()["message"] == "invalid token signature"
        assert not any(call[0] == "refresh" for call in fake_provider.calls)

    def test_identity_removed_during_refresh(
        self,
        client: TestClient,
        app_dependencies: ApplicationDependencies,
        fake_provider: FakeProviderClient,
        tokens: TokenMinter,
        monkeypatch,
    ):
        profile = fake_provider.add_user(email="alice@example.com")
        seed(app_dependencies, profile, refresh_token="rt_seed")
        fake_provider.refresh_tokens["rt_seed"] = profile.id

        def gone(self, identity_id, access_token, refresh_token):
            raise LookupError(f"Identity {identity_id} not found")

        monkeypatch.setattr(AuthIdentityRepository, "update_tokens", gone)
        set_cookies(client, access_token=tokens.mint(sub=profile.id, exp=int(time.time()) - 10))

        response = client.get("/auth/me")

        assert response.status_code == 401
        assert response.json()["message"] == "unauthorized"
        assert cleared(response)
