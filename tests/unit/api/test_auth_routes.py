"""Unit tests for the session endpoints."""

from urllib.parse import parse_qs, urlsplit

import pytest
from fastapi.testclient import TestClient

from src.authsync.api.http.app_data import ApplicationDependencies
from src.authsync.core.errors import UpstreamError
from src.authsync.core.models.claims import SessionState
from src.authsync.runtime.config.config_data import ConfigData
from tests.fixtures.app import set_cookies
from tests.fixtures.database import in_store
from tests.fixtures.provider import VERIFICATION_CODE, FakeProviderClient

PASSWORD = "correct horse battery"


def cookie_headers(response) -> dict[str, str]:
    return {
        header.split("=", 1)[0]: header
        for header in response.headers.get_list("set-cookie")
    }


def assert_cleared(response) -> None:
    headers = cookie_headers(response)
    for name in ("access_token", "session_bundle"):
        assert headers[name].startswith(f'{name}="";')
        assert "Max-Age=0" in headers[name]


def state_from(location: str) -> str:
    return parse_qs(urlsplit(location).query)["state"][0]


def count_users(deps: ApplicationDependencies) -> int:
    return in_store(deps.database_service, deps.cipher, lambda store: store.users.count())


class TestSignupVerifyLogin:
    """Password signup, email verification and the first login."""

    def test_full_flow(
        self,
        client: TestClient,
        app_dependencies: ApplicationDependencies,
        fake_provider: FakeProviderClient,
    ):
        signup = client.post(
            "/auth/signup",
            json={"email": "alice@example.com", "password": PASSWORD, "first_name": "Alice"},
        )
        assert signup.status_code == 201
        body = signup.json()
        assert body["success"] is True
        assert body["message"] == "User registered"
        confirmation_id = body["confirmation_id"]
        assert ("send_verification", confirmation_id) in fake_provider.calls
        assert "access_token" not in cookie_headers(signup)

        verify = client.post(
            "/auth/verify/confirm",
            json={"code": VERIFICATION_CODE, "confirmation_id": confirmation_id},
        )
        assert verify.status_code == 200
        assert verify.json()["user"]["email_verified"] is True

        login = client.post(
            "/auth/login", json={"email": "alice@example.com", "password": PASSWORD}
        )
        assert login.status_code == 200
        assert login.json()["user"]["external_id"] == confirmation_id
        headers = cookie_headers(login)
        assert "HttpOnly" in headers["access_token"]
        assert "session_bundle" in headers

        me = client.get("/auth/me")
        assert me.status_code == 200
        teams = me.json()["teams"]
        assert [(t["name"], t["is_owner"], t["role"]) for t in teams] == [
            ("Alice's team", True, "owner")
        ]
        assert count_users(app_dependencies) == 1

    def test_duplicate_signup(self, client: TestClient, fake_provider: FakeProviderClient):
        fake_provider.add_user(email="alice@example.com")

        response = client.post(
            "/auth/signup", json={"email": "alice@example.com", "password": PASSWORD}
        )

        assert response.status_code == 409
        assert response.json() == {"success": False, "message": "account already exists"}

    def test_signup_validation(self, client: TestClient):
        response = client.post("/auth/signup", json={"email": "nope", "password": "short"})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "invalid request"
        assert {e["field"] for e in body["errors"]} == {"email", "password"}

    def test_wrong_verification_code(self, client: TestClient, fake_provider: FakeProviderClient):
        profile = fake_provider.add_user(email="alice@example.com")
        response = client.post(
            "/auth/verify/confirm", json={"code": "000000", "confirmation_id": profile.id}
        )
        assert response.status_code == 400

    def test_verify_requires_target(self, client: TestClient):
        response = client.post("/auth/verify/confirm", json={"code": VERIFICATION_CODE})
        assert response.status_code == 400
        assert response.json()["message"] == "user id required"

    def test_login_requires_verified_email(
        self, client: TestClient, fake_provider: FakeProviderClient
    ):
        fake_provider.require_verified_email = True
        profile = fake_provider.add_user(password=PASSWORD, email="alice@example.com")

        response = client.post(
            "/auth/login", json={"email": "alice@example.com", "password": PASSWORD}
        )

        assert response.status_code == 403
        assert response.json() == {
            "success": False,
            "message": "email verification required",
            "confirmation_id": profile.id,
            "email": "alice@example.com",
        }

    def test_invalid_credentials_clear_cookies(
        self, client: TestClient, fake_provider: FakeProviderClient
    ):
        fake_provider.add_user(password=PASSWORD, email="alice@example.com")

        response = client.post(
            "/auth/login", json={"email": "alice@example.com", "password": "wrong-password"}
        )

        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "invalid credentials"}
        assert_cleared(response)


class TestOAuthFlow:
    """Social login through the identity provider."""

    def test_authorize_and_callback(
        self, client: TestClient, fake_provider: FakeProviderClient
    ):
        authorize = client.get(
            "/auth/google/authorize", params={"redirect": "/teams"}, follow_redirects=False
        )
        assert authorize.status_code == 302
        location = authorize.headers["location"]
        query = parse_qs(urlsplit(location).query)
        assert query["provider"] == ["GoogleOAuth"]
        state = state_from(location)
        assert "/teams" not in state

        profile = fake_provider.add_user(email="alice@example.com", email_verified=True)
        code = fake_provider.issue_code(profile)
        callback = client.get(
            "/auth/google/callback",
            params={"code": code, "state": state},
            follow_redirects=False,
        )

        assert callback.status_code == 302
        assert callback.headers["location"] == "http://app.test/teams"
        assert "access_token" in cookie_headers(callback)
        assert "session_bundle" in cookie_headers(callback)

    def test_callback_provisions_default_team(
        self,
        client: TestClient,
        app_dependencies: ApplicationDependencies,
        fake_provider: FakeProviderClient,
    ):
        """A first login for a new subject creates the user and a 'My team' team."""
        authorize = client.get("/auth/google/authorize", follow_redirects=False)
        profile = fake_provider.add_user(email="b@example.com", email_verified=True)

        callback = client.get(
            "/auth/google/callback",
            params={
                "code": fake_provider.issue_code(profile),
                "state": state_from(authorize.headers["location"]),
            },
            follow_redirects=False,
        )

        assert callback.status_code == 302
        assert callback.headers["location"] == "http://app.test/dashboard"
        assert {"access_token", "session_bundle"} <= set(cookie_headers(callback))

        def teams(store):
            user = store.users.get_by_email("b@example.com")
            return [team.name for team in store.teams.list_for_user(user.id)]

        names = in_store(app_dependencies.database_service, app_dependencies.cipher, teams)
        assert names == ["My team"]

    def test_connection_id_is_preferred(self, client: TestClient):
        response = client.get("/auth/github/authorize", follow_redirects=False)
        query = parse_qs(urlsplit(response.headers["location"]).query)
        assert query["connection_id"] == ["conn_01GITHUB"]

    def test_offsite_redirect_falls_back(
        self, client: TestClient, fake_provider: FakeProviderClient
    ):
        authorize = client.get(
            "/auth/google/authorize",
            params={"redirect": "https://evil.example.com/phish"},
            follow_redirects=False,
        )
        profile = fake_provider.add_user(email="alice@example.com")
        callback = client.get(
            "/auth/google/callback",
            params={
                "code": fake_provider.issue_code(profile),
                "state": state_from(authorize.headers["location"]),
            },
            follow_redirects=False,
        )
        assert callback.headers["location"] == "http://app.test/dashboard"

    def test_callback_post_returns_json(
        self, client: TestClient, fake_provider: FakeProviderClient
    ):
        authorize = client.get("/auth/google/authorize", follow_redirects=False)
        profile = fake_provider.add_user(email="alice@example.com")

        response = client.post(
            "/auth/google/callback",
            params={
                "code": fake_provider.issue_code(profile),
                "state": state_from(authorize.headers["location"]),
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["redirect"] == "http://app.test/dashboard"
        assert body["user"]["external_id"] == profile.id

    def test_unknown_provider(self, client: TestClient):
        response = client.get("/auth/myspace/authorize", follow_redirects=False)
        assert response.status_code == 404
        assert response.json()["message"] == "provider not supported"

    def test_tampered_state(self, client: TestClient, fake_provider: FakeProviderClient):
        profile = fake_provider.add_user(email="alice@example.com")
        response = client.get(
            "/auth/google/callback",
            params={"code": fake_provider.issue_code(profile), "state": "gAAAAAforged"},
            follow_redirects=False,
        )
        assert response.status_code == 400
        assert response.json()["message"] == "invalid state"

    def test_missing_state(self, client: TestClient):
        response = client.get(
            "/auth/google/callback", params={"code": "c"}, follow_redirects=False
        )
        assert response.status_code == 400
        assert response.json()["message"] == "missing state"

    def test_provider_error(self, client: TestClient):
        authorize = client.get("/auth/google/authorize", follow_redirects=False)
        response = client.get(
            "/auth/google/callback",
            params={
                "error": "access_denied",
                "state": state_from(authorize.headers["location"]),
            },
            follow_redirects=False,
        )
        assert response.status_code == 400
        assert response.json()["message"] == "authentication failed"

    def test_invalid_code(self, client: TestClient):
        authorize = client.get("/auth/google/authorize", follow_redirects=False)
        response = client.get(
            "/auth/google/callback",
            params={"code": "bogus", "state": state_from(authorize.headers["location"])},
            follow_redirects=False,
        )
        assert response.status_code == 401
        assert_cleared(response)


class TestHostedLogin:
    """Delegated login on the provider's hosted page."""

    def test_authorize(self, client: TestClient):
        response = client.get("/auth/authorize", follow_redirects=False)
        assert response.status_code == 302
        query = parse_qs(urlsplit(response.headers["location"]).query)
        assert query["provider"] == ["authkit"]
        assert query["redirect_uri"] == ["http://testserver/auth/callback"]

    def test_callback_without_state(
        self, client: TestClient, fake_provider: FakeProviderClient
    ):
        profile = fake_provider.add_user(email="alice@example.com")
        response = client.get(
            "/auth/callback",
            params={"code": fake_provider.issue_code(profile)},
            follow_redirects=False,
        )
        assert response.status_code == 302
        assert response.headers["location"] == "http://app.test/dashboard"

    def test_callback_without_code(self, client: TestClient):
        response = client.get("/auth/callback", follow_redirects=False)
        assert response.status_code == 400
        assert response.json()["message"] == "missing code"


class TestDisabledMethods:
    """Only configured credential methods are served."""

    @pytest.fixture
    def test_config(self, test_config: ConfigData) -> ConfigData:
        test_config.auth.methods = ["password"]
        return test_config

    def test_oauth_disabled(self, client: TestClient):
        response = client.get("/auth/google/authorize", follow_redirects=False)
        assert response.status_code == 404
        assert response.json()["message"] == "oauth login is not enabled"

    def test_hosted_disabled(self, client: TestClient):
        response = client.get("/auth/authorize", follow_redirects=False)
        assert response.status_code == 404


class TestRefreshAndLogout:
    """Session maintenance endpoints."""

    def login(self, client: TestClient, fake_provider: FakeProviderClient):
        profile = fake_provider.add_user(password=PASSWORD, email="alice@example.com")
        response = client.post(
            "/auth/login", json={"email": "alice@example.com", "password": PASSWORD}
        )
        assert response.status_code == 200
        return profile

    def test_refresh(self, client: TestClient, fake_provider: FakeProviderClient):
        self.login(client, fake_provider)
        (issued,) = fake_provider.refresh_tokens

        response = client.post("/auth/refresh")

        assert response.status_code == 200
        assert response.json()["user"]["email"] == "alice@example.com"
        assert ("refresh", issued) in fake_provider.calls
        assert issued not in fake_provider.refresh_tokens
        assert {"access_token", "session_bundle"} <= set(cookie_headers(response))

    def test_refresh_without_bundle(self, client: TestClient):
        response = client.post("/auth/refresh")
        assert response.status_code == 401
        assert response.json()["message"] == "missing session"
        assert_cleared(response)

    def test_refresh_with_rejected_token(
        self, client: TestClient, app_dependencies: ApplicationDependencies
    ):
        bundle = app_dependencies.cipher.seal(SessionState(refresh_token="rt_revoked"))
        set_cookies(client, session_bundle=bundle)

        response = client.post("/auth/refresh")

        assert response.status_code == 401
        assert response.json()["message"] == "session expired"

    def test_logout_revokes_and_clears(
        self, client: TestClient, fake_provider: FakeProviderClient
    ):
        profile = self.login(client, fake_provider)

        response = client.post("/auth/logout")

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Logged out"}
        assert ("revoke", f"session_{profile.id}") in fake_provider.calls
        assert_cleared(response)

    def test_logout_survives_revoke_failure(
        self, client: TestClient, fake_provider: FakeProviderClient
    ):
        self.login(client, fake_provider)
        fake_provider.revoke_error = UpstreamError(upstream_status=503)

        response = client.post("/auth/logout")

        assert response.status_code == 200
        assert_cleared(response)

    def test_logout_without_session(self, client: TestClient, fake_provider: FakeProviderClient):
        response = client.post("/auth/logout")
        assert response.status_code == 200
        assert fake_provider.calls == []


class TestVerificationAndPasswordReset:
    """Account maintenance endpoints."""

    def test_send_verification_requires_session(self, client: TestClient):
        assert client.post("/auth/verify/send").status_code == 401

    def test_send_verification(self, client: TestClient, fake_provider: FakeProviderClient):
        profile = fake_provider.add_user(password=PASSWORD, email="alice@example.com")
        client.post("/auth/login", json={"email": "alice@example.com", "password": PASSWORD})

        response = client.post("/auth/verify/send")

        assert response.status_code == 200
        assert ("send_verification", profile.id) in fake_provider.calls

    def test_resend_verification(self, client: TestClient, fake_provider: FakeProviderClient):
        profile = fake_provider.add_user(email="alice@example.com")

        response = client.post("/auth/verify/resend", json={"email": "Alice@example.com"})

        assert response.status_code == 200
        assert response.json()["confirmation_id"] == profile.id

    def test_resend_unknown(self, client: TestClient):
        response = client.post("/auth/verify/resend", json={"email": "nobody@example.com"})
        assert response.status_code == 404
        assert response.json()["message"] == "user not found"

    @pytest.mark.parametrize("email", ["alice@example.com", "nobody@example.com"])
    def test_password_reset_does_not_leak_accounts(
        self, client: TestClient, fake_provider: FakeProviderClient, email
    ):
        fake_provider.add_user(email="alice@example.com")

        response = client.post("/auth/password/reset", json={"email": email})

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Password reset email sent"}

    def test_password_confirm(self, client: TestClient, fake_provider: FakeProviderClient):
        fake_provider.add_user(email="alice@example.com")

        ok = client.post(
            "/auth/password/confirm", json={"token": "reset-token", "password": PASSWORD}
        )
        bad = client.post(
            "/auth/password/confirm", json={"token": "expired", "password": PASSWORD}
        )

        assert ok.status_code == 200
        assert ok.json()["message"] == "Password updated"
        assert bad.status_code == 400
