"""Unit tests for pluggable credential verifiers."""

import pytest

from src.authsync.api.http.app_data import ApplicationDependencies
from src.authsync.core.errors import EmailVerificationRequired, NotFound, ValidationFailed
from src.authsync.core.services import CredentialRequest, CredentialVerifierRegistry
from src.authsync.core.services.session.credential_verifiers import (
    DelegatedCodeCredentialVerifier,
    OAuthCodeCredentialVerifier,
    PasswordCredentialVerifier,
)
from tests.fixtures.provider import FakeProviderClient


class TestCredentialVerifierRegistry:
    """Only configured methods are available."""

    def test_from_methods(self, app_dependencies: ApplicationDependencies):
        registry = CredentialVerifierRegistry.from_methods(
            ["password", "delegated"], app_dependencies.session_manager
        )

        assert registry.methods == ["password", "delegated"]
        assert isinstance(registry.get("password"), PasswordCredentialVerifier)
        assert isinstance(registry.get("delegated"), DelegatedCodeCredentialVerifier)

    def test_disabled_method(self, app_dependencies: ApplicationDependencies):
        registry = CredentialVerifierRegistry.from_methods(
            ["password"], app_dependencies.session_manager
        )
        with pytest.raises(NotFound, match="oauth login is not enabled"):
            registry.get("oauth")

    def test_unknown_method(self, app_dependencies: ApplicationDependencies):
        with pytest.raises(ValueError, match="Unknown credential method: saml"):
            CredentialVerifierRegistry.from_methods(
                ["saml"], app_dependencies.session_manager
            )

    def test_application_wires_configured_methods(
        self, app_dependencies: ApplicationDependencies
    ):
        assert app_dependencies.credential_verifiers.methods == [
            "password",
            "oauth",
            "delegated",
        ]


class TestCredentialVerifiers:
    """Each verifier validates its inputs and delegates to the session manager."""

    async def test_password(
        self, app_dependencies: ApplicationDependencies, fake_provider: FakeProviderClient
    ):
        profile = fake_provider.add_user(password="pw123456", email="alice@example.com")
        verifier = app_dependencies.credential_verifiers.get("password")

        session = await verifier.authenticate(
            CredentialRequest(email=" alice@example.com ", password="pw123456")
        )

        assert session.claims.subject == profile.id

    @pytest.mark.parametrize(
        "email,password", [(None, "pw"), ("  ", "pw"), ("alice@example.com", None)]
    )
    async def test_password_requires_both(
        self, app_dependencies: ApplicationDependencies, email, password
    ):
        verifier = app_dependencies.credential_verifiers.get("password")
        with pytest.raises(ValidationFailed):
            await verifier.authenticate(CredentialRequest(email=email, password=password))

    async def test_password_unverified_email(
        self, app_dependencies: ApplicationDependencies, fake_provider: FakeProviderClient
    ):
        fake_provider.require_verified_email = True
        profile = fake_provider.add_user(password="pw123456", email="alice@example.com")
        verifier = app_dependencies.credential_verifiers.get("password")

        with pytest.raises(EmailVerificationRequired) as excinfo:
            await verifier.authenticate(
                CredentialRequest(email="alice@example.com", password="pw123456")
            )
        assert excinfo.value.confirmation_id == profile.id

    @pytest.mark.parametrize("method", ["oauth", "delegated"])
    async def test_code_exchange(
        self,
        app_dependencies: ApplicationDependencies,
        fake_provider: FakeProviderClient,
        method,
    ):
        profile = fake_provider.add_user(email="alice@example.com")
        code = fake_provider.issue_code(profile)
        verifier = app_dependencies.credential_verifiers.get(method)

        session = await verifier.authenticate(CredentialRequest(code=code))

        assert session.claims.subject == profile.id
        assert ("code", code) in fake_provider.calls

    async def test_code_required(self, app_dependencies: ApplicationDependencies):
        verifier = app_dependencies.credential_verifiers.get("oauth")
        assert isinstance(verifier, OAuthCodeCredentialVerifier)
        with pytest.raises(ValidationFailed, match="authorization code"):
            await verifier.authenticate(CredentialRequest(code=" "))
