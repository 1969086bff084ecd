"""Pluggable credential verifiers, one per enabled login method."""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from typing import ClassVar

from src.authsync.core.errors import NotFound, ValidationFailed
from src.authsync.core.security import RequestMetadata
from src.authsync.core.services.session.session_manager import (
    EstablishedSession,
    SessionManager,
)


@dataclass(frozen=True)
class CredentialRequest:
    """Credentials presented by a client, plus where they came from."""

    metadata: RequestMetadata | None = None
    email: str | None = None
    password: str | None = None
    code: str | None = None


class CredentialVerifier(ABC):
    """Turns presented credentials into an established provider session."""

    method: ClassVar[str]

    def __init__(self, sessions: SessionManager) -> None:
        self._sessions = sessions

    @abstractmethod
    async def authenticate(self, credentials: CredentialRequest) -> EstablishedSession:
        raise NotImplementedError


class PasswordCredentialVerifier(CredentialVerifier):
    method = "password"

    async def authenticate(self, credentials: CredentialRequest) -> EstablishedSession:
        email = (credentials.email or "").strip()
        if not email or not credentials.password:
            raise ValidationFailed("email and password are required")
        return await self._sessions.authenticate_with_password(
            email, credentials.password, credentials.metadata
        )


class _CodeExchangeVerifier(CredentialVerifier):
    async def authenticate(self, credentials: CredentialRequest) -> EstablishedSession:
        code = (credentials.code or "").strip()
        if not code:
            raise ValidationFailed("authorization code is required")
        return await self._sessions.authenticate_with_code(code, credentials.metadata)


class OAuthCodeCredentialVerifier(_CodeExchangeVerifier):
    """Code returned by a social login started from ``/auth/{provider}/authorize``."""

    method = "oauth"


class DelegatedCodeCredentialVerifier(_CodeExchangeVerifier):
    """Code returned by the provider's hosted login page."""

    method = "delegated"


_VERIFIER_TYPES: dict[str, type[CredentialVerifier]] = {
    cls.method: cls
    for cls in (
        PasswordCredentialVerifier,
        OAuthCodeCredentialVerifier,
        DelegatedCodeCredentialVerifier,
    )
}


class CredentialVerifierRegistry:
    """The verifiers enabled for this deployment, keyed by method name."""

    def __init__(self, verifiers: Iterable[CredentialVerifier]) -> None:
        self._verifiers = {v.method: v for v in verifiers}

    @classmethod
    def from_methods(
        cls, methods: Iterable[str], sessions: SessionManager
    ) -> "CredentialVerifierRegistry":
        verifiers = []
        for method in methods:
            try:
                verifiers.append(_VERIFIER_TYPES[method](sessions))
            except KeyError:
                raise ValueError(f"Unknown credential method: {method}") from None
        return cls(verifiers)

    @property
    def methods(self) -> list[str]:
        return list(self._verifiers)

    def get(self, method: str) -> CredentialVerifier:
        verifier = self._verifiers.get(method)
        if verifier is None:
            raise NotFound(f"{method} login is not enabled")
        return verifier
