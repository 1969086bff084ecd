"""Access token verification against the provider's published signing keys."""

import time
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from urllib.parse import urlsplit

from authlib.jose import JsonWebToken
from authlib.jose.errors import BadSignatureError, JoseError
from loguru import logger

from src.authsync.core.errors import (
    EmptyToken,
    InvalidAudience,
    InvalidIssuer,
    InvalidSignature,
    InvalidSubject,
    MalformedToken,
    TokenExpired,
    UnknownSigningKey,
    UnsupportedAlgorithm,
)
from src.authsync.core.models.claims import AccessTokenClaims
from src.authsync.core.services.jwt.jwt_utils import (
    audience_values,
    parse_email_verified,
    parse_numeric_date,
    preview_jwt,
)
from src.authsync.core.services.jwt.key_cache import KeyCache


class TokenVerifier:
    """Validates provider-issued access tokens.

    Checks, in order: token shape, signing algorithm, signing key, signature,
    subject, date claims, issuer, audience and finally expiry. An expired token
    that passes every other check raises :class:`TokenExpired` carrying its
    claims so callers can attempt a refresh.
    """

    def __init__(
        self,
        key_cache: KeyCache,
        *,
        client_id: str,
        allowed_issuer_hosts: Iterable[str],
        algorithms: Iterable[str] = ("RS256",),
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._key_cache = key_cache
        self._client_id = client_id
        self._issuer_hosts = frozenset(h.lower() for h in allowed_issuer_hosts)
        self._algorithms = tuple(algorithms)
        self._jwt = JsonWebToken(list(self._algorithms))
        self._clock = clock

    async def parse_and_validate(self, access_token: str | None) -> AccessTokenClaims:
        if not access_token or not access_token.strip():
            raise EmptyToken()

        preview = preview_jwt(access_token)
        if preview.alg not in self._algorithms:
            logger.debug("Rejected token signed with {}", preview.alg)
            raise UnsupportedAlgorithm()
        if preview.kid is None:
            raise MalformedToken("access token has no key id")

        key = await self._key_cache.get_key(preview.kid)
        if key is None:
            raise UnknownSigningKey()

        try:
            raw_claims = self._jwt.decode(access_token, key)
        except BadSignatureError as exc:
            raise InvalidSignature() from exc
        except JoseError as exc:
            raise MalformedToken() from exc
        claims = dict(raw_claims)

        result = self._build_claims(claims)

        if result.expires_at.timestamp() <= self._clock():
            raise TokenExpired(result)
        return result

    def _build_claims(self, claims: dict) -> AccessTokenClaims:
        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise InvalidSubject()

        expires_at = parse_numeric_date(claims, "exp", required=True)
        issued_at = parse_numeric_date(claims, "iat", required=False)

        if not self._valid_issuer(claims.get("iss")):
            raise InvalidIssuer()
        if not self._includes_audience(claims.get("aud")):
            raise InvalidAudience()

        sid = claims.get("sid")
        email = claims.get("email")
        return AccessTokenClaims(
            subject=subject,
            session_id=sid if isinstance(sid, str) and sid else None,
            email=email if isinstance(email, str) and email else None,
            email_verified=parse_email_verified(claims.get("email_verified")),
            issued_at=issued_at,
            expires_at=expires_at or datetime.fromtimestamp(0, UTC),
            raw=claims,
        )

    def _valid_issuer(self, issuer) -> bool:
        if not isinstance(issuer, str) or not issuer:
            return False
        parsed = urlsplit(issuer)
        if parsed.scheme != "https":
            return False
        return (parsed.hostname or "").lower() in self._issuer_hosts

    def _includes_audience(self, aud) -> bool:
        expected = self._client_id.lower()
        return any(value.lower() == expected for value in audience_values(aud))
