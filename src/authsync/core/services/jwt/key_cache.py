"""In-memory cache of the identity provider's public signing keys."""

import asyncio
import time
from collections.abc import Callable
from typing import Any

import httpx
from authlib.jose import JsonWebKey
from authlib.jose.errors import JoseError
from cachetools import TTLCache
from loguru import logger

from src.authsync.core.errors import KeyFetchError

_KEY_SET = "keys"


def parse_rsa_keys(document: Any) -> dict[str, Any]:
    """Build a kid -> public key mapping from a JWKS document.

    Entries that are not RSA keys, have no ``kid`` or cannot be imported are
    skipped individually. A document without a ``keys`` list is an error.
    """
    if not isinstance(document, dict) or not isinstance(document.get("keys"), list):
        raise KeyFetchError("signing key document has no key list")

    keys: dict[str, Any] = {}
    for entry in document["keys"]:
        if not isinstance(entry, dict) or entry.get("kty") != "RSA":
            logger.debug("Skipping non-RSA signing key entry")
            continue
        kid = entry.get("kid")
        if not isinstance(kid, str) or not kid:
            logger.debug("Skipping signing key without kid")
            continue
        try:
            keys[kid] = JsonWebKey.import_key(entry)
        except (JoseError, ValueError, TypeError, KeyError) as exc:
            logger.warning("Skipping malformed signing key {}: {}", kid, exc)
    return keys


class KeyCache:
    """kid -> RSA public key mapping with TTL-based and on-demand refresh.

    Lookups never wait on the lock. Refreshes are serialized: a task that had to
    wait for another task's fetch re-checks freshness before fetching again.
    """

    def __init__(
        self,
        jwks_url: str,
        *,
        ttl_seconds: float = 3600,
        timeout_seconds: float = 5.0,
        empty_retry_seconds: float = 30,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._jwks_url = jwks_url
        self._timeout = timeout_seconds
        self._timer = timer
        self._empty_retry = empty_retry_seconds
        self._empty_until = 0.0
        self._keys: TTLCache[str, dict[str, Any]] = TTLCache(
            maxsize=1, ttl=ttl_seconds, timer=timer
        )
        self._lock = asyncio.Lock()
        self._generation = 0

    @property
    def jwks_url(self) -> str:
        return self._jwks_url

    @property
    def generation(self) -> int:
        """Number of successful fetches so far."""
        return self._generation

    def is_fresh(self) -> bool:
        return bool(self._keys.get(_KEY_SET))

    def lookup(self, kid: str) -> Any | None:
        """Return the cached key for ``kid`` or ``None`` on a miss."""
        keys = self._keys.get(_KEY_SET)
        if not keys:
            return None
        return keys.get(kid)

    async def refresh(self, force: bool = False) -> None:
        """Fetch the key set when stale, empty, or when ``force`` is set.

        Raises:
            KeyFetchError: the document could not be fetched or parsed, or held no
                usable keys. An empty key set is not fetched again for
                ``empty_retry_seconds``.
        """
        if not force and self.is_fresh():
            return

        observed = self._generation
        async with self._lock:
            if not force and self.is_fresh():
                return
            if force and self._generation != observed:
                # Another task refreshed while this one waited for the lock.
                return

            if self._timer() < self._empty_until:
                raise KeyFetchError("no usable signing keys published")

            keys = parse_rsa_keys(await self.fetch_key_set())
            if not keys:
                self._empty_until = self._timer() + self._empty_retry
                logger.error("No usable signing keys published at {}", self._jwks_url)
                raise KeyFetchError("no usable signing keys published")
            self._empty_until = 0.0
            self._keys[_KEY_SET] = keys
            self._generation += 1
            logger.info(
                "Loaded {} signing key(s) from {}", len(keys), self._jwks_url
            )

    async def get_key(self, kid: str) -> Any | None:
        """Resolve ``kid``, refreshing on staleness and forcing one refresh on a miss."""
        before = self._generation
        await self.refresh()
        key = self.lookup(kid)
        if key is not None or self._generation != before:
            return key
        logger.debug("Signing key {} not cached, forcing refresh", kid)
        await self.refresh(force=True)
        return self.lookup(kid)

    async def fetch_key_set(self) -> dict[str, Any]:
        """Download the raw JWKS document."""
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(self._jwks_url)
                resp.raise_for_status()
                return resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Failed to fetch signing keys from {}: {}", self._jwks_url, exc)
            raise KeyFetchError() from exc

    def clear(self) -> None:
        self._keys.clear()
