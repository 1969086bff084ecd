import base64
import json
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Final

from src.authsync.core.errors import InvalidClaim, MalformedToken

# ---------------- tunables ----------------
MAX_JWT_CHARS: Final = 8192
MAX_HEADER_BYTES: Final = 8 * 1024
MAX_PAYLOAD_BYTES: Final = 64 * 1024
_ALLOWED: Final = frozenset(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_."
)  # no '='


def _split_compact(token: str) -> tuple[str, str, str]:
    if len(token) > MAX_JWT_CHARS:
        raise MalformedToken("access token too large")
    if not set(token) <= _ALLOWED:
        raise MalformedToken()
    parts = token.split(".")
    if len(parts) != 3 or not all(parts):
        raise MalformedToken()
    return parts[0], parts[1], parts[2]


def _decode_segment(segment: str, what: str, max_bytes: int) -> dict[str, Any]:
    pad = (-len(segment)) % 4
    try:
        raw = base64.urlsafe_b64decode(segment + "=" * pad)
    except ValueError as e:
        raise MalformedToken(f"invalid base64url in {what}") from e
    if len(raw) > max_bytes:
        raise MalformedToken(f"{what} too large")
    try:
        obj = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedToken(f"invalid JSON in {what}") from e
    if not isinstance(obj, dict):
        raise MalformedToken(f"{what} must be a JSON object")
    return obj


@dataclass(frozen=True)
class JwtPreview:
    header: dict[str, Any]
    claims: dict[str, Any]
    alg: str | None
    kid: str | None


def preview_jwt(token: str) -> JwtPreview:
    """Split and decode header+payload without verifying anything."""
    h_seg, p_seg, _ = _split_compact(token)
    header = _decode_segment(h_seg, "token header", MAX_HEADER_BYTES)
    claims = _decode_segment(p_seg, "token payload", MAX_PAYLOAD_BYTES)
    alg = header.get("alg")
    kid = header.get("kid")
    return JwtPreview(
        header=header,
        claims=claims,
        alg=alg if isinstance(alg, str) else None,
        kid=kid if isinstance(kid, str) and kid else None,
    )


def parse_numeric_date(claims: dict[str, Any], name: str, *, required: bool) -> datetime | None:
    """Read a NumericDate claim; wrong types are errors rather than defaults."""
    value = claims.get(name)
    if value is None:
        if required:
            raise InvalidClaim(f"missing {name} claim")
        return None
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise InvalidClaim(f"invalid {name} claim")
    try:
        return datetime.fromtimestamp(value, UTC)
    except (OverflowError, OSError, ValueError) as e:
        raise InvalidClaim(f"invalid {name} claim") from e


def parse_email_verified(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value == "true"
    return False


def audience_values(aud: Any) -> list[str]:
    if isinstance(aud, str):
        return [aud]
    if isinstance(aud, list):
        return [a for a in aud if isinstance(a, str)]
    return []
