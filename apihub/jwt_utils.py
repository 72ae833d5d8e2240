"""HS256 JSON Web Tokens for the bearer gate and the auth routes.

 - Access and refresh tokens share one claim set: sub, email, jti, iat, exp,
   iss, aud and type.
 - Verification accepts any configured secret (rotation); the header ``kid``
   picks the likely one first. Signing uses the first secret.
 - Time checks (exp, nbf, future iat, max age) allow ``leeway`` seconds.
 - ``is_revoked(jti)`` lets callers plug in a deny list.

Every failure raises ``JWTError`` with a short reason; callers map it to
``AuthFailure`` and never show the reason to clients.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import secrets
import time
from collections.abc import Callable, Sequence
from typing import Any, Literal, TypedDict


class JWTError(Exception):
    pass


DEFAULT_ACCESS_TTL = 900  # 15 min
DEFAULT_REFRESH_TTL = 1209600  # 14 days
SKEW_SECS = 30

ALG_HS256 = "HS256"

TokenType = Literal["access", "refresh"]
TOKEN_TYPES: tuple[str, ...] = ("access", "refresh")


class TokenPayload(TypedDict):
    sub: int
    email: str
    jti: str
    iat: int
    exp: int
    type: TokenType
    iss: str


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


def _json_segment(segment: str, what: str) -> dict[str, Any]:
    try:
        value = json.loads(_b64url_decode(segment))
    except ValueError as e:
        raise JWTError(f"bad {what}") from e
    if not isinstance(value, dict):
        raise JWTError(f"bad {what} type")
    return value


def _compact(obj: dict[str, Any]) -> str:
    return _b64url(json.dumps(obj, separators=(",", ":")).encode())


def _signature(signing_input: bytes, secret: str) -> str:
    return _b64url(hmac.new(secret.encode(), signing_input, hashlib.sha256).digest())


def generate_jti() -> str:
    return secrets.token_hex(16)


def key_id(secret: str) -> str:
    """Short, non-reversible fingerprint of a secret, sent as the ``kid`` header."""
    return hashlib.sha256(secret.encode()).hexdigest()[:8]


def encode(payload: dict[str, Any], *, secret: str, ttl: int, kid: str | None = None) -> str:
    now = int(time.time())
    header: dict[str, Any] = {"alg": ALG_HS256, "typ": "JWT"}
    if kid:
        header["kid"] = kid
    claims = {"iat": now, "exp": now + ttl, **payload}
    signing_input = f"{_compact(header)}.{_compact(claims)}"
    return f"{signing_input}.{_signature(signing_input.encode(), secret)}"


def _verify_signature(signing_input: bytes, sig: str, secrets_list: Sequence[str], kid: Any) -> None:
    # compare_digest rejects non-ASCII str operands with TypeError
    if not sig.isascii():
        raise JWTError("bad signature")
    candidates = sorted((s for s in secrets_list if s), key=lambda s: key_id(s) != kid)
    if not any(hmac.compare_digest(_signature(signing_input, s), sig) for s in candidates):
        raise JWTError("bad signature")


def _claim(claims: dict[str, Any], key: str, kind: type) -> Any:
    if key not in claims:
        raise JWTError(f"missing claim {key}")
    value = claims[key]
    # bool is an int subclass; never a valid numeric claim
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise JWTError(f"bad claim type {key}")
    return value


def _check_times(claims: dict[str, Any], iat: int, exp: int, *, leeway: int, max_age: int | None) -> None:
    nbf = claims.get("nbf")
    if nbf is not None and (not isinstance(nbf, int) or isinstance(nbf, bool)):
        raise JWTError("nbf")
    now = int(time.time())
    if now > exp + leeway:
        raise JWTError("token expired")
    if nbf is not None and now + leeway < nbf:
        raise JWTError("token not yet valid")
    if iat > now + leeway:
        raise JWTError("iat_future")
    if max_age is not None and now - iat > max_age + leeway:
        raise JWTError("max_age")


def _audience_ok(aud: Any, expected: str) -> bool:
    if isinstance(aud, str):
        return aud == expected
    if isinstance(aud, list):
        return expected in aud
    return False


def decode(
    token: str,
    *,
    secrets_list: Sequence[str],
    expected_type: TokenType | None = None,
    verify_exp: bool = True,
    issuer: str | None = None,
    audience: str | None = None,
    leeway: int = SKEW_SECS,
    max_age: int | None = None,
    is_revoked: Callable[[str], bool] | None = None,
) -> TokenPayload:
    parts = token.split(".")
    if len(parts) != 3:
        raise JWTError("malformed token")
    header_b, payload_b, sig = parts
    header = _json_segment(header_b, "header")
    if header.get("alg") != ALG_HS256:
        raise JWTError("alg")
    _verify_signature(f"{header_b}.{payload_b}".encode(), sig, secrets_list, header.get("kid"))

    claims = _json_segment(payload_b, "payload")
    token_type = claims.get("type")
    if token_type not in TOKEN_TYPES:
        raise JWTError("unknown token type")
    if expected_type and token_type != expected_type:
        raise JWTError("wrong token type")
    sub = _claim(claims, "sub", int)
    email = _claim(claims, "email", str)
    jti = _claim(claims, "jti", str)
    iat = _claim(claims, "iat", int)
    exp = _claim(claims, "exp", int)
    iss = _claim(claims, "iss", str)

    if verify_exp:
        _check_times(claims, iat, exp, leeway=leeway, max_age=max_age)
    if issuer and iss != issuer:
        raise JWTError("iss")
    if audience and not _audience_ok(claims.get("aud"), audience):
        raise JWTError("aud")
    if is_revoked and is_revoked(jti):
        raise JWTError("revoked")
    return TokenPayload(sub=sub, email=email, jti=jti, iat=iat, exp=exp, type=token_type, iss=iss)


def issue_token_pair(
    *,
    user_id: int,
    email: str,
    secret: str,
    issuer: str = "apihub",
    audience: str = "api",
    access_ttl: int = DEFAULT_ACCESS_TTL,
    refresh_ttl: int = DEFAULT_REFRESH_TTL,
) -> tuple[str, str, str]:
    """Return (access_token, refresh_token, refresh_jti)."""
    now = int(time.time())
    kid = key_id(secret)
    refresh_jti = generate_jti()
    base = {"sub": user_id, "email": email, "iss": issuer, "aud": audience, "iat": now}
    access = encode({**base, "jti": generate_jti(), "type": "access"}, secret=secret, ttl=access_ttl, kid=kid)
    refresh = encode({**base, "jti": refresh_jti, "type": "refresh"}, secret=secret, ttl=refresh_ttl, kid=kid)
    return access, refresh, refresh_jti


__all__ = [
    "DEFAULT_ACCESS_TTL",
    "DEFAULT_REFRESH_TTL",
    "JWTError",
    "SKEW_SECS",
    "TokenPayload",
    "decode",
    "encode",
    "generate_jti",
    "issue_token_pair",
    "key_id",
]
