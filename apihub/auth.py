"""Authentication context and the bearer-token gate.

Two independent pieces:

 - ``init_auth_context`` resets ``g.user`` per request. It never rejects.
 - ``init_jwt_gate`` guards every mount flagged ``guarded`` in the route table.
   A missing or invalid bearer token is answered right here with a 401
   envelope; the mount's handlers never run. A valid token attaches
   ``g.user``.

``jwt_required`` applies the same verification to individual views (used by
auth routes such as /me); there the AuthFailure goes to the error terminal.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import ParamSpec, TypeVar

from flask import Flask, g, request
from werkzeug.wrappers.response import Response

from .context import get_services
from .errors import LOG_PREFIX, AuthFailure
from .http_errors import error_response
from .jwt_utils import JWTError, decode as jwt_decode
from .routes import RouteTable, bypasses_pipeline

log = logging.getLogger("apihub.auth")

P = ParamSpec("P")
R = TypeVar("R")


@dataclass(frozen=True)
class AuthenticatedUser:
    id: int
    email: str
    token_id: str

    def to_dict(self) -> dict[str, object]:
        return {"id": self.id, "email": self.email}


def bearer_token() -> str | None:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def authenticate_bearer() -> AuthenticatedUser:
    token = bearer_token()
    if token is None:
        raise AuthFailure("No authorization token was found", code="AUTH_TOKEN_MISSING")
    cfg = get_services().config
    try:
        payload = jwt_decode(
            token,
            secrets_list=cfg.jwt_secrets,
            expected_type="access",
            issuer=cfg.jwt_issuer,
            audience=cfg.jwt_audience,
            leeway=cfg.jwt_leeway_seconds,
            max_age=cfg.jwt_max_age_seconds,
        )
    except JWTError as e:
        log.debug("jwt rejected", extra={"reason": str(e), "path": request.path})
        raise AuthFailure("Invalid or expired token", code="AUTH_TOKEN_INVALID") from e
    return AuthenticatedUser(id=payload["sub"], email=payload["email"], token_id=payload["jti"])


def current_user() -> AuthenticatedUser:
    user = getattr(g, "user", None)
    if user is None:
        raise AuthFailure()
    return user


def verify_jwt() -> Callable[[], Response | None]:
    """Build a gate: returns a 401 response to short-circuit, None to continue."""

    def gate() -> Response | None:
        try:
            g.user = authenticate_bearer()
        except AuthFailure as err:
            log.info(
                "%s: %s",
                LOG_PREFIX,
                err.message,
                extra={"code": err.code, "path": request.path, "method": request.method},
            )
            return error_response(err)
        return None

    return gate


def jwt_required(fn: Callable[P, R]) -> Callable[P, R]:
    @wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        g.user = authenticate_bearer()
        return fn(*args, **kwargs)

    return wrapper


def init_auth_context(app: Flask) -> None:
    @app.before_request
    def _auth_context() -> None:
        if bypasses_pipeline(request.endpoint):
            return
        g.user = None


def init_jwt_gate(app: Flask, routes: RouteTable) -> None:
    gate = verify_jwt()

    @app.before_request
    def _guard_mounts() -> Response | None:
        if bypasses_pipeline(request.endpoint):
            return None
        mount = routes.resolve(request.path)
        if mount is None or not mount.guarded:
            return None
        return gate()


__all__ = [
    "AuthenticatedUser",
    "authenticate_bearer",
    "bearer_token",
    "current_user",
    "init_auth_context",
    "init_jwt_gate",
    "jwt_required",
    "verify_jwt",
]
