from __future__ import annotations

import logging
import re

from flask import Blueprint, g, jsonify
from sqlalchemy import select
from werkzeug.security import generate_password_hash

from .auth import current_user, jwt_required
from .body_parsing import request_body
from .context import get_services
from .db import get_session
from .errors import AuthFailure, UpstreamError, ValidationFailure
from .jwt_utils import JWTError, decode as jwt_decode, issue_token_pair
from .models import User
from .routes import BASE_URL

log = logging.getLogger(__name__)

bp = Blueprint("auth", __name__, url_prefix=f"{BASE_URL}/auth")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 8


def _token_response(user: User, status: int = 200):
    cfg = get_services().config
    access, refresh, refresh_jti = issue_token_pair(
        user_id=user.id,
        email=user.email,
        secret=cfg.signing_secret,
        issuer=cfg.jwt_issuer,
        audience=cfg.jwt_audience,
        access_ttl=cfg.jwt_access_ttl,
        refresh_ttl=cfg.jwt_refresh_ttl,
    )
    # Only the latest refresh token stays valid
    user.refresh_token_jti = refresh_jti
    get_session().commit()
    payload = {
        "accessToken": access,
        "refreshToken": refresh,
        "tokenType": "Bearer",
        "expiresIn": cfg.jwt_access_ttl,
        "user": user.to_dict(),
    }
    return jsonify(payload), status


@bp.post("/register")
def register():
    data = request_body()
    email = str(data.get("email") or "").strip().lower()
    password = data.get("password")
    full_name = data.get("fullName")
    problems: dict[str, str] = {}
    if not _EMAIL_RE.match(email):
        problems["email"] = "a valid email address is required"
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        problems["password"] = f"password must be at least {MIN_PASSWORD_LENGTH} characters"
    if full_name is not None and not isinstance(full_name, str):
        problems["fullName"] = "fullName must be a string"
    if problems:
        raise ValidationFailure.from_fields(problems)
    db = get_session()
    if db.scalars(select(User).where(User.email == email)).first() is not None:
        raise UpstreamError("Email is already registered", code="EMAIL_TAKEN", status_code=409)
    user = User(email=email, password_hash=generate_password_hash(password), full_name=full_name)
    db.add(user)
    db.commit()
    log.info("user registered", extra={"user_id": user.id})
    return _token_response(user, 201)


@bp.post("/login")
def login():
    strategy = get_services().strategies["local"]
    user = strategy.authenticate(request_body())
    if user is None:
        raise AuthFailure("Invalid email or password", code="INVALID_CREDENTIALS")
    return _token_response(user)


@bp.post("/refresh")
def refresh():
    token = request_body().get("refreshToken")
    if not isinstance(token, str) or not token:
        raise ValidationFailure.from_fields({"refreshToken": "refreshToken is required"})
    cfg = get_services().config
    try:
        payload = jwt_decode(
            token,
            secrets_list=cfg.jwt_secrets,
            expected_type="refresh",
            issuer=cfg.jwt_issuer,
            audience=cfg.jwt_audience,
            leeway=cfg.jwt_leeway_seconds,
        )
    except JWTError as e:
        raise AuthFailure("Invalid or expired refresh token", code="AUTH_TOKEN_INVALID") from e
    user = get_session().get(User, payload["sub"])
    if user is None or not user.is_active or user.refresh_token_jti != payload["jti"]:
        raise AuthFailure("Refresh token has been revoked", code="AUTH_TOKEN_INVALID")
    return _token_response(user)


@bp.post("/logout")
@jwt_required
def logout():
    user = get_session().get(User, current_user().id)
    if user is not None:
        user.refresh_token_jti = None
        get_session().commit()
    return "", 204


@bp.get("/me")
@jwt_required
def me():
    user = get_session().get(User, g.user.id)
    if user is None:
        raise AuthFailure("Account no longer exists", code="AUTH_TOKEN_INVALID")
    return jsonify({"user": user.to_dict()})
