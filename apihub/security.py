"""Security headers and CORS.

Headers (every response, error responses and static files included):
 - X-Frame-Options: DENY
 - Referrer-Policy: same-origin
 - Content-Security-Policy rendered from config ``contentSecurityPolicy``
 - X-Content-Type-Options, X-DNS-Prefetch-Control, X-Download-Options, X-XSS-Protection
 - Strict-Transport-Security outside development/test

CORS:
 - exactly one allowed origin; other origins get no CORS headers at all
 - preflight (OPTIONS + Access-Control-Request-Method) is answered immediately
   with the configured success status and an empty body
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from flask import Flask, make_response, request
from werkzeug.wrappers.response import Response

from .config import Config
from .routes import bypasses_pipeline

CORS_ALLOWED_METHODS = "GET,HEAD,PUT,PATCH,POST,DELETE"
HSTS_VALUE = "max-age=15552000; includeSubDomains"
_NO_HSTS_ENVS = {"development", "test"}

_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")


def _directive_name(key: str) -> str:
    # defaultSrc -> default-src; already-dashed names pass through
    return _CAMEL.sub("-", key).lower()


def render_csp(directives: Mapping[str, Any]) -> str:
    parts: list[str] = []
    for key, value in directives.items():
        name = _directive_name(key)
        if value is True:
            parts.append(name)
        elif value is False or value is None:
            continue
        elif isinstance(value, str):
            if value.strip():
                parts.append(f"{name} {value.strip()}")
        else:
            sources = [str(v) for v in value if str(v).strip()]
            if sources:
                parts.append(f"{name} {' '.join(sources)}")
    return "; ".join(parts)


def is_preflight() -> bool:
    return request.method == "OPTIONS" and "Access-Control-Request-Method" in request.headers


def _apply_cors(cfg: Config, resp: Response) -> Response:
    origin = request.headers.get("Origin")
    resp.vary.add("Origin")
    if not origin or origin != cfg.cors_origin:
        return resp
    resp.headers["Access-Control-Allow-Origin"] = origin
    if cfg.cors_credentials:
        resp.headers["Access-Control-Allow-Credentials"] = "true"
    return resp


def init_security_headers(app: Flask, cfg: Config) -> None:
    csp = render_csp(cfg.content_security_policy or {})
    hsts = cfg.env not in _NO_HSTS_ENVS

    @app.after_request
    def _security_headers(resp: Response) -> Response:
        h = resp.headers
        h["X-Frame-Options"] = "DENY"
        h["Referrer-Policy"] = "same-origin"
        h.setdefault("X-Content-Type-Options", "nosniff")
        h.setdefault("X-DNS-Prefetch-Control", "off")
        h.setdefault("X-Download-Options", "noopen")
        h.setdefault("X-XSS-Protection", "1; mode=block")
        if csp:
            h["Content-Security-Policy"] = csp
        if hsts:
            h.setdefault("Strict-Transport-Security", HSTS_VALUE)
        return resp


def init_cors(app: Flask, cfg: Config) -> None:
    @app.before_request
    def _cors_preflight() -> Response | None:
        if bypasses_pipeline(request.endpoint) or not is_preflight():
            return None
        resp = make_response("", cfg.cors_options_success_status)
        resp.headers["Access-Control-Allow-Methods"] = CORS_ALLOWED_METHODS
        req_headers = request.headers.get("Access-Control-Request-Headers")
        if req_headers:
            resp.headers["Access-Control-Allow-Headers"] = req_headers
            resp.vary.add("Access-Control-Request-Headers")
        # drop the default text/html content type on the empty body
        resp.headers.pop("Content-Type", None)
        return resp

    @app.after_request
    def _cors_headers(resp: Response) -> Response:
        if bypasses_pipeline(request.endpoint):
            return resp
        return _apply_cors(cfg, resp)


__all__ = ["CORS_ALLOWED_METHODS", "init_cors", "init_security_headers", "is_preflight", "render_csp"]
