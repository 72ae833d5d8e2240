"""Layered configuration.

Resolution order (later wins):
 - dataclass defaults
 - config/default.yaml
 - config/<APP_ENV>.yaml
 - environment variables
 - explicit overrides passed to create_app

YAML files use the nested camelCase layout (server.port, contentSecurityPolicy, ...).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any

import yaml

log = logging.getLogger(__name__)

DEFAULT_ENV = "development"
DEFAULT_CONFIG_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir, "config"))

# (yaml path) -> dataclass field
_YAML_KEYS: dict[tuple[str, ...], str] = {
    ("server", "port"): "server_port",
    ("server", "host"): "server_host",
    ("server", "docs"): "server_docs",
    ("contentSecurityPolicy",): "content_security_policy",
    ("cors", "origin"): "cors_origin",
    ("cors", "optionsSuccessStatus"): "cors_options_success_status",
    ("cors", "credentials"): "cors_credentials",
    ("jwt", "secrets"): "jwt_secrets",
    ("jwt", "issuer"): "jwt_issuer",
    ("jwt", "audience"): "jwt_audience",
    ("jwt", "accessTtl"): "jwt_access_ttl",
    ("jwt", "refreshTtl"): "jwt_refresh_ttl",
    ("jwt", "leeway"): "jwt_leeway_seconds",
    ("jwt", "maxAge"): "jwt_max_age_seconds",
    ("database", "url"): "database_url",
    ("mailer", "backend"): "mailer_backend",
    ("mailer", "from"): "mailer_from",
    ("mailer", "smtp", "host"): "smtp_host",
    ("mailer", "smtp", "port"): "smtp_port",
    ("mailer", "smtp", "username"): "smtp_username",
    ("mailer", "smtp", "password"): "smtp_password",
    ("mailer", "smtp", "starttls"): "smtp_starttls",
    ("payments", "gateway"): "payments_gateway",
    ("payments", "currencies"): "payments_currencies",
    ("body", "limit"): "body_limit_bytes",
    ("static", "dir"): "static_dir",
    ("logging", "level"): "log_level",
}


def _default_csp() -> dict[str, Any]:
    return {
        "defaultSrc": ["'self'"],
        "scriptSrc": ["'self'", "'unsafe-inline'", "https://unpkg.com"],
        "styleSrc": ["'self'", "'unsafe-inline'", "https://unpkg.com"],
        "imgSrc": ["'self'", "data:"],
        "objectSrc": ["'none'"],
        "frameAncestors": ["'none'"],
    }


def _as_bool(raw: str) -> bool:
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _as_list(raw: str) -> list[str]:
    return [p for p in (s.strip() for s in raw.split(",")) if p]


@dataclass
class Config:
    env: str = DEFAULT_ENV
    secret_key: str = "change-me"
    server_host: str = "0.0.0.0"
    server_port: int = 3000
    server_docs: bool = False
    content_security_policy: dict[str, Any] = field(default_factory=_default_csp)
    cors_origin: str = "http://localhost:8080"
    cors_options_success_status: int = 200
    cors_credentials: bool = False
    jwt_secrets: list[str] = field(default_factory=lambda: ["dev-secret"])  # first signs; all verify
    jwt_issuer: str = "apihub"
    jwt_audience: str = "api"
    jwt_access_ttl: int = 900
    jwt_refresh_ttl: int = 1209600  # 14 days
    jwt_leeway_seconds: int = 30
    jwt_max_age_seconds: int | None = None
    database_url: str = "sqlite:///apihub.db"
    mailer_backend: str = "log"
    mailer_from: str = "no-reply@localhost"
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_starttls: bool = True
    payments_gateway: str = "fake"
    payments_currencies: list[str] = field(default_factory=lambda: ["usd", "eur", "gbp"])
    body_limit_bytes: int = 102400  # 100kb
    static_dir: str = "public"
    log_level: str = "INFO"

    @classmethod
    def load(
        cls,
        env: str | None = None,
        config_dir: str | None = None,
        override: dict[str, Any] | None = None,
    ) -> Config:
        env = env or os.getenv("APP_ENV") or DEFAULT_ENV
        config_dir = config_dir or os.getenv("APIHUB_CONFIG_DIR") or DEFAULT_CONFIG_DIR
        cfg = cls(env=env)
        for name in ("default.yaml", f"{env}.yaml"):
            cfg.apply_yaml(load_yaml(os.path.join(config_dir, name)))
        cfg.apply_env()
        if override:
            cfg.override(override)
        return cfg

    def apply_yaml(self, data: dict[str, Any]) -> None:
        for path, attr in _YAML_KEYS.items():
            node: Any = data
            for key in path:
                if not isinstance(node, dict) or key not in node:
                    break
                node = node[key]
            else:
                current = getattr(self, attr)
                if isinstance(current, dict) and isinstance(node, dict):
                    # mappings merge key by key across layers
                    node = {**current, **node}
                setattr(self, attr, node)

    def apply_env(self) -> None:
        env = os.environ
        if "SECRET_KEY" in env:
            self.secret_key = env["SECRET_KEY"]
        if "PORT" in env:
            self.server_port = int(env["PORT"])
        if "HOST" in env:
            self.server_host = env["HOST"]
        if "SERVER_DOCS" in env:
            self.server_docs = _as_bool(env["SERVER_DOCS"])
        if "CORS_ORIGIN" in env:
            self.cors_origin = env["CORS_ORIGIN"].strip()
        if env.get("JWT_SECRETS"):
            # JWT_SECRETS allows key rotation: comma-separated secrets; first used for signing.
            self.jwt_secrets = _as_list(env["JWT_SECRETS"])
        if "JWT_ISSUER" in env:
            self.jwt_issuer = env["JWT_ISSUER"]
        if "JWT_AUDIENCE" in env:
            self.jwt_audience = env["JWT_AUDIENCE"]
        if "DATABASE_URL" in env:
            self.database_url = env["DATABASE_URL"]
        if "LOG_LEVEL" in env:
            self.log_level = env["LOG_LEVEL"]
        if "MAILER_BACKEND" in env:
            self.mailer_backend = env["MAILER_BACKEND"]
        if "MAILER_FROM" in env:
            self.mailer_from = env["MAILER_FROM"]
        if "SMTP_HOST" in env:
            self.smtp_host = env["SMTP_HOST"]
        if "SMTP_PORT" in env:
            self.smtp_port = int(env["SMTP_PORT"])
        if "SMTP_USERNAME" in env:
            self.smtp_username = env["SMTP_USERNAME"]
        if "SMTP_PASSWORD" in env:
            self.smtp_password = env["SMTP_PASSWORD"]
        if "SMTP_STARTTLS" in env:
            self.smtp_starttls = _as_bool(env["SMTP_STARTTLS"])
        if "STATIC_DIR" in env:
            self.static_dir = env["STATIC_DIR"]

    def override(self, d: dict[str, Any]) -> None:
        for k, v in d.items():
            if hasattr(self, k):
                setattr(self, k, v)

    @property
    def signing_secret(self) -> str:
        for s in self.jwt_secrets:
            if s:
                return s
        raise ValueError("no JWT signing secret configured")

    def to_flask_dict(self) -> dict[str, Any]:
        return {
            "SECRET_KEY": self.secret_key,
            "APP_ENV": self.env,
        }


def load_yaml(path: str) -> dict[str, Any]:
    """Load a YAML mapping; a missing file yields {}.

    A file that exists but does not parse, or whose root is not a mapping, is a
    startup error.
    """
    if not os.path.exists(path):
        log.debug("config file not found: %s", path)
        return {}
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"config root is not a mapping: {path}")
    return data


__all__ = ["Config", "DEFAULT_ENV", "load_yaml"]
