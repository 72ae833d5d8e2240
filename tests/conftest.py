import os
import sys

import pytest

# Path setup before any project imports to satisfy E402
ROOT = os.path.dirname(__file__)
PARENT = os.path.abspath(os.path.join(ROOT, ".."))
if PARENT not in sys.path:  # pragma: no cover - environment dependent
    sys.path.insert(0, PARENT)

from _helpers import ALLOWED_ORIGIN, SECRET, bearer_for, create_user  # noqa: E402

from apihub import create_app  # noqa: E402

# Environment variables Config.apply_env reads; tests must not inherit them.
_CONFIG_ENV_VARS = (
    "APP_ENV",
    "APIHUB_CONFIG_DIR",
    "SECRET_KEY",
    "PORT",
    "HOST",
    "SERVER_DOCS",
    "CORS_ORIGIN",
    "JWT_SECRETS",
    "JWT_ISSUER",
    "JWT_AUDIENCE",
    "DATABASE_URL",
    "LOG_LEVEL",
    "MAILER_BACKEND",
    "MAILER_FROM",
    "SMTP_HOST",
    "SMTP_PORT",
    "SMTP_USERNAME",
    "SMTP_PASSWORD",
    "SMTP_STARTTLS",
    "STATIC_DIR",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in _CONFIG_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture()
def static_dir(tmp_path):
    d = tmp_path / "public"
    d.mkdir()
    (d / "hello.txt").write_text("hello from public")
    return d


@pytest.fixture()
def make_app(tmp_path, static_dir):
    """Factory building an isolated app (own SQLite file) with optional overrides."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        cfg = {
            "env": "test",
            "TESTING": True,
            "database_url": "sqlite:///" + str(tmp_path / f"test{counter['n']}.db"),
            "static_dir": str(static_dir),
            "jwt_secrets": [SECRET],
            "cors_origin": ALLOWED_ORIGIN,
        }
        cfg.update(overrides)
        return create_app(cfg)

    return _make


@pytest.fixture()
def app(make_app):
    return make_app()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def user(app):
    return create_user(app, "alice@example.com")


@pytest.fixture()
def other_user(app):
    return create_user(app, "bob@example.com")


@pytest.fixture()
def auth_headers(user):
    return bearer_for(user)
