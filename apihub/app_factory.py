"""Flask application factory.

Builds the request pipeline in a fixed order:

 1. security headers
 2. static files (/public) and liveness (/health-check)
 3. authentication context (strategy registry; no enforcement)
 4. request logging
 5. body / cookie decoding
 6. CORS
 7. bearer gate for guarded mounts, then the mounts from the route table
 8. terminal handlers: unknown route (404) and error

Flask runs ``before_request`` hooks in registration order, so the order of the
``init_*`` calls below is the stage order.
"""

from __future__ import annotations

import os
from typing import Any

from flask import Blueprint, Flask

from .auth import init_auth_context, init_jwt_gate
from .auth_api import bp as auth_bp
from .body_parsing import init_body_parsing
from .config import Config
from .context import EXTENSION_KEY, Services
from .db import create_all, init_engine, remove_session
from .errors import register_error_handlers
from .graphql_api import bp as graphql_bp, docs_bp as graphql_docs_bp
from .health_api import bp as health_bp
from .logging_setup import configure_logging
from .mailer import build_mailer
from .mailer_api import bp as mailer_bp
from .payments import PaymentsService, build_gateway
from .payments_api import bp as payments_bp
from .request_logger import init_request_logger
from .routes import RouteTable, build_route_table
from .security import init_cors, init_security_headers
from .strategies import build_strategies

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))

# Mount name -> blueprint; registration follows the route table order.
MOUNT_BLUEPRINTS: dict[str, Blueprint] = {
    "health": health_bp,
    "auth": auth_bp,
    "mailer": mailer_bp,
    "payments": payments_bp,
    "graphql": graphql_bp,
    "docs": graphql_docs_bp,
}


def _static_folder(cfg: Config) -> str:
    if os.path.isabs(cfg.static_dir):
        return cfg.static_dir
    return os.path.join(PROJECT_ROOT, cfg.static_dir)


def _register_mounts(app: Flask, routes: RouteTable) -> None:
    for mount in routes:
        bp = MOUNT_BLUEPRINTS.get(mount.name)
        if bp is None:
            raise ValueError(f"no blueprint for mount {mount.name!r}")
        app.register_blueprint(bp)


def create_app(config_override: dict[str, Any] | None = None) -> Flask:
    # --- Configuration ---
    override = dict(config_override or {})
    cfg = Config.load(
        env=override.pop("env", None),
        config_dir=override.pop("config_dir", None),
        override={k: v for k, v in override.items() if not k.isupper()},
    )
    log = configure_logging(cfg.log_level)

    app = Flask(
        __name__,
        static_url_path="/public",
        static_folder=_static_folder(cfg),
    )
    app.config.update(cfg.to_flask_dict())
    for k, v in override.items():  # also allow direct Flask config keys
        if k.isupper():
            app.config[k] = v
    app.json.sort_keys = False  # type: ignore[attr-defined]

    # --- Collaborator persistence ---
    init_engine(cfg.database_url)
    create_all()
    app.teardown_appcontext(lambda _exc: remove_session())

    routes = build_route_table(docs=cfg.server_docs)
    services = Services(
        config=cfg,
        strategies=build_strategies(),
        routes=routes,
        mailer=build_mailer(cfg),
        payments=PaymentsService(build_gateway(cfg.payments_gateway), cfg.payments_currencies),
    )
    app.extensions[EXTENSION_KEY] = services

    # --- Pipeline stages (order matters) ---
    init_security_headers(app, cfg)
    init_auth_context(app)
    init_request_logger(app, routes)
    init_body_parsing(app, cfg.body_limit_bytes)
    init_cors(app, cfg)
    init_jwt_gate(app, routes)

    # --- Routes ---
    _register_mounts(app, routes)

    # --- Terminal handlers ---
    register_error_handlers(app)

    log.debug(
        "app created",
        extra={"env": cfg.env, "mounts": [m.prefix for m in routes], "docs": cfg.server_docs},
    )
    return app


__all__ = ["create_app", "MOUNT_BLUEPRINTS"]
