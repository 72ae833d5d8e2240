"""Command line entry point.

  apihub serve              start the development server on server.port
  apihub serve --debug      same, with the interactive debugger, bound to 127.0.0.1
  apihub create-user EMAIL  create (or reset) a local-strategy user; password from APIHUB_USER_PASSWORD
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

from dotenv import load_dotenv
from sqlalchemy import select
from werkzeug.security import generate_password_hash

from .app_factory import create_app
from .context import get_services
from .db import session_scope
from .models import User

PASSWORD_ENV_VAR = "APIHUB_USER_PASSWORD"
LOOPBACK_HOSTS = ("127.0.0.1", "localhost", "::1")

log = logging.getLogger("apihub.server")


def serve(args: argparse.Namespace) -> int:
    app = create_app()
    with app.app_context():
        cfg = get_services().config
    port = args.port or cfg.server_port
    host = args.host or cfg.server_host
    # the debugger is only ever served on loopback
    if args.debug and host not in LOOPBACK_HOSTS:
        log.warning("debugger enabled, binding to loopback only", extra={"requested_host": host})
        host = "127.0.0.1"
    log.info("Server has been started", extra={"port": port, "env": cfg.env, "debug": args.debug})
    app.run(host=host, port=port, debug=args.debug, use_reloader=False)
    return 0


def create_user(args: argparse.Namespace) -> int:
    password = os.environ.get(PASSWORD_ENV_VAR)
    if not password:
        sys.stderr.write(f"[ERROR] Missing env var {PASSWORD_ENV_VAR}. Set it securely and retry.\n")
        return 1
    email = args.email.strip().lower()
    app = create_app()
    with app.app_context(), session_scope() as db:
        user = db.scalars(select(User).where(User.email == email)).first()
        action = "updated"
        if user is None:
            user = User(email=email, password_hash="", full_name=args.name)
            db.add(user)
            action = "created"
        user.password_hash = generate_password_hash(password)
        user.is_active = True
        db.flush()
        print(f"[OK] user {email} {action} (id={user.id})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="apihub")
    sub = parser.add_subparsers(dest="command")
    p_serve = sub.add_parser("serve", help="run the HTTP server")
    p_serve.add_argument("--host", default=None)
    p_serve.add_argument("--port", type=int, default=None)
    p_serve.add_argument("--debug", action="store_true", help="enable the Werkzeug debugger (loopback only)")
    p_serve.set_defaults(func=serve)
    p_user = sub.add_parser("create-user", help="create or reset a local user")
    p_user.add_argument("email")
    p_user.add_argument("--name", default=None)
    p_user.set_defaults(func=create_user)
    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        args = parser.parse_args(["serve", *(argv or [])])
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
