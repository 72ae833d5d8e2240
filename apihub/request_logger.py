"""Request logging / timing stage.

Assigns a request id (a well-formed inbound X-Request-Id is echoed), and emits
one structured line per completed request.
"""

from __future__ import annotations

import logging
import re
import time
import uuid

from flask import Flask, g, request
from werkzeug.wrappers.response import Response

from .routes import RouteTable, bypasses_pipeline

log = logging.getLogger("apihub.request")

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


def _incoming_request_id() -> str:
    rid = request.headers.get("X-Request-Id", "")
    return rid if _REQUEST_ID_RE.match(rid) else str(uuid.uuid4())


def init_request_logger(app: Flask, routes: RouteTable) -> None:
    @app.before_request
    def _start_request() -> None:
        if bypasses_pipeline(request.endpoint):
            return
        g._t0 = time.perf_counter()
        g.request_id = _incoming_request_id()

    @app.after_request
    def _log_request(resp: Response) -> Response:
        rid = getattr(g, "request_id", None)
        if rid is None:
            return resp
        dur_ms = round((time.perf_counter() - g._t0) * 1000, 2)
        resp.headers["X-Request-Id"] = rid
        mount = routes.resolve(request.path)
        user = getattr(g, "user", None)
        log.info(
            "%s %s %s",
            request.method,
            request.path,
            resp.status_code,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": request.path,
                "mount": mount.name if mount else None,
                "status": resp.status_code,
                "duration_ms": dur_ms,
                "user_id": user.id if user is not None else None,
                "remote_addr": request.remote_addr,
            },
        )
        return resp


__all__ = ["init_request_logger"]
