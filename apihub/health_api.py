from __future__ import annotations

import time
from typing import Any

from flask import Blueprint

bp = Blueprint("health", __name__)

_STARTED = time.monotonic()


@bp.get("/health-check")
def health_check() -> tuple[dict[str, Any], int]:
    # Liveness only: independent of auth, DB and request body
    return {"uptime": round(time.monotonic() - _STARTED, 3)}, 200
