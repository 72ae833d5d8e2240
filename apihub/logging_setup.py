"""Structured logging for the ``apihub`` logger tree.

One JSON object per line: time, level, logger name, message and any
structured fields passed through ``extra=``.
"""

from __future__ import annotations

import json
import logging
import time

from flask import g, has_request_context

# Attributes every LogRecord carries; anything else came in via ``extra=``.
_RESERVED = set(vars(logging.LogRecord("x", logging.INFO, "x", 0, "", None, None))) | {
    "message",
    "asctime",
}


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: dict[str, object] = {
            "time": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created))
            + f".{int(record.msecs):03d}Z",
            "level": record.levelname.lower(),
            "name": record.name,
            "msg": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED and not key.startswith("_"):
                payload[key] = value
        if "request_id" not in payload and has_request_context():
            rid = getattr(g, "request_id", None)
            if rid:
                payload["request_id"] = rid
        if record.exc_info:
            payload["err"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: str | int = "INFO") -> logging.Logger:
    log = logging.getLogger("apihub")
    # Avoid duplicate attachment when the factory runs more than once (tests)
    if not any(isinstance(h.formatter, JsonLineFormatter) for h in log.handlers):
        h = logging.StreamHandler()
        h.setFormatter(JsonLineFormatter())
        log.addHandler(h)
    log.setLevel(level if isinstance(level, int) else str(level).upper())
    return log


__all__ = ["JsonLineFormatter", "configure_logging"]
