"""Shared builders for the JSON error envelope.

Wire format: {"errors": [{"statusCode": "404", "message": ..., "code": ..., "meta": {...}}]}
"""
from __future__ import annotations

from flask import jsonify
from werkzeug.wrappers.response import Response

from .errors import AppError, AuthFailure


def error_envelope(err: AppError) -> dict[str, object]:
    return {"errors": err.json_response}


def error_response(err: AppError) -> Response:
    resp = jsonify(error_envelope(err))
    resp.status_code = err.status_code
    if isinstance(err, AuthFailure) and "WWW-Authenticate" not in resp.headers:
        resp.headers["WWW-Authenticate"] = 'Bearer realm="api"'
    return resp


__all__ = ["error_envelope", "error_response"]
