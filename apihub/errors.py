"""AppError taxonomy, error normalization and the terminal handlers.

Every fault detected anywhere in the pipeline ends up as an ``AppError``:

 - RouteNotFound      no route matched (404 UNKNOWN_ROUTE)
 - AuthFailure        missing/invalid credentials (401)
 - ValidationFailure  request could not be decoded or failed validation (4xx)
 - UpstreamError      anything raised by a collaborator or GraphQL execution

``format_error`` turns arbitrary error shapes into one of those; the terminal
handlers registered by ``register_error_handlers`` log the event and emit the
``{"errors": [...]}`` envelope (see ``http_errors``).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any

from flask import Flask, request
from werkzeug.exceptions import HTTPException, MethodNotAllowed, NotFound
from werkzeug.wrappers.response import Response

log = logging.getLogger("apihub.app")

LOG_PREFIX = "APP-MIDDLEWARE"


@dataclass(frozen=True)
class ErrorDetail:
    status_code: int
    message: str
    code: str
    meta: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> dict[str, Any]:
        # statusCode travels as a string on the wire
        return {
            "statusCode": str(self.status_code),
            "message": self.message,
            "code": self.code,
            "meta": dict(self.meta),
        }


class AppError(Exception):
    """Uniform internal error; subclasses fix the kind."""

    kind = "AppError"
    default_status = 500
    default_code = "INTERNAL_SERVER_ERROR"
    default_message = "Internal server error"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        meta: dict[str, Any] | None = None,
        errors: list[ErrorDetail] | None = None,
    ):
        self.message = message or self.default_message
        self.status_code = int(status_code or self.default_status)
        if errors:
            self.errors = list(errors)
        else:
            self.errors = [
                ErrorDetail(self.status_code, self.message, code or self.default_code, meta or {})
            ]
        super().__init__(self.message)

    @property
    def name(self) -> str:
        return self.kind

    @property
    def code(self) -> str:
        return self.errors[0].code

    @property
    def json_response(self) -> list[dict[str, Any]]:
        return [e.to_json() for e in self.errors]

    def to_log(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "message": self.message,
            "statusCode": str(self.status_code),
            "errors": self.json_response,
        }


class RouteNotFound(AppError):
    kind = "RouteNotFound"
    default_status = 404
    default_code = "UNKNOWN_ROUTE"
    default_message = "Unknown route requested"

    def __init__(self, route: str | None = None, **kwargs: Any):
        if route is not None:
            kwargs.setdefault("meta", {"route": route})
        super().__init__(**kwargs)
        self.route = route


class AuthFailure(AppError):
    kind = "AuthFailure"
    default_status = 401
    default_code = "AUTH_FAILED"
    default_message = "Authentication required"


class ValidationFailure(AppError):
    kind = "ValidationFailure"
    default_status = 400
    default_code = "VALIDATION_FAILED"
    default_message = "Request validation failed"

    @classmethod
    def from_fields(cls, problems: Mapping[str, str], message: str = "Request validation failed") -> ValidationFailure:
        details = [
            ErrorDetail(422, msg, "INVALID_FIELD", {"field": name}) for name, msg in problems.items()
        ]
        return cls(message, status_code=422, errors=details)


class UpstreamError(AppError):
    kind = "UpstreamError"


def _phrase(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Error"


def _code_for_status(status: int) -> str:
    return _phrase(status).upper().replace(" ", "_").replace("-", "_").replace("'", "")


def _from_record(record: Mapping[str, Any]) -> AppError:
    # Loosely typed records: {name, message, statusCode, errors: [{statusCode, message, code, meta}]}
    status = int(record.get("statusCode") or record.get("status") or 500)
    message = str(record.get("message") or _phrase(status))
    details: list[ErrorDetail] = []
    for item in record.get("errors") or []:
        if not isinstance(item, Mapping):
            continue
        details.append(
            ErrorDetail(
                int(item.get("statusCode") or status),
                str(item.get("message") or message),
                str(item.get("code") or _code_for_status(status)),
                dict(item.get("meta") or {}),
            )
        )
    cls = _KIND_BY_NAME.get(str(record.get("name")), UpstreamError)
    return cls(
        message=message,
        code=record.get("code") or _code_for_status(status),
        status_code=status,
        errors=details or None,
    )


def format_error(error: Any) -> AppError:
    """Normalize any error shape into an AppError. Never raises."""
    if isinstance(error, AppError):
        return error
    if isinstance(error, HTTPException):
        status = error.code or 500
        if status >= 500:
            return UpstreamError(status_code=status)
        cls: type[AppError] = AuthFailure if status == 401 else UpstreamError
        return cls(
            message=error.description or _phrase(status),
            code=_code_for_status(status),
            status_code=status,
        )
    if isinstance(error, Mapping):
        try:
            return _from_record(error)
        except (TypeError, ValueError):
            return UpstreamError()
    return UpstreamError()


_KIND_BY_NAME: dict[str, type[AppError]] = {
    c.kind: c for c in (RouteNotFound, AuthFailure, ValidationFailure, UpstreamError)
}


def requested_route() -> str:
    qs = request.query_string.decode("latin-1")
    return f"{request.path}?{qs}" if qs else request.path


def register_error_handlers(app: Flask) -> None:
    from .http_errors import error_response

    def _unknown_route() -> Response:
        err = RouteNotFound(requested_route())
        log.warning("%s: %s", LOG_PREFIX, err.message, extra={"response": err.to_log()})
        return error_response(err)

    @app.errorhandler(Exception)
    def _terminal_error(ex: Exception) -> Response:
        err = format_error(ex)
        log.error(
            "%s: %s",
            LOG_PREFIX,
            err.message,
            exc_info=ex if err.status_code >= 500 else None,
            extra={"response": err.to_log(), "error": repr(ex)},
        )
        return error_response(err)

    # Router-level misses (no rule for path, or no rule for path+method) and missing
    # static files are unknown routes. NotFound raised from inside any other matched
    # view goes through the generic terminal.
    @app.errorhandler(NotFound)
    @app.errorhandler(MethodNotAllowed)
    def _not_matched(ex: HTTPException) -> Response:
        if request.url_rule is None or request.endpoint == "static":
            return _unknown_route()
        return _terminal_error(ex)


__all__ = [
    "AppError",
    "AuthFailure",
    "ErrorDetail",
    "RouteNotFound",
    "UpstreamError",
    "ValidationFailure",
    "format_error",
    "register_error_handlers",
    "requested_route",
]
