"""Body and cookie decoding stage.

Populates, for every request that reaches the pipeline:
 - ``g.body``     decoded JSON (object or array) or URL-encoded form; ``{}`` when empty
 - ``g.cookies``  plain dict of cookies

Decoding faults raise ``ValidationFailure`` and go to the error terminal:
 - MALFORMED_JSON (400)       invalid JSON, bad encoding, or a scalar top-level value
 - UNSUPPORTED_CHARSET (415)  unknown charset parameter
 - PAYLOAD_TOO_LARGE (413)    body above the configured limit

URL-encoded forms use the "extended" bracket syntax:
``a[b]=1`` -> ``{"a": {"b": "1"}}``, ``a[]=1&a[]=2`` -> ``{"a": ["1", "2"]}``;
a repeated plain key collects its values into a list.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from typing import Any

from flask import Flask, g, request

from .errors import ValidationFailure
from .routes import bypasses_pipeline

FORM_MIMETYPE = "application/x-www-form-urlencoded"

_BRACKETS = re.compile(r"^([^\[\]]+)((?:\[[^\[\]]*\])+)$")


def is_json_mimetype(mimetype: str) -> bool:
    return mimetype == "application/json" or (mimetype.startswith("application/") and mimetype.endswith("+json"))


def parse_json(raw: bytes, charset: str = "utf-8") -> Any:
    try:
        text = raw.decode(charset)
    except LookupError as e:
        raise ValidationFailure(
            f"Unsupported charset {charset!r}",
            code="UNSUPPORTED_CHARSET",
            status_code=415,
            meta={"charset": charset},
        ) from e
    except UnicodeDecodeError as e:
        raise ValidationFailure(
            "Request body is not valid JSON", code="MALFORMED_JSON", meta={"reason": "encoding"}
        ) from e
    stripped = text.strip()
    if not stripped:
        return {}
    # strict mode: only objects and arrays at the top level
    if stripped[0] not in "{[":
        raise ValidationFailure(
            "Request body is not valid JSON", code="MALFORMED_JSON", meta={"reason": "top-level value must be an object or array"}
        )
    try:
        return json.loads(stripped)
    except json.JSONDecodeError as e:
        raise ValidationFailure(
            "Request body is not valid JSON",
            code="MALFORMED_JSON",
            meta={"reason": e.msg, "line": e.lineno, "column": e.colno},
        ) from e
    except RecursionError as e:
        raise ValidationFailure(
            "Request body is not valid JSON",
            code="MALFORMED_JSON",
            meta={"reason": "nesting too deep"},
        ) from e


def _split_key(key: str) -> list[str]:
    m = _BRACKETS.match(key)
    if not m:
        return [key]
    return [m.group(1), *re.findall(r"\[([^\[\]]*)\]", m.group(2))]


def _assign(container: dict[str, Any], parts: list[str], value: str, raw_key: str) -> None:
    head, rest = parts[0], parts[1:]
    if not rest:
        if head in container:
            existing = container[head]
            if isinstance(existing, list):
                existing.append(value)
            else:
                container[head] = [existing, value]
        else:
            container[head] = value
        return
    if rest[0] == "":
        child = container.setdefault(head, [])
        if not isinstance(child, list):
            container[raw_key] = value
            return
        if len(rest) == 1:
            child.append(value)
        else:
            nested: dict[str, Any] = {}
            _assign(nested, rest[1:], value, raw_key)
            child.append(nested)
        return
    child = container.setdefault(head, {})
    if not isinstance(child, dict):
        # key already holds a scalar or list; keep the raw key instead of clobbering it
        container[raw_key] = value
        return
    _assign(child, rest, value, raw_key)


def parse_form(pairs: Iterable[tuple[str, str]]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in pairs:
        _assign(result, _split_key(key), value, key)
    return result


def _too_large(limit: int, length: int | None) -> ValidationFailure:
    return ValidationFailure(
        "Request entity too large",
        code="PAYLOAD_TOO_LARGE",
        status_code=413,
        meta={"limit": limit, "length": length},
    )


def decode_body(limit: int) -> Any:
    length = request.content_length
    if length is not None and length > limit:
        raise _too_large(limit, length)
    mimetype = request.mimetype
    if is_json_mimetype(mimetype):
        raw = request.get_data(cache=True)
        if len(raw) > limit:
            raise _too_large(limit, len(raw))
        return parse_json(raw, request.mimetype_params.get("charset", "utf-8"))
    if mimetype == FORM_MIMETYPE:
        return parse_form(request.form.items(multi=True))
    return {}


def request_body() -> dict[str, Any]:
    """Decoded body as a mapping; views that expect an object call this."""
    body = getattr(g, "body", None)
    if body is None:
        return {}
    if not isinstance(body, Mapping):
        raise ValidationFailure("Request body must be a JSON object", code="EXPECTED_OBJECT")
    return dict(body)


def request_cookies() -> dict[str, str]:
    return dict(getattr(g, "cookies", None) or {})


def init_body_parsing(app: Flask, limit: int) -> None:
    @app.before_request
    def _decode_request() -> None:
        if bypasses_pipeline(request.endpoint):
            return
        g.cookies = dict(request.cookies)
        g.body = {}
        g.body = decode_body(limit)


__all__ = [
    "decode_body",
    "init_body_parsing",
    "is_json_mimetype",
    "parse_form",
    "parse_json",
    "request_body",
    "request_cookies",
]
