"""GraphQL over HTTP and the optional GraphiQL explorer.

 - GET/POST /api/graphql   (behind the bearer gate)
   * missing query / bad variables   -> 400 error envelope
   * syntax or validation errors     -> 400 {"errors": [...]} (GraphQL format)
   * execution                       -> 200 {"data": ..., "errors"?: [...]}
   * mutation over GET               -> 405 error envelope
   A JSON array body is a batch; the response is an array of results.
 - GET /api/docs                     (only registered when server.docs is on)
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from flask import Blueprint, Response, g, jsonify, request
from graphql import GraphQLError, GraphQLSchema, OperationType, execute, get_operation_ast, parse, validate

from .errors import AppError, UpstreamError, ValidationFailure, format_error
from .graphql_schema import ROOT_VALUE, graphql_schema
from .routes import BASE_URL, GRAPHQL_URL

log = logging.getLogger(__name__)

bp = Blueprint("graphql", __name__)
docs_bp = Blueprint("graphql_docs", __name__)

MAX_BATCH = 10


def build_context() -> dict[str, Any]:
    return {"req": request._get_current_object(), "user": g.user}  # type: ignore[attr-defined]


def _format_graphql_error(err: GraphQLError) -> dict[str, Any]:
    out: dict[str, Any] = {"message": err.message}
    if err.locations:
        out["locations"] = [{"line": loc.line, "column": loc.column} for loc in err.locations]
    if err.path is not None:
        out["path"] = list(err.path)
    original = err.original_error
    if original is not None and not isinstance(original, GraphQLError):
        app_err = format_error(original)
        if not isinstance(original, AppError):
            # Never leak internals of unexpected resolver failures
            log.error("resolver failed", exc_info=original, extra={"path": out.get("path")})
        out["message"] = app_err.message
        out["extensions"] = {"code": app_err.code, "statusCode": str(app_err.status_code)}
    elif err.extensions:
        out["extensions"] = dict(err.extensions)
    return out


def _parse_variables(raw: Any) -> dict[str, Any] | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise ValidationFailure("Variables are invalid JSON.", code="GRAPHQL_BAD_VARIABLES") from None
    if not isinstance(raw, Mapping):
        raise ValidationFailure("Variables must be an object.", code="GRAPHQL_BAD_VARIABLES")
    return dict(raw)


def _params(source: Mapping[str, Any]) -> tuple[str, dict[str, Any] | None, str | None]:
    query = source.get("query")
    if not isinstance(query, str) or not query.strip():
        raise ValidationFailure("Must provide query string.", code="GRAPHQL_QUERY_MISSING")
    operation_name = source.get("operationName") or None
    if operation_name is not None and not isinstance(operation_name, str):
        raise ValidationFailure("operationName must be a string.", code="GRAPHQL_BAD_REQUEST")
    return query, _parse_variables(source.get("variables")), operation_name


def run_operation(
    schema: GraphQLSchema,
    source: Mapping[str, Any],
    *,
    context: dict[str, Any],
    allow_mutations: bool = True,
) -> tuple[dict[str, Any], int]:
    query, variables, operation_name = _params(source)
    try:
        document = parse(query)
    except GraphQLError as e:
        return {"errors": [_format_graphql_error(e)]}, 400
    errors = validate(schema, document)
    if errors:
        return {"errors": [_format_graphql_error(e) for e in errors]}, 400
    if not allow_mutations:
        op = get_operation_ast(document, operation_name)
        if op is not None and op.operation is not OperationType.QUERY:
            raise UpstreamError(
                f"Can only perform a {op.operation.value} operation from a POST request.",
                code="METHOD_NOT_ALLOWED",
                status_code=405,
                meta={"operation": op.operation.value},
            )
    result = execute(
        schema,
        document,
        root_value=ROOT_VALUE,
        context_value=context,
        variable_values=variables,
        operation_name=operation_name,
    )
    body: dict[str, Any] = {"data": result.data}
    if result.errors:
        body["errors"] = [_format_graphql_error(e) for e in result.errors]
    # No data at all means the request itself could not run (e.g. variable coercion)
    status = 400 if result.data is None and result.errors else 200
    return body, status


@bp.get(GRAPHQL_URL)
def graphql_get():
    body, status = run_operation(graphql_schema, request.args, context=build_context(), allow_mutations=False)
    return jsonify(body), status


@bp.post(GRAPHQL_URL)
def graphql_post():
    payload = g.body
    context = build_context()
    if isinstance(payload, list):
        if not payload or len(payload) > MAX_BATCH:
            raise ValidationFailure(
                f"Batch must contain 1-{MAX_BATCH} operations.", code="GRAPHQL_BAD_REQUEST"
            )
        # the whole batch is checked before any operation runs
        for item in payload:
            if not isinstance(item, Mapping):
                raise ValidationFailure("Batch items must be objects.", code="GRAPHQL_BAD_REQUEST")
            _params(item)
        results = [run_operation(graphql_schema, item, context=context)[0] for item in payload]
        return jsonify(results), 200
    body, status = run_operation(graphql_schema, payload, context=context)
    return jsonify(body), status


GRAPHIQL_HTML = """<!doctype html>
<html>
  <head>
    <meta charset="utf-8">
    <title>API Explorer</title>
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <link rel="stylesheet" href="https://unpkg.com/graphiql@3/graphiql.min.css">
    <style>body { margin:0; height:100vh; } #graphiql { height:100vh; }</style>
  </head>
  <body>
    <div id="graphiql"></div>
    <script src="https://unpkg.com/react@18/umd/react.production.min.js"></script>
    <script src="https://unpkg.com/react-dom@18/umd/react-dom.production.min.js"></script>
    <script src="https://unpkg.com/graphiql@3/graphiql.min.js"></script>
    <script>
      const token = window.localStorage.getItem("apihub.token");
      const fetcher = GraphiQL.createFetcher({
        url: "__ENDPOINT__",
        headers: token ? { Authorization: "Bearer " + token } : {},
      });
      ReactDOM.createRoot(document.getElementById("graphiql")).render(
        React.createElement(GraphiQL, { fetcher })
      );
    </script>
  </body>
</html>"""


@docs_bp.get(f"{BASE_URL}/docs")
def graphiql():
    return Response(GRAPHIQL_HTML.replace("__ENDPOINT__", GRAPHQL_URL), mimetype="text/html")


__all__ = ["bp", "build_context", "docs_bp", "run_operation"]
