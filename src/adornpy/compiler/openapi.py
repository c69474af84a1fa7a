from __future__ import annotations

from typing import Any

from adornpy.compiler.schema.provider import JsonSchemaProvider, render
from adornpy.compiler.schema.registry import SchemaRegistry
from adornpy.domain.manifest import Manifest, NamedArg, OperationEntry, ResponseSpec

OPENAPI_VERSION = "3.1.0"

_REASONS = {
    200: "OK",
    201: "Created",
    202: "Accepted",
    204: "No Content",
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    409: "Conflict",
    422: "Unprocessable Entity",
    500: "Internal Server Error",
}


def build_openapi(
    manifest: Manifest,
    registry: SchemaRegistry,
    title: str = "API",
    version: str = "1.0.0",
) -> dict[str, Any]:
    provider = JsonSchemaProvider()
    components = {name: render(provider, node) for name, node in registry.components().items()}

    paths: dict[str, dict[str, Any]] = {}
    for op in manifest.operations():
        paths.setdefault(op.http.path, {})[op.http.method.lower()] = _operation(op)

    return {
        "openapi": OPENAPI_VERSION,
        "info": {"title": title, "version": version},
        "components": {"schemas": components},
        "paths": paths,
    }


def _operation(op: OperationEntry) -> dict[str, Any]:
    out: dict[str, Any] = {"operationId": op.operation_id}

    params: list[dict[str, Any]] = []
    params.extend(_parameter(a, "path") for a in op.args.path)
    params.extend(_parameter(a, "query") for a in op.args.query)
    params.extend(_parameter(a, "header") for a in op.args.headers)
    params.extend(_parameter(a, "cookie") for a in op.args.cookies)
    if params:
        out["parameters"] = params

    if op.args.body is not None:
        body = op.args.body
        out["requestBody"] = {
            "required": body.required,
            "content": {body.content_type: {"schema": {"$ref": body.schema_ref}}},
        }

    out["responses"] = {str(r.status): _response(r) for r in op.responses}
    return out


def _parameter(arg: NamedArg, location: str) -> dict[str, Any]:
    schema = arg.schema_
    if schema is None:
        schema = {"$ref": arg.schema_ref} if arg.schema_ref else {"type": arg.schema_type or "string"}
    out: dict[str, Any] = {
        "name": arg.name,
        "in": location,
        "required": True if location == "path" else arg.required,
        "schema": schema,
    }
    if arg.style is not None:
        out["style"] = arg.style
        out["explode"] = True
    return out


def _response(r: ResponseSpec) -> dict[str, Any]:
    out: dict[str, Any] = {"description": _REASONS.get(r.status, "Response")}
    if r.schema_ref is None:
        return out
    schema: dict[str, Any] = {"$ref": r.schema_ref}
    if r.is_array:
        schema = {"type": "array", "items": schema}
    out["content"] = {r.content_type: {"schema": schema}}
    return out
