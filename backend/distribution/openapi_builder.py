"""Deterministic OpenAPI spec builder.

Scope:
- every distribution, courier and order-gate endpoint from the operation registry
- list endpoints with pagination, sort and caching headers (GET + HEAD)
- the JSON error envelope, with the domain error ``kind`` values per status
- ``x-transitions`` on Order and DeliveryAssignment, read from the runtime state machines

Served at /openapi.json and written to disk by scripts/generate_spec.py.
"""
from typing import Any, Dict
from .openapi_parts.constants import BODIES, ERROR_KINDS, OPERATIONS, SCHEMAS, SORT_DETAILS
from .openapi_parts.helpers import caching_headers, object_schema, path_params, query_param, ref, transitions
from .services.lifecycle import ORDER_FSM, ASSIGNMENT_FSM

__all__ = ["build_openapi_spec"]


def _error_schema() -> Dict[str, Any]:
    return object_schema({
        "error": object_schema({
            "status": {"type": "integer"},
            "title": {"type": "string"},
            "detail": {"type": "string"},
            "kind": {"type": "string"},
            "remaining_item_ids": {"type": "array", "items": {"type": "integer"}},
        }, ["status", "title", "detail"]),
    }, ["error"])


def _json(schema: Dict[str, Any]) -> Dict[str, Any]:
    return {"application/json": {"schema": schema}}


def _error_responses(codes) -> Dict[str, Any]:
    return {str(code): ref("responses", ERROR_KINDS[code][0]) for code in codes}


def _list_ops(op: Dict[str, Any]) -> Dict[str, Any]:
    params = [ref("parameters", "LimitParam"), ref("parameters", "OffsetParam")]
    if op.get("sort"):
        params.append(ref("parameters", op["sort"]))
    params += [query_param(q) for q in op.get("query", [])]
    page = object_schema({
        "data": {"type": "array", "items": ref("schemas", op["schema"])},
        "pagination": ref("schemas", "Pagination"),
    }, ["data", "pagination"])
    return {
        "get": {
            "summary": op["summary"],
            "parameters": params,
            "responses": {
                "200": {"description": "OK", "headers": caching_headers(), "content": _json(page)},
                "304": {"description": "Not Modified"},
                "400": ref("responses", "BadRequest"),
                "403": ref("responses", "Forbidden"),
            },
            "x-required-permissions": [op["permission"]],
        },
        "head": {
            "summary": f"{op['summary']} (validators only)",
            "parameters": params,
            "responses": {
                "200": {"description": "Headers only", "headers": caching_headers()},
                "304": {"description": "Not Modified"},
            },
            "x-required-permissions": [op["permission"]],
        },
    }


def _single_op(op: Dict[str, Any]) -> Dict[str, Any]:
    body_schema = ref("schemas", op["schema"])
    if op.get("many"):
        body_schema = object_schema({
            "data": {"type": "array", "items": body_schema},
            "pagination": ref("schemas", "Pagination"),
        }, ["data"])
    ok: Dict[str, Any] = {"description": "OK", "content": _json(body_schema)}
    if op["kind"] == "single":
        ok["headers"] = caching_headers()
    out: Dict[str, Any] = {
        "summary": op["summary"],
        "parameters": path_params(op["path"]),
        "responses": {op.get("status", "200"): ok, **_error_responses(op.get("errors", []))},
        "x-required-permissions": [op["permission"]],
    }
    if op.get("body"):
        out["requestBody"] = {"required": True, "content": _json(ref("schemas", op["body"]))}
    return out


def build_openapi_spec() -> Dict[str, Any]:
    schemas: Dict[str, Any] = {name: object_schema(s["properties"], s["required"]) for name, s in SCHEMAS.items()}
    schemas.update({name: object_schema(b["properties"], b["required"]) for name, b in BODIES.items()})
    schemas["Order"]["x-transitions"] = transitions(ORDER_FSM)
    schemas["DeliveryAssignment"]["x-transitions"] = transitions(ASSIGNMENT_FSM)
    schemas["Pagination"] = object_schema({
        "total": {"type": "integer"},
        "limit": {"type": "integer"},
        "offset": {"type": "integer"},
        "returned": {"type": "integer"},
    }, ["total", "limit", "offset", "returned"])
    schemas["Error"] = _error_schema()

    responses: Dict[str, Any] = {}
    for code, (name, kinds) in sorted(ERROR_KINDS.items()):
        desc = f"{name} (kind: {kinds})" if kinds else name
        responses[name] = {"description": desc, "content": _json(ref("schemas", "Error"))}

    params: Dict[str, Any] = {
        "LimitParam": {"name": "limit", "in": "query", "schema": {"type": "integer", "default": 50, "maximum": 200}},
        "OffsetParam": {"name": "offset", "in": "query", "schema": {"type": "integer", "default": 0}},
    }
    for pname, desc in SORT_DETAILS.items():
        params[pname] = {"name": "sort", "in": "query", "schema": {"type": "string"}, "description": desc}

    paths: Dict[str, Any] = {
        "/healthz": {"get": {"summary": "Liveness", "security": [], "responses": {"200": {"description": "OK"}}}},
    }
    for op in OPERATIONS:
        if op["kind"] == "list":
            paths.setdefault(op["path"], {}).update(_list_ops(op))
        else:
            paths.setdefault(op["path"], {})[op["method"]] = _single_op(op)

    # operationIds & tags
    tag_desc: Dict[str, str] = {}
    for path, ops in paths.items():
        tag = path.split("/")[1].capitalize()
        for method, od in ops.items():
            rid = path.strip("/").replace("/", "_").replace("-", "_").replace("{", "").replace("}", "")
            od["operationId"] = f"{method}_{rid}"
            od["tags"] = [tag]
        tag_desc[tag] = f"{tag} endpoints"

    return {
        "openapi": "3.0.3",
        "info": {"title": "Order Distribution API", "version": "0.1.0"},
        "paths": paths,
        "components": {
            "schemas": schemas,
            "responses": responses,
            "parameters": params,
            "securitySchemes": {"BearerAuth": {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}},
        },
        "security": [{"BearerAuth": []}],
        "tags": [{"name": n, "description": d} for n, d in sorted(tag_desc.items())],
    }
