"""Helper functions for the OpenAPI builder."""
import re
from typing import Any, Dict, List

_PATH_PARAM = re.compile(r'{([a-z_]+)}')


def object_schema(properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    out: Dict[str, Any] = {"type": "object", "properties": dict(properties)}
    if required:
        out["required"] = list(required)
    return out


def caching_headers() -> Dict[str, Any]:
    return {
        "ETag": {"schema": {"type": "string"}},
        "Last-Modified": {"schema": {"type": "string"}},
        "X-Last-Modified-ISO": {"schema": {"type": "string"}},
    }


def path_params(path: str) -> List[Dict[str, Any]]:
    return [
        {"name": name, "in": "path", "required": True, "schema": {"type": "integer"}}
        for name in _PATH_PARAM.findall(path)
    ]


def query_param(camel_name: str) -> Dict[str, Any]:
    schema = {"type": "boolean"} if camel_name.startswith("is") else (
        {"type": "integer"} if camel_name.endswith("Id") else {"type": "string"}
    )
    return {"name": camel_name, "in": "query", "schema": schema}


def ref(kind: str, name: str) -> Dict[str, str]:
    return {"$ref": f"#/components/{kind}/{name}"}


def transitions(fsm) -> Dict[str, List[str]]:
    """State -> sorted legal targets, read from a TransitionValidator."""
    return {state: sorted(fsm.graph[state]) for state in fsm.states}


__all__ = ["object_schema", "caching_headers", "path_params", "query_param", "ref", "transitions"]
