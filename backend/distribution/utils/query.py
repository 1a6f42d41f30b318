"""Query-string driven filtering and sorting for list endpoints."""
from __future__ import annotations
import re
from typing import Any, Dict, Mapping
from flask import abort

_CAMEL = re.compile(r'(?<!^)(?=[A-Z])')


def snake_case(name: str) -> str:
    return _CAMEL.sub('_', name).lower()


def normalize_params(params: Mapping[str, Any]) -> Dict[str, Any]:
    """Accept both ``branchId`` and ``branch_id``; the snake_case spelling wins."""
    out: Dict[str, Any] = {}
    for key in params:
        snake = snake_case(key)
        if snake not in out or key == snake:
            out[snake] = params.get(key)
    return out


def apply_filters(query, specs: Dict[str, Dict[str, Any]], params: Mapping[str, Any]):
    """Generic filter builder.

    specs: { param_name: { 'op': callable(query, value)->query, 'coerce': type/func, 'validate': callable(optional) } }
    """
    params = normalize_params(params)
    for name, meta in specs.items():
        if name not in params or params[name] is None:
            continue
        val = params[name]
        if 'coerce' in meta:
            try:
                val = meta['coerce'](val)
            except (TypeError, ValueError):
                abort(400, description=f'{name} invalid')
        if 'validate' in meta and not meta['validate'](val):
            abort(400, description=f'{name} invalid')
        query = meta['op'](query, val)
    return query


def apply_multi_sort(query, sort_expr: str | None, allowed: dict, tie_breaker):
    """Apply multi-field sort to a SQLAlchemy query.
    sort_expr: comma-separated tokens, each optionally prefixed with '-'.
    allowed: mapping of field key -> column object.
    tie_breaker: column to append for deterministic ordering.
    """
    if not sort_expr:
        return query.order_by(tie_breaker.asc())
    clauses = []
    for raw in sort_expr.split(','):
        token = raw.strip()
        if not token:
            continue
        desc = token.startswith('-')
        key = snake_case(token[1:] if desc else token)
        col = allowed.get(key)
        if col is None:
            abort(400, description=f'Invalid sort field {key}')
        clauses.append(col.desc() if desc else col.asc())
    clauses.append(tie_breaker.asc())
    return query.order_by(*clauses)


__all__ = ['snake_case', 'normalize_params', 'apply_filters', 'apply_multi_sort']
