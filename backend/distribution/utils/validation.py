"""Request body helpers: pull typed fields out of JSON with consistent 400 semantics.

Bodies accept camelCase keys (what the dashboards send) and snake_case keys alike.
"""
from __future__ import annotations
from typing import Any, Iterable, Mapping, Optional
from distribution.errors import ValidationError

_MISSING = object()


def field(data: Mapping[str, Any], name: str, alias: Optional[str] = None, default: Any = None) -> Any:
    if name in data:
        return data[name]
    if alias and alias in data:
        return data[alias]
    return default


def require_int(data: Mapping[str, Any], name: str, alias: Optional[str] = None) -> int:
    value = field(data, name, alias, _MISSING)
    if value is _MISSING or value is None:
        raise ValidationError(f'{alias or name} required')
    return coerce_int(value, alias or name)


def optional_int(data: Mapping[str, Any], name: str, alias: Optional[str] = None) -> Optional[int]:
    value = field(data, name, alias)
    if value is None:
        return None
    return coerce_int(value, alias or name)


def coerce_int(value: Any, label: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f'{label} must be int')
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{label} must be int')


def require_bool(data: Mapping[str, Any], name: str, alias: Optional[str] = None) -> bool:
    value = field(data, name, alias, _MISSING)
    if not isinstance(value, bool):
        raise ValidationError(f'{alias or name} must be boolean')
    return value


def validate_status(new_status: str, allowed: Iterable[str], field_name: str = 'status') -> str:
    """Validate that new_status is inside allowed; returns it for inline use."""
    allowed = tuple(allowed)
    if new_status not in allowed:
        raise ValidationError(f'{field_name} invalid', allowed=list(allowed))
    return new_status


def int_list(value: Any, label: str):
    if not isinstance(value, list):
        raise ValidationError(f'{label} must be a list of ints')
    return [coerce_int(v, label) for v in value]


__all__ = ['field', 'require_int', 'optional_int', 'coerce_int', 'require_bool', 'validate_status', 'int_list']
