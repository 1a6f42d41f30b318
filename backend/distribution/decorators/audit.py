"""Audit logging decorator for state-changing distribution endpoints.

Usage:

@audit_log('PREP.COMPLETE', entity='Order', entity_id_arg='order_id', diff_keys=['status'],
           pre_fetch=lambda a, kw: _order_snapshot(kw.get('order_id')))
def complete_preparation(order_id): ...

Parameters:
  action: audit action code (e.g. ASSIGNMENT.ACCEPT)
  entity: entity label (Order, DeliveryAssignment, DeliveryStaff)
  entity_id_key: key in the returned JSON object whose value becomes entity_id.
  entity_id_arg: path parameter to use for entity_id when entity_id_key is absent.
  meta_keys: keys projected from the returned JSON into meta.
  meta_builder: callable (data, rv, args, kwargs) -> meta; overrides meta_keys.
  diff_keys / pre_fetch: snapshot taken before the view runs; changed keys are stored as
    ``meta['changes'] = {key: {before, after}}``.

Only successful responses are audited. The view has already committed its own
transaction, so the audit row is written in a second, separate commit; a failure there
is logged and never changes the response.
"""
from __future__ import annotations
import logging
from functools import wraps
from typing import Any, Callable, Dict, Iterable, Optional

from distribution.services.audit import add_audit
from distribution import get_db

logger = logging.getLogger(__name__)


def _extract_payload(rv: Any):
    """Return (data, status) where data is the JSON-able dict for inspection."""
    if isinstance(rv, tuple) and rv:
        status = rv[1] if len(rv) > 1 and isinstance(rv[1], int) else 200
        return rv[0], status
    return rv, 200


def _changes(before: Optional[Dict[str, Any]], after: Dict[str, Any], keys: Iterable[str]) -> Dict[str, Any]:
    if not before:
        return {}
    out = {}
    for k in keys:
        if k in before and k in after and before[k] != after[k]:
            out[k] = {'before': before[k], 'after': after[k]}
    return out


def audit_log(
    action: str,
    *,
    entity: Optional[str] = None,
    entity_id_key: Optional[str] = None,
    entity_id_arg: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
    meta_builder: Optional[Callable[[dict, Any, tuple, dict], dict]] = None,
    diff_keys: Optional[Iterable[str]] = None,
    pre_fetch: Optional[Callable[[tuple, dict], Dict[str, Any]]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            before_snapshot = pre_fetch(args, kwargs) if (diff_keys and pre_fetch) else None
            rv = fn(*args, **kwargs)
            data, status = _extract_payload(rv)
            if status >= 400:
                return rv
            try:
                if not isinstance(data, dict):
                    data = {}
                entity_id = data.get(entity_id_key) if entity_id_key else None
                if entity_id is None and entity_id_arg:
                    entity_id = kwargs.get(entity_id_arg)
                if meta_builder:
                    meta = meta_builder(data, rv, args, kwargs)
                elif meta_keys:
                    meta = {k: data.get(k) for k in meta_keys if k in data}
                else:
                    meta = {}
                changes = _changes(before_snapshot, data, diff_keys or ())
                if changes:
                    meta = dict(meta or {})
                    meta['changes'] = changes
                add_audit(action, entity, entity_id, meta)
                get_db().commit()
            except Exception:
                logger.exception('audit write failed for %s', action)
                get_db().rollback()
            return rv
        return wrapper
    return outer
