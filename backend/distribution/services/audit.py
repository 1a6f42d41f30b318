from __future__ import annotations
from typing import Any, Dict, Optional
from flask import has_request_context
from flask_jwt_extended import get_jwt
from distribution import get_db, get_clock
from distribution.models.audit import AuditLog
from distribution.services.policy import current_staff_id, current_user_id


def add_audit(action: str, entity: Optional[str] = None, entity_id: Optional[Any] = None,
              meta: Optional[Dict[str, Any]] = None) -> AuditLog:
    """Stage an audit row in the current session; the caller commits.

    Parameters:
      action: short action code e.g. PREP.COMPLETE, ASSIGNMENT.ACCEPT, STAFF.UPDATE
      entity: Order, PreparationItem, DeliveryAssignment or DeliveryStaff
      entity_id: primary key, stored as text
      meta: JSON-safe detail (shallow copied)

    Outside a verified request (the sweep script) the actor is recorded as 0.
    """
    claims: Dict[str, Any] = {}
    actor, staff_id = 0, None
    if has_request_context():
        claims = get_jwt() or {}
        actor = current_user_id() or 0
        staff_id = current_staff_id()
    log = AuditLog(
        actor_user_id=actor,
        actor_staff_id=staff_id,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        perms_snapshot={'perms': claims.get('perms', [])},
        meta=dict(meta or {}),
        created_at=get_clock().now(),
    )
    get_db().add(log)
    return log


__all__ = ['add_audit']
