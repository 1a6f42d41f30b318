"""Reusable test helpers for the order / preparation / delivery lifecycle.

Patterns unified:
 - Auth header creation using direct JWT claims (token issuance is outside this service).
 - Driving an order to ``ready`` through the real services.
 - Transition assertion over HTTP.
"""
from __future__ import annotations
from typing import Dict, Iterable, List, Optional
from flask_jwt_extended import create_access_token
from distribution import get_db
from distribution.constants.permissions import ROLE_PRESETS
from distribution.services.orders import OrderGate
from distribution.services.preparation import PreparationTracker
from tests.test_utils_seed import create_order

DISTRIBUTOR_PERMS = ROLE_PRESETS['Distributor'] + ['STAFF.MANAGE']
COURIER_PERMS = list(ROLE_PRESETS['Courier'])

# ---------- Generic Auth Helpers ---------- #

def jwt_headers(user_id: int, perms: List[str], branch_ids: Iterable[int] = (1,), staff_id: Optional[int] = None):
    claims = {
        'perms': perms,
        'roles': [],
        'groups': [],
        'branch_ids': list(branch_ids),
    }
    if staff_id is not None:
        claims['staff_id'] = staff_id
    token = create_access_token(identity=str(user_id), additional_claims=claims)
    return {'Authorization': f'Bearer {token}'}


def distributor_headers(branch_ids: Iterable[int] = (1,)):
    return jwt_headers(1, DISTRIBUTOR_PERMS, branch_ids)


def courier_headers(staff_id: int, branch_ids: Iterable[int] = (1,)):
    return jwt_headers(100 + staff_id, COURIER_PERMS, branch_ids, staff_id=staff_id)

# ---------- Lifecycle Helpers ---------- #

def ready_order(clock, branch_id: int = 1, items=None):
    """Create an order and walk it pending -> confirmed -> preparing -> ready."""
    session = get_db()
    order = create_order(branch_id=branch_id, items=items)
    OrderGate(session, clock).confirm(order.id)
    tracker = PreparationTracker(session, clock)
    for item in tracker.start(order.id):
        tracker.toggle(item.id, True)
    return tracker.complete(order.id)

# ---------- Assertion Helpers ---------- #

def assert_transition(client, url: str, headers: Dict[str, str], expected_status: int, expected_body_key: str = 'status',
                      expected_body_value: str = None, json=None):
    resp = client.post(url, headers=headers, json=json)
    assert resp.status_code == expected_status, resp.get_json()
    if expected_status < 400 and expected_body_value is not None:
        body = resp.get_json()
        assert body[expected_body_key] == expected_body_value
    return resp


def assert_error(resp, status: int, kind: Optional[str] = None):
    assert resp.status_code == status, resp.get_json()
    body = resp.get_json()
    assert body['error']['status'] == status
    if kind is not None:
        assert body['error']['kind'] == kind
    return body['error']


__all__ = [
    'DISTRIBUTOR_PERMS', 'COURIER_PERMS', 'jwt_headers', 'distributor_headers', 'courier_headers',
    'ready_order', 'assert_transition', 'assert_error',
]
