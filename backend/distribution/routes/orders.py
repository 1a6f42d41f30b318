from __future__ import annotations
from flask import Blueprint, request
from distribution import get_db
from distribution.models.order import Order
from distribution.decorators.auth import require_permissions
from distribution.decorators.audit import audit_log
from distribution.services.policy import assert_branch_access
from distribution.services.wiring import order_gate, assignment_engine
from distribution.routes.serializers import order_json
from distribution.utils.listing import single_resource_response
from distribution.utils.validation import field, validate_status

orders_bp = Blueprint('orders', __name__)


@orders_bp.route('/<int:order_id>', methods=['GET', 'HEAD'])
@require_permissions('ORDERS.READ')
def get_order(order_id: int):
    gate = order_gate()
    o = gate.get(order_id)
    assert_branch_access(o.branch_id)
    engine = assignment_engine()
    engine.refresh()
    active = engine.active_for_order(order_id)
    body = order_json(o, assignment=active)
    state = f'{o.version}|{active.assignment_status if active else ""}'
    return single_resource_response(body, o.updated_at, state)


@orders_bp.post('/<int:order_id>/status')
@require_permissions('ORDERS.UPDATE')
@audit_log(
    'ORDER.STATUS',
    entity='Order',
    entity_id_key='id',
    diff_keys=['status'],
    pre_fetch=lambda a, kw: _prefetch_order(kw.get('order_id')),
    meta_builder=lambda data, rv, a, kw: {'reason': data.get('cancel_reason')},
)
def set_order_status(order_id: int):
    data = request.json or {}
    status = validate_status(field(data, 'status'), Order.ALL_STATUSES, 'status')
    gate = order_gate()
    o = gate.get(order_id)
    assert_branch_access(o.branch_id)
    o = gate.set_status(order_id, status, reason=field(data, 'reason'))
    return order_json(o)


def _prefetch_order(order_id: int):
    o = get_db().get(Order, order_id, populate_existing=True)
    if not o:
        return {}
    return {'status': o.status}
