"""Distribution board: preparation checklist, courier assignment and the courier's own actions.

Read paths that show assignment state run the lazy sweep (expiry + late flagging) first,
so an unanswered assignment frees its courier as soon as anyone looks at the board.
"""
from __future__ import annotations
from flask import Blueprint, request
from distribution import get_db
from distribution.models.order import Order
from distribution.models.delivery_assignment import DeliveryAssignment
from distribution.models.preparation_item import PreparationItem
from distribution.errors import NotFound
from distribution.decorators.auth import require_permissions, require_courier
from distribution.decorators.audit import audit_log
from distribution.services.policy import (
    assert_branch_access, assert_courier_identity, current_branch_ids, current_staff_id, current_user_id,
)
from distribution.services.orders import TO_PREPARE_STATUSES
from distribution.services.wiring import assignment_engine, order_gate, preparation_tracker
from distribution.routes.serializers import assignment_json, item_json, order_json, staff_json
from distribution.utils.listing import build_list_payload, cached_list
from distribution.utils.query import apply_filters, apply_multi_sort
from distribution.utils.validation import field, optional_int, require_bool, require_int

dist_bp = Blueprint('distribution', __name__)

_TO_PREPARE_VALUES = [s.value for s in TO_PREPARE_STATUSES]


def _scoped_branch_filter(q, column, branch_ids):
    """``branchId`` filter honoring the token scope: an out-of-scope branch is denied."""
    def op(qu, v):
        assert_branch_access(v)
        return qu.filter(column == v)
    return apply_filters(q, {'branch_id': {'coerce': int, 'op': op}}, request.args)


# ---------------- order board ---------------- #

@dist_bp.route('/orders-to-prepare', methods=['GET', 'HEAD'])
@require_permissions('DIST.READ')
def orders_to_prepare():
    engine = assignment_engine()
    engine.refresh()
    branch_ids = current_branch_ids()
    q = order_gate().to_prepare_query(branch_ids).populate_existing()
    q = _scoped_branch_filter(q, Order.branch_id, branch_ids)
    q = apply_filters(q, {
        'status': {'op': lambda qu, v: qu.filter(Order.status == v), 'validate': lambda v: v in _TO_PREPARE_VALUES},
        'customer_name': {'op': lambda qu, v: qu.filter(Order.customer_name.ilike(f'%{v}%'))},
    }, request.args)
    allowed = {
        'id': Order.id,
        'status': Order.status,
        'created_at': Order.created_at,
        'updated_at': Order.updated_at,
        'total_cents': Order.total_cents,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, Order.id)
    return cached_list(
        q,
        lambda o: order_json(o, assignment=engine.active_for_order(o.id)),
        state_key=lambda o: f'{o.id}:{o.version}',
    )


@dist_bp.put('/unavailable-items/<int:order_id>')
@require_permissions('DIST.PREPARE')
@audit_log('ORDER.UNAVAILABLE_ITEMS', entity='Order', entity_id_key='id',
           meta_builder=lambda data, rv, a, kw: {'count': len(data.get('unavailable_items') or [])})
def record_unavailable_items(order_id: int):
    gate = order_gate()
    assert_branch_access(gate.get(order_id).branch_id)
    data = request.json or {}
    o = gate.record_unavailable_items(order_id, field(data, 'items'))
    return order_json(o)


# ---------------- preparation ---------------- #

def _checklist_json(order: Order, progress: dict):
    return {
        'order_id': order.id,
        'status': order.status,
        'data': [item_json(i) for i in progress['items']],
        'total': progress['total'],
        'prepared': progress['prepared'],
        'remaining': progress['remaining'],
        'remaining_item_ids': progress['remaining_item_ids'],
    }


@dist_bp.post('/start-preparation/<int:order_id>')
@require_permissions('DIST.PREPARE')
@audit_log('PREP.START', entity='Order', entity_id_arg='order_id', diff_keys=['status'],
           pre_fetch=lambda a, kw: _prefetch_order(kw.get('order_id')), meta_keys=['total'])
def start_preparation(order_id: int):
    tracker = preparation_tracker()
    assert_branch_access(tracker.get_order(order_id).branch_id)
    tracker.start(order_id, prepared_by=current_user_id())
    return _checklist_json(tracker.get_order(order_id), tracker.progress(order_id))


@dist_bp.get('/preparation-items/<int:order_id>')
@require_permissions('DIST.READ')
def list_preparation_items(order_id: int):
    tracker = preparation_tracker()
    order = tracker.get_order(order_id)
    assert_branch_access(order.branch_id)
    return _checklist_json(order, tracker.progress(order_id))


@dist_bp.put('/preparation-items/<int:item_id>')
@require_permissions('DIST.PREPARE')
@audit_log('PREP.ITEM', entity='PreparationItem', entity_id_key='id', meta_keys=['order_id', 'is_prepared'])
def toggle_preparation_item(item_id: int):
    tracker = preparation_tracker()
    data = request.json or {}
    is_prepared = require_bool(data, 'isPrepared', 'is_prepared')
    notes = field(data, 'notes')
    item = _item_or_404(item_id)
    assert_branch_access(tracker.get_order(item.order_id).branch_id)
    item = tracker.toggle(item_id, is_prepared, notes=notes, prepared_by=current_user_id())
    return item_json(item)


@dist_bp.post('/complete-preparation/<int:order_id>')
@require_permissions('DIST.PREPARE')
@audit_log('PREP.COMPLETE', entity='Order', entity_id_key='id', diff_keys=['status'],
           pre_fetch=lambda a, kw: _prefetch_order(kw.get('order_id')))
def complete_preparation(order_id: int):
    tracker = preparation_tracker()
    assert_branch_access(tracker.get_order(order_id).branch_id)
    return order_json(tracker.complete(order_id))


# ---------------- assignment ---------------- #

@dist_bp.get('/available-delivery/<int:branch_id>')
@require_permissions('DIST.READ')
def available_delivery(branch_id: int):
    assert_branch_access(branch_id)
    engine = assignment_engine()
    engine.refresh()
    rows = [staff_json(s) for s in engine.available_staff(branch_id)]
    return build_list_payload(rows, len(rows), len(rows), 0)


@dist_bp.post('/assign-delivery/<int:order_id>')
@require_permissions('DIST.ASSIGN')
@audit_log('ASSIGNMENT.CREATE', entity='DeliveryAssignment', entity_id_key='id',
           meta_keys=['order_id', 'delivery_staff_id', 'accept_deadline'])
def assign_delivery(order_id: int):
    engine = assignment_engine()
    assert_branch_access(engine.get_order(order_id).branch_id)
    data = request.json or {}
    assignment = engine.assign(
        order_id,
        require_int(data, 'deliveryStaffId', 'delivery_staff_id'),
        accept_timeout_minutes=optional_int(data, 'acceptTimeoutMinutes', 'accept_timeout_minutes'),
        expected_delivery_minutes=optional_int(data, 'expectedDeliveryMinutes', 'expected_delivery_minutes'),
        assigned_by=current_user_id(),
    )
    return assignment_json(assignment), 201


def _courier_action(order_id: int, action):
    engine = assignment_engine()
    assignment = engine.require_active_for_order(order_id)
    assert_branch_access(assignment.order.branch_id)
    assert_courier_identity(assignment.delivery_staff_id)
    return assignment_json(action(engine, assignment.id))


_ASSIGNMENT_AUDIT = dict(
    entity='DeliveryAssignment', entity_id_key='id', diff_keys=['assignment_status'],
    pre_fetch=lambda a, kw: _prefetch_assignment(kw.get('order_id')),
)


@dist_bp.post('/accept-order/<int:order_id>')
@require_permissions('DELIVERY.ACT')
@audit_log('ASSIGNMENT.ACCEPT', **_ASSIGNMENT_AUDIT)
def accept_order(order_id: int):
    return _courier_action(order_id, lambda engine, aid: engine.accept(aid))


@dist_bp.post('/reject-order/<int:order_id>')
@require_permissions('DELIVERY.ACT')
@audit_log('ASSIGNMENT.REJECT', meta_keys=['rejection_reason'], **_ASSIGNMENT_AUDIT)
def reject_order(order_id: int):
    reason = field(request.get_json(silent=True) or {}, 'reason')
    return _courier_action(order_id, lambda engine, aid: engine.reject(aid, reason))


@dist_bp.post('/pickup-order/<int:order_id>')
@require_permissions('DELIVERY.ACT')
@audit_log('ASSIGNMENT.PICKUP', **_ASSIGNMENT_AUDIT)
def pickup_order(order_id: int):
    return _courier_action(order_id, lambda engine, aid: engine.mark_picked_up(aid))


@dist_bp.post('/arriving-order/<int:order_id>')
@require_permissions('DELIVERY.ACT')
@audit_log('ASSIGNMENT.ARRIVING', **_ASSIGNMENT_AUDIT)
def arriving_order(order_id: int):
    return _courier_action(order_id, lambda engine, aid: engine.mark_arriving(aid))


@dist_bp.post('/deliver-order/<int:order_id>')
@require_permissions('DELIVERY.ACT')
@audit_log('ASSIGNMENT.DELIVER', meta_keys=['is_late', 'late_minutes'], **_ASSIGNMENT_AUDIT)
def deliver_order(order_id: int):
    return _courier_action(order_id, lambda engine, aid: engine.mark_delivered(aid))


# ---------------- monitoring ---------------- #

@dist_bp.route('/active-deliveries', methods=['GET', 'HEAD'])
@require_permissions('DIST.READ')
def active_deliveries():
    engine = assignment_engine()
    engine.refresh()
    branch_ids = current_branch_ids()
    q = engine.active_query(branch_ids=branch_ids)
    q = _scoped_branch_filter(q, Order.branch_id, branch_ids)
    q = apply_filters(q, {
        'delivery_staff_id': {'coerce': int, 'op': lambda qu, v: qu.filter(DeliveryAssignment.delivery_staff_id == v)},
        'is_late': {'coerce': lambda v: str(v).lower() in ('1', 'true', 'yes'),
                    'op': lambda qu, v: qu.filter(DeliveryAssignment.is_late.is_(v))},
    }, request.args)
    allowed = {
        'id': DeliveryAssignment.id,
        'assigned_at': DeliveryAssignment.assigned_at,
        'accept_deadline': DeliveryAssignment.accept_deadline,
        'updated_at': DeliveryAssignment.updated_at,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, DeliveryAssignment.id)
    return cached_list(q, assignment_json, state_key=lambda a: f'{a.id}:{a.assignment_status}:{a.is_late}')


@dist_bp.get('/assignments/<int:order_id>')
@require_permissions('DIST.READ')
def assignment_history(order_id: int):
    engine = assignment_engine()
    assert_branch_access(engine.get_order(order_id).branch_id)
    engine.refresh()
    rows = [assignment_json(a, include_order=False) for a in engine.history(order_id)]
    return build_list_payload(rows, len(rows), len(rows), 0)


@dist_bp.route('/my-delivery-orders', methods=['GET', 'HEAD'])
@require_permissions('DELIVERY.ACT')
@require_courier
def my_delivery_orders():
    engine = assignment_engine()
    engine.refresh()
    q = engine.active_query(staff_id=current_staff_id()).order_by(DeliveryAssignment.assigned_at.asc())
    return cached_list(q, assignment_json, state_key=lambda a: f'{a.id}:{a.assignment_status}:{a.is_late}')


@dist_bp.post('/sweep')
@require_permissions('DIST.ASSIGN')
@audit_log('ASSIGNMENT.SWEEP', meta_builder=lambda data, rv, a, kw: {
    'expired': len(data.get('expired') or []), 'late': len(data.get('late') or []),
})
def sweep():
    return assignment_engine().refresh()


def _item_or_404(item_id: int):
    item = get_db().get(PreparationItem, item_id, populate_existing=True)
    if item is None:
        raise NotFound('PreparationItem', item_id)
    return item


def _prefetch_order(order_id: int):
    o = get_db().get(Order, order_id, populate_existing=True)
    if not o:
        return {}
    return {'status': o.status}


def _prefetch_assignment(order_id: int):
    a = assignment_engine().active_for_order(order_id)
    if a is None:
        return {}
    return {'assignment_status': a.assignment_status}
