from __future__ import annotations
from flask import Blueprint, request
from distribution.models.delivery_staff import DeliveryStaff
from distribution.decorators.auth import require_permissions
from distribution.decorators.audit import audit_log
from distribution.services.policy import assert_any_branch_access, current_branch_ids
from distribution.services.staff_registry import serves_branches
from distribution.services.wiring import staff_registry
from distribution.errors import NotFound
from distribution.routes.serializers import staff_json
from distribution.utils.listing import cached_list
from distribution.utils.query import apply_filters, apply_multi_sort
from distribution.utils.validation import field, int_list, optional_int

staff_bp = Blueprint('staff', __name__)


@staff_bp.route('/delivery-staff', methods=['GET', 'HEAD'])
@require_permissions('DIST.READ')
def list_staff():
    registry = staff_registry()
    branch_ids = current_branch_ids()
    q = registry.query(branch_ids=branch_ids).populate_existing()

    def by_branch(qu, v):
        assert_any_branch_access([v])
        return qu.filter(serves_branches([v]))

    q = apply_filters(q, {
        'branch_id': {'coerce': int, 'op': by_branch},
        'is_available': {'coerce': lambda v: str(v).lower() in ('1', 'true', 'yes'),
                         'op': lambda qu, v: qu.filter(DeliveryStaff.is_available.is_(v))},
        'name': {'op': lambda qu, v: qu.filter(DeliveryStaff.name.ilike(f'%{v}%'))},
    }, request.args)
    allowed = {
        'id': DeliveryStaff.id,
        'name': DeliveryStaff.name,
        'current_orders': DeliveryStaff.current_orders,
        'updated_at': DeliveryStaff.updated_at,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, DeliveryStaff.id)
    return cached_list(q, staff_json, state_key=lambda s: f'{s.id}:{s.current_orders}:{s.is_available}')


@staff_bp.get('/delivery-staff/<int:staff_id>')
@require_permissions('DIST.READ')
def get_staff(staff_id: int):
    staff = staff_registry().get(staff_id)
    assert_any_branch_access(staff.branch_ids)
    return staff_json(staff)


@staff_bp.post('/delivery-staff')
@require_permissions('STAFF.MANAGE')
@audit_log('STAFF.CREATE', entity='DeliveryStaff', entity_id_key='id', meta_keys=['name', 'branch_ids', 'max_orders'])
def create_staff():
    data = request.json or {}
    branch_ids = int_list(field(data, 'branchIds', 'branch_ids', []), 'branchIds')
    for b in branch_ids:
        assert_any_branch_access([b])
    max_orders = optional_int(data, 'maxOrders', 'max_orders')
    staff = staff_registry().create(
        name=field(data, 'name'),
        branch_ids=branch_ids,
        phone=field(data, 'phone'),
        phone2=field(data, 'phone2'),
        max_orders=max_orders if max_orders is not None else 5,
        user_id=optional_int(data, 'userId', 'user_id'),
        is_available=bool(field(data, 'isAvailable', 'is_available', True)),
    )
    return staff_json(staff), 201


@staff_bp.put('/delivery-staff/<int:staff_id>')
@require_permissions('STAFF.MANAGE')
@audit_log(
    'STAFF.UPDATE',
    entity='DeliveryStaff',
    entity_id_key='id',
    diff_keys=['is_available', 'max_orders', 'branch_ids'],
    pre_fetch=lambda a, kw: _prefetch_staff(kw.get('staff_id')),
)
def update_staff(staff_id: int):
    registry = staff_registry()
    staff = registry.get(staff_id)
    assert_any_branch_access(staff.branch_ids)
    data = request.json or {}
    branch_ids = field(data, 'branchIds', 'branch_ids')
    if branch_ids is not None:
        branch_ids = int_list(branch_ids, 'branchIds')
        for b in branch_ids:
            assert_any_branch_access([b])
    is_available = field(data, 'isAvailable', 'is_available')
    staff = registry.update(
        staff_id,
        name=field(data, 'name'),
        phone=field(data, 'phone'),
        phone2=field(data, 'phone2'),
        max_orders=optional_int(data, 'maxOrders', 'max_orders'),
        is_available=bool(is_available) if is_available is not None else None,
        branch_ids=branch_ids,
    )
    return staff_json(staff)


def _prefetch_staff(staff_id: int):
    try:
        staff = staff_registry().get(staff_id)
    except NotFound:
        return {}
    return {'is_available': staff.is_available, 'max_orders': staff.max_orders, 'branch_ids': staff.branch_ids}
