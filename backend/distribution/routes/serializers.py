from __future__ import annotations
from typing import Any, Dict, Optional
from distribution.models.order import Order
from distribution.models.preparation_item import PreparationItem
from distribution.models.delivery_staff import DeliveryStaff
from distribution.models.delivery_assignment import DeliveryAssignment
from distribution.utils.listing import iso_z


def _ts(dt) -> Optional[str]:
    return dt.isoformat() + 'Z' if dt is not None else None


def order_json(o: Order, assignment: Optional[DeliveryAssignment] = None) -> Dict[str, Any]:
    body = {
        'id': o.id,
        'branch_id': o.branch_id,
        'customer_id': o.customer_id,
        'customer_name': o.customer_name,
        'total_cents': o.total_cents,
        'status': o.status,
        'items': o.line_items(),
        'unavailable_items': o.unavailable_items or [],
        'shipping_info': o.shipping_info,
        'cancel_reason': o.cancel_reason,
        'version': o.version,
        'created_at': _ts(o.created_at),
        'updated_at': _ts(o.updated_at),
    }
    if assignment is not None:
        body['assignment'] = assignment_json(assignment, include_order=False)
    return body


def item_json(i: PreparationItem) -> Dict[str, Any]:
    return {
        'id': i.id,
        'order_id': i.order_id,
        'line_no': i.line_no,
        'product_id': i.product_id,
        'product_name': i.product_name,
        'quantity': i.quantity,
        'is_prepared': i.is_prepared,
        'prepared_at': _ts(i.prepared_at),
        'prepared_by': i.prepared_by,
        'notes': i.notes,
    }


def staff_json(s: DeliveryStaff) -> Dict[str, Any]:
    return {
        'id': s.id,
        'user_id': s.user_id,
        'name': s.name,
        'phone': s.phone,
        'phone2': s.phone2,
        'is_available': s.is_available,
        'max_orders': s.max_orders,
        'current_orders': s.current_orders,
        'expired_orders': s.expired_orders,
        'branch_ids': s.branch_ids,
        'updated_at': iso_z(s.updated_at),
    }


def assignment_json(a: DeliveryAssignment, include_order: bool = True) -> Dict[str, Any]:
    body = {
        'id': a.id,
        'order_id': a.order_id,
        'delivery_staff_id': a.delivery_staff_id,
        'assignment_status': a.assignment_status,
        'assigned_by': a.assigned_by,
        'assigned_at': _ts(a.assigned_at),
        'accept_deadline': _ts(a.accept_deadline),
        'accepted_at': _ts(a.accepted_at),
        'picked_up_at': _ts(a.picked_up_at),
        'customer_arrived_at': _ts(a.customer_arrived_at),
        'delivered_at': _ts(a.delivered_at),
        'rejected_at': _ts(a.rejected_at),
        'expired_at': _ts(a.expired_at),
        'cancelled_at': _ts(a.cancelled_at),
        'rejection_reason': a.rejection_reason,
        'expected_delivery_minutes': a.expected_delivery_minutes,
        'is_late': a.is_late,
        'late_minutes': a.late_minutes,
    }
    if a.staff is not None:
        body['staff'] = {'id': a.staff.id, 'name': a.staff.name, 'phone': a.staff.phone}
    if include_order and a.order is not None:
        o = a.order
        body['order'] = {
            'id': o.id, 'branch_id': o.branch_id, 'status': o.status, 'customer_name': o.customer_name,
            'total_cents': o.total_cents, 'shipping_info': o.shipping_info,
        }
    return body


__all__ = ['order_json', 'item_json', 'staff_json', 'assignment_json']
