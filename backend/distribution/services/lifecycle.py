"""Order and delivery-assignment state machines plus their guarded writers.

Every status change in the service goes through ``advance_order`` or
``advance_assignment``: the edge is checked against the lifecycle graph, then written with
an ``UPDATE ... WHERE <expected state>`` so two racing requests cannot both succeed.

Order lifecycle:
    pending -> confirmed -> preparing -> ready -> out_for_delivery -> delivered
    any non-terminal -> cancelled | rejected

Assignment lifecycle:
    assigned -> accepted -> picked_up -> arriving -> delivered
    assigned -> expired | rejected
    any non-terminal -> cancelled (order withdrawn)
"""
from __future__ import annotations
from datetime import datetime
from typing import Any
from sqlalchemy import update
from sqlalchemy.orm import Session

from distribution.constants.statuses import OrderStatus, AssignmentStatus
from distribution.errors import Conflict
from distribution.models.order import Order
from distribution.models.delivery_assignment import DeliveryAssignment
from distribution.utils.fsm import TransitionValidator
from distribution.utils.transaction import compare_and_swap

_ORDER_WITHDRAWN = {OrderStatus.CANCELLED, OrderStatus.REJECTED}

ORDER_FSM = TransitionValidator({
    OrderStatus.PENDING: {OrderStatus.CONFIRMED} | _ORDER_WITHDRAWN,
    OrderStatus.CONFIRMED: {OrderStatus.PREPARING} | _ORDER_WITHDRAWN,
    OrderStatus.PREPARING: {OrderStatus.READY} | _ORDER_WITHDRAWN,
    OrderStatus.READY: {OrderStatus.OUT_FOR_DELIVERY} | _ORDER_WITHDRAWN,
    OrderStatus.OUT_FOR_DELIVERY: {OrderStatus.DELIVERED} | _ORDER_WITHDRAWN,
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
    OrderStatus.REJECTED: set(),
})

ASSIGNMENT_FSM = TransitionValidator({
    AssignmentStatus.ASSIGNED: {
        AssignmentStatus.ACCEPTED, AssignmentStatus.EXPIRED,
        AssignmentStatus.REJECTED, AssignmentStatus.CANCELLED,
    },
    AssignmentStatus.ACCEPTED: {AssignmentStatus.PICKED_UP, AssignmentStatus.CANCELLED},
    AssignmentStatus.PICKED_UP: {AssignmentStatus.ARRIVING, AssignmentStatus.CANCELLED},
    AssignmentStatus.ARRIVING: {AssignmentStatus.DELIVERED, AssignmentStatus.CANCELLED},
    AssignmentStatus.DELIVERED: set(),
    AssignmentStatus.EXPIRED: set(),
    AssignmentStatus.REJECTED: set(),
    AssignmentStatus.CANCELLED: set(),
}, field_name='assignment_status')


def advance_order(session: Session, order: Order, target: OrderStatus, now: datetime, **values: Any) -> Order:
    """Move ``order`` to ``target`` if the edge is legal and nobody changed it meanwhile."""
    ORDER_FSM.assert_can_transition(order.status, target)
    return _swap_order(session, order, now, status=target.value, **values)


def touch_order(session: Session, order: Order, now: datetime) -> Order:
    """Claim the order row without changing its status.

    Assignment operations that leave the order status alone still bump ``version`` so
    concurrent operations on the same order serialize.
    """
    return _swap_order(session, order, now)


def _swap_order(session: Session, order: Order, now: datetime, **values: Any) -> Order:
    stmt = (
        update(Order)
        .where(Order.id == order.id, Order.status == order.status, Order.version == order.version)
        .values(version=Order.version + 1, updated_at=now, **values)
    )
    if not compare_and_swap(session, stmt):
        raise Conflict(f'Order {order.id} was modified concurrently', order_id=order.id)
    session.refresh(order)
    return order


def advance_assignment(session: Session, assignment: DeliveryAssignment, target: AssignmentStatus,
                       now: datetime, *criteria, **values: Any) -> DeliveryAssignment:
    """Move ``assignment`` to ``target``; extra ``criteria`` tighten the WHERE clause."""
    ASSIGNMENT_FSM.assert_can_transition(assignment.assignment_status, target)
    stmt = (
        update(DeliveryAssignment)
        .where(
            DeliveryAssignment.id == assignment.id,
            DeliveryAssignment.assignment_status == assignment.assignment_status,
            *criteria,
        )
        .values(assignment_status=target.value, updated_at=now, **values)
    )
    if not compare_and_swap(session, stmt):
        raise Conflict(
            f'Assignment {assignment.id} was modified concurrently',
            assignment_id=assignment.id,
        )
    session.refresh(assignment)
    return assignment


__all__ = ['ORDER_FSM', 'ASSIGNMENT_FSM', 'advance_order', 'touch_order', 'advance_assignment']
