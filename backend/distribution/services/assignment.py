"""Delivery assignment engine.

Matches ``ready`` orders with couriers and drives each attempt through
``assigned -> accepted -> picked_up -> arriving -> delivered``. The accept deadline is
passive: nothing fires when it elapses. ``expire_stale`` must run on every read path that
shows assignment state (``refresh`` does that plus late flagging), which is how a courier
that never answers gets its load slot back.

Load accounting: a courier's ``current_orders`` goes up once when a row is created and
down once when that row reaches a terminal status. Both moves happen in the same
transaction as the status write that causes them.
"""
from __future__ import annotations
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from distribution.constants.statuses import (
    OrderStatus, AssignmentStatus, ASSIGNMENT_ACTIVE, ASSIGNMENT_IN_TRANSIT,
)
from distribution.errors import (
    Conflict, DeadlineExpired, InvalidState, NotFound, StaffUnavailable, ValidationError,
)
from distribution.models.order import Order
from distribution.models.delivery_assignment import DeliveryAssignment
from distribution.services.lifecycle import advance_assignment, advance_order, touch_order
from distribution.services.policy import filter_query_by_branches
from distribution.services.notifications import (
    Notifier, dispatch, EVENT_ASSIGNMENT_NEW, EVENT_ASSIGNMENT_EXPIRED,
    EVENT_ASSIGNMENT_REJECTED, EVENT_ORDER_STATUS, EVENT_ORDER_RETURNED,
)
from distribution.services.staff_registry import DeliveryStaffRegistry
from distribution.utils.clock import SystemClock
from distribution.utils.transaction import atomic, compare_and_swap

logger = logging.getLogger(__name__)

DEFAULT_ACCEPT_TIMEOUT_MINUTES = 5
DEFAULT_EXPECTED_DELIVERY_MINUTES = 30

_ACTIVE_VALUES = [s.value for s in ASSIGNMENT_ACTIVE]
_IN_TRANSIT_VALUES = [s.value for s in ASSIGNMENT_IN_TRANSIT]


class AssignmentEngine:
    def __init__(self, session: Session, clock=None, notifier: Optional[Notifier] = None,
                 registry: Optional[DeliveryStaffRegistry] = None,
                 default_accept_timeout: int = DEFAULT_ACCEPT_TIMEOUT_MINUTES,
                 default_expected_delivery: int = DEFAULT_EXPECTED_DELIVERY_MINUTES):
        self.session = session
        self.clock = clock or SystemClock()
        self.notifier = notifier
        self.registry = registry or DeliveryStaffRegistry(session, self.clock)
        self.default_accept_timeout = default_accept_timeout
        self.default_expected_delivery = default_expected_delivery

    # ---------------- lookups ---------------- #

    def get(self, assignment_id: int) -> DeliveryAssignment:
        assignment = self.session.get(DeliveryAssignment, assignment_id, populate_existing=True)
        if assignment is None:
            raise NotFound('DeliveryAssignment', assignment_id)
        return assignment

    def get_order(self, order_id: int) -> Order:
        order = self.session.get(Order, order_id, populate_existing=True)
        if order is None:
            raise NotFound('Order', order_id)
        return order

    def active_for_order(self, order_id: int) -> Optional[DeliveryAssignment]:
        stmt = select(DeliveryAssignment).where(
            DeliveryAssignment.order_id == order_id,
            DeliveryAssignment.assignment_status.in_(_ACTIVE_VALUES),
        )
        return self.session.execute(stmt.execution_options(populate_existing=True)).scalars().first()

    def require_active_for_order(self, order_id: int) -> DeliveryAssignment:
        self.get_order(order_id)
        assignment = self.active_for_order(order_id)
        if assignment is None:
            raise InvalidState(f'Order {order_id} has no active assignment', order_id=order_id)
        return assignment

    def history(self, order_id: int) -> List[DeliveryAssignment]:
        self.get_order(order_id)
        stmt = (
            select(DeliveryAssignment)
            .where(DeliveryAssignment.order_id == order_id)
            .order_by(DeliveryAssignment.id.asc())
        )
        return list(self.session.execute(stmt.execution_options(populate_existing=True)).scalars())

    def available_staff(self, branch_id: int):
        return self.registry.list_available(branch_id)

    def active_query(self, branch_ids: Optional[List[int]] = None, staff_id: Optional[int] = None):
        q = (
            self.session.query(DeliveryAssignment)
            .join(Order, Order.id == DeliveryAssignment.order_id)
            .filter(DeliveryAssignment.assignment_status.in_(_ACTIVE_VALUES))
            .populate_existing()
        )
        q = filter_query_by_branches(q, Order.branch_id, branch_ids)
        if staff_id is not None:
            q = q.filter(DeliveryAssignment.delivery_staff_id == staff_id)
        return q

    # ---------------- commands ---------------- #

    def assign(self, order_id: int, staff_id: int, accept_timeout_minutes: Optional[int] = None,
               expected_delivery_minutes: Optional[int] = None, assigned_by: Optional[int] = None) -> DeliveryAssignment:
        timeout = _positive_minutes('accept_timeout_minutes', accept_timeout_minutes, self.default_accept_timeout)
        expected = _positive_minutes('expected_delivery_minutes', expected_delivery_minutes, self.default_expected_delivery)
        order = self.get_order(order_id)
        if order.status != OrderStatus.READY:
            raise InvalidState(
                f'Order {order_id} is {order.status}; only ready orders can be assigned',
                order_id=order_id, current=order.status,
            )
        # an unswept expired row must not block reassignment
        self.expire_stale()
        active = self.active_for_order(order_id)
        if active is not None:
            raise Conflict(
                f'Order {order_id} already has active assignment {active.id}',
                order_id=order_id, assignment_id=active.id,
            )
        staff = self.registry.get(staff_id)
        if order.branch_id not in staff.branch_ids or not staff.has_capacity:
            raise StaffUnavailable(
                f'Delivery staff {staff_id} cannot take orders for branch {order.branch_id}',
                delivery_staff_id=staff_id, current_orders=staff.current_orders, max_orders=staff.max_orders,
            )
        now = self.clock.now()
        with atomic(self.session):
            touch_order(self.session, order, now)
            self.registry.increment_load(staff_id, branch_id=order.branch_id)
            assignment = DeliveryAssignment(
                order_id=order_id,
                delivery_staff_id=staff_id,
                assignment_status=AssignmentStatus.ASSIGNED.value,
                assigned_by=assigned_by,
                assigned_at=now,
                accept_deadline=now + timedelta(minutes=timeout),
                expected_delivery_minutes=expected,
                updated_at=now,
            )
            self.session.add(assignment)
            try:
                self.session.flush()
            except IntegrityError as exc:
                raise Conflict(f'Order {order_id} was assigned concurrently', order_id=order_id) from exc
        logger.info('order %s assigned to staff %s (assignment %s, deadline %s)',
                    order_id, staff_id, assignment.id, assignment.accept_deadline.isoformat())
        dispatch(self.notifier, 'notify_courier', staff_id, order_id, EVENT_ASSIGNMENT_NEW, {
            'assignment_id': assignment.id,
            'accept_deadline': assignment.accept_deadline.isoformat(),
            'expected_delivery_minutes': expected,
        })
        return assignment

    def accept(self, assignment_id: int) -> DeliveryAssignment:
        assignment = self.get(assignment_id)
        self._require_status(assignment, AssignmentStatus.ASSIGNED)
        now = self.clock.now()
        if now >= assignment.accept_deadline:
            raise DeadlineExpired(
                f'Assignment {assignment_id} accept window closed at {assignment.accept_deadline.isoformat()}',
                assignment_id=assignment_id, accept_deadline=assignment.accept_deadline.isoformat(),
            )
        order = self.get_order(assignment.order_id)
        with atomic(self.session):
            advance_assignment(
                self.session, assignment, AssignmentStatus.ACCEPTED, now,
                DeliveryAssignment.accept_deadline > now,
                accepted_at=now,
            )
            advance_order(self.session, order, OrderStatus.OUT_FOR_DELIVERY, now)
        logger.info('assignment %s accepted by staff %s', assignment_id, assignment.delivery_staff_id)
        dispatch(self.notifier, 'notify_customer', order, EVENT_ORDER_STATUS, {'status': order.status})
        return assignment

    def reject(self, assignment_id: int, reason: Optional[str] = None) -> DeliveryAssignment:
        assignment = self.get(assignment_id)
        self._require_status(assignment, AssignmentStatus.ASSIGNED)
        order = self.get_order(assignment.order_id)
        now = self.clock.now()
        with atomic(self.session):
            touch_order(self.session, order, now)
            advance_assignment(
                self.session, assignment, AssignmentStatus.REJECTED, now,
                rejected_at=now, rejection_reason=(reason or None),
            )
            self.registry.decrement_load(assignment.delivery_staff_id)
        logger.info('assignment %s rejected by staff %s: %s', assignment_id, assignment.delivery_staff_id, reason)
        dispatch(self.notifier, 'notify_branch', order.branch_id, order.id, EVENT_ASSIGNMENT_REJECTED, {
            'assignment_id': assignment_id, 'reason': reason,
        })
        return assignment

    def mark_picked_up(self, assignment_id: int) -> DeliveryAssignment:
        return self._advance_in_transit(assignment_id, AssignmentStatus.ACCEPTED, AssignmentStatus.PICKED_UP, 'picked_up_at')

    def mark_arriving(self, assignment_id: int) -> DeliveryAssignment:
        return self._advance_in_transit(assignment_id, AssignmentStatus.PICKED_UP, AssignmentStatus.ARRIVING, 'customer_arrived_at')

    def mark_delivered(self, assignment_id: int) -> DeliveryAssignment:
        assignment = self.get(assignment_id)
        self._require_status(assignment, AssignmentStatus.ARRIVING)
        order = self.get_order(assignment.order_id)
        now = self.clock.now()
        late_minutes = _late_by(assignment, now)
        with atomic(self.session):
            advance_assignment(
                self.session, assignment, AssignmentStatus.DELIVERED, now,
                delivered_at=now,
                is_late=late_minutes is not None,
                late_minutes=late_minutes,
            )
            advance_order(self.session, order, OrderStatus.DELIVERED, now)
            self.registry.decrement_load(assignment.delivery_staff_id)
        logger.info('assignment %s delivered (order %s, %.1f min vs %s expected)',
                    assignment_id, order.id, assignment.delivery_minutes() or 0.0, assignment.expected_delivery_minutes)
        dispatch(self.notifier, 'notify_customer', order, EVENT_ORDER_STATUS, {'status': order.status})
        return assignment

    def cancel_active(self, order: Order, now) -> Optional[DeliveryAssignment]:
        """Close the order's active assignment when the order itself is withdrawn.

        Runs inside the caller's transaction (the order gate), which also moves the order.
        """
        assignment = self.active_for_order(order.id)
        if assignment is None:
            return None
        advance_assignment(self.session, assignment, AssignmentStatus.CANCELLED, now, cancelled_at=now)
        self.registry.decrement_load(assignment.delivery_staff_id)
        return assignment

    # ---------------- sweeps ---------------- #

    def expire_stale(self) -> List[int]:
        """Expire every ``assigned`` row whose deadline has passed and release its load.

        Safe to run repeatedly and concurrently: a row is only released by the sweep whose
        guarded UPDATE moved it out of ``assigned``. Each row commits on its own.
        """
        now = self.clock.now()
        stmt = select(DeliveryAssignment.id, DeliveryAssignment.delivery_staff_id, DeliveryAssignment.order_id).where(
            DeliveryAssignment.assignment_status == AssignmentStatus.ASSIGNED.value,
            DeliveryAssignment.accept_deadline < now,
        )
        stale = list(self.session.execute(stmt))
        expired = []
        for assignment_id, staff_id, order_id in stale:
            try:
                with atomic(self.session):
                    claimed = compare_and_swap(self.session, (
                        update(DeliveryAssignment)
                        .where(
                            DeliveryAssignment.id == assignment_id,
                            DeliveryAssignment.assignment_status == AssignmentStatus.ASSIGNED.value,
                            DeliveryAssignment.accept_deadline < now,
                        )
                        .values(assignment_status=AssignmentStatus.EXPIRED.value, expired_at=now, updated_at=now)
                    ))
                    if claimed:
                        self.registry.decrement_load(staff_id, expired=True)
            except Conflict:
                logger.exception('could not expire assignment %s (staff %s)', assignment_id, staff_id)
                continue
            if claimed:
                expired.append((assignment_id, staff_id, order_id))
        for assignment_id, staff_id, order_id in expired:
            order = self.session.get(Order, order_id)
            logger.info('assignment %s expired (order %s back to distribution)', assignment_id, order_id)
            dispatch(self.notifier, 'notify_courier', staff_id, order_id, EVENT_ASSIGNMENT_EXPIRED, {'assignment_id': assignment_id})
            if order is not None:
                dispatch(self.notifier, 'notify_branch', order.branch_id, order_id, EVENT_ORDER_RETURNED, {'assignment_id': assignment_id})
        if expired:
            logger.info('expired %d stale assignments', len(expired))
        return [e[0] for e in expired]

    def flag_late(self) -> List[int]:
        """Mark in-transit assignments that have overrun their expected delivery time."""
        now = self.clock.now()
        stmt = select(DeliveryAssignment).where(
            DeliveryAssignment.assignment_status.in_(_IN_TRANSIT_VALUES),
            DeliveryAssignment.is_late.is_(False),
            DeliveryAssignment.accepted_at.is_not(None),
        )
        flagged = []
        with atomic(self.session):
            for assignment in list(self.session.execute(stmt.execution_options(populate_existing=True)).scalars()):
                late_minutes = _late_by(assignment, now)
                if late_minutes is None:
                    continue
                if compare_and_swap(self.session, (
                    update(DeliveryAssignment)
                    .where(
                        DeliveryAssignment.id == assignment.id,
                        DeliveryAssignment.is_late.is_(False),
                        DeliveryAssignment.assignment_status.in_(_IN_TRANSIT_VALUES),
                    )
                    .values(is_late=True, late_minutes=late_minutes, updated_at=now)
                )):
                    flagged.append(assignment.id)
                    logger.warning('assignment %s is late by %d minutes', assignment.id, late_minutes)
        return flagged

    def refresh(self) -> Dict[str, Any]:
        """Lazy timers: run before rendering anything that shows assignment state."""
        return {'expired': self.expire_stale(), 'late': self.flag_late()}

    # ---------------- internals ---------------- #

    def _require_status(self, assignment: DeliveryAssignment, expected: AssignmentStatus):
        if assignment.assignment_status != expected:
            raise InvalidState(
                f'Assignment {assignment.id} is {assignment.assignment_status}; expected {expected.value}',
                assignment_id=assignment.id, current=assignment.assignment_status, expected=expected.value,
            )

    def _advance_in_transit(self, assignment_id: int, expected: AssignmentStatus, target: AssignmentStatus,
                            stamp_field: str) -> DeliveryAssignment:
        assignment = self.get(assignment_id)
        self._require_status(assignment, expected)
        order = self.get_order(assignment.order_id)
        now = self.clock.now()
        with atomic(self.session):
            touch_order(self.session, order, now)
            advance_assignment(self.session, assignment, target, now, **{stamp_field: now})
        logger.info('assignment %s %s', assignment_id, target.value)
        dispatch(self.notifier, 'notify_customer', order, EVENT_ORDER_STATUS, {
            'status': order.status, 'assignment_status': assignment.assignment_status,
        })
        return assignment


def _positive_minutes(field: str, value: Optional[Any], default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be a positive integer')
    try:
        minutes = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be a positive integer')
    if minutes <= 0:
        raise ValidationError(f'{field} must be a positive integer')
    return minutes


def _late_by(assignment: DeliveryAssignment, now) -> Optional[int]:
    """Whole minutes past the expected delivery time, or None while on schedule."""
    if assignment.accepted_at is None:
        return None
    elapsed = (now - assignment.accepted_at).total_seconds() / 60.0
    overrun = elapsed - assignment.expected_delivery_minutes
    if overrun <= 0:
        return None
    return max(1, round(overrun))


__all__ = ['AssignmentEngine', 'DEFAULT_ACCEPT_TIMEOUT_MINUTES', 'DEFAULT_EXPECTED_DELIVERY_MINUTES']
