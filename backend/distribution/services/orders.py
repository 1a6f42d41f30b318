"""Order confirmation gate.

Owns the transitions that happen outside the warehouse and the road: confirming a
checked-out order, withdrawing it (cancel / reject) and recording missing stock. Everything
between ``preparing`` and ``delivered`` belongs to the preparation tracker and the
assignment engine.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, List, Optional

from distribution.constants.statuses import OrderStatus, SubstitutionPreference, ALL_SUBSTITUTION_PREFERENCES
from distribution.errors import InvalidState, NotFound, ValidationError
from distribution.models.order import Order
from distribution.services.assignment import AssignmentEngine
from distribution.services.lifecycle import advance_order, touch_order
from distribution.services.policy import filter_query_by_branches
from distribution.services.notifications import (
    Notifier, dispatch, EVENT_ORDER_STATUS, EVENT_ASSIGNMENT_CANCELLED,
)
from distribution.utils.clock import SystemClock
from distribution.utils.transaction import atomic

logger = logging.getLogger(__name__)

# Orders a distributor works on, in board order.
TO_PREPARE_STATUSES = (OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY)
_UNAVAILABLE_EDITABLE = {OrderStatus.CONFIRMED.value, OrderStatus.PREPARING.value}


class OrderGate:
    def __init__(self, session, clock=None, notifier: Optional[Notifier] = None,
                 engine: Optional[AssignmentEngine] = None):
        self.session = session
        self.clock = clock or SystemClock()
        self.notifier = notifier
        self.engine = engine or AssignmentEngine(session, self.clock, notifier)

    def get(self, order_id: int) -> Order:
        order = self.session.get(Order, order_id, populate_existing=True)
        if order is None:
            raise NotFound('Order', order_id)
        return order

    def confirm(self, order_id: int) -> Order:
        order = self.get(order_id)
        if order.status != OrderStatus.PENDING:
            raise InvalidState(
                f'Order {order_id} is {order.status}; only pending orders can be confirmed',
                order_id=order_id, current=order.status,
            )
        with atomic(self.session):
            advance_order(self.session, order, OrderStatus.CONFIRMED, self.clock.now())
        logger.info('order %s confirmed', order_id)
        dispatch(self.notifier, 'notify_customer', order, EVENT_ORDER_STATUS, {'status': order.status})
        return order

    def cancel(self, order_id: int, reason: Optional[str] = None) -> Order:
        return self._withdraw(order_id, OrderStatus.CANCELLED, reason)

    def reject(self, order_id: int, reason: Optional[str] = None) -> Order:
        return self._withdraw(order_id, OrderStatus.REJECTED, reason)

    def set_status(self, order_id: int, status: str, reason: Optional[str] = None) -> Order:
        """Entry point for ``POST /orders/{id}/status``."""
        try:
            target = OrderStatus(status)
        except ValueError:
            raise ValidationError(f'Unknown order status {status!r}', status=status)
        if target == OrderStatus.CONFIRMED:
            return self.confirm(order_id)
        if target == OrderStatus.CANCELLED:
            return self.cancel(order_id, reason)
        if target == OrderStatus.REJECTED:
            return self.reject(order_id, reason)
        order = self.get(order_id)
        raise InvalidState(
            f'Status {target.value} is set by the distribution workflow, not directly',
            order_id=order_id, current=order.status, target=target.value,
        )

    def record_unavailable_items(self, order_id: int, entries: Iterable[Dict[str, Any]]) -> Order:
        """Replace the order's unavailable-items list; ``items`` is left untouched."""
        order = self.get(order_id)
        if order.status not in _UNAVAILABLE_EDITABLE:
            raise InvalidState(
                f'Order {order_id} is {order.status}; unavailable items are recorded while confirmed or preparing',
                order_id=order_id, current=order.status,
            )
        cleaned = _clean_unavailable(order, entries)
        with atomic(self.session):
            touch_order(self.session, order, self.clock.now())
            order.unavailable_items = cleaned
        logger.info('order %s unavailable items recorded (%d)', order_id, len(cleaned))
        return order

    def to_prepare_query(self, branch_ids: Optional[List[int]] = None):
        q = self.session.query(Order).filter(Order.status.in_([s.value for s in TO_PREPARE_STATUSES]))
        return filter_query_by_branches(q, Order.branch_id, branch_ids)

    def _withdraw(self, order_id: int, target: OrderStatus, reason: Optional[str]) -> Order:
        order = self.get(order_id)
        if order.is_terminal:
            raise InvalidState(
                f'Order {order_id} is already {order.status}',
                order_id=order_id, current=order.status, target=target.value,
            )
        now = self.clock.now()
        with atomic(self.session):
            cancelled = self.engine.cancel_active(order, now)
            advance_order(self.session, order, target, now, cancel_reason=(reason or None))
        logger.info('order %s %s (reason: %s)', order_id, target.value, reason)
        if cancelled is not None:
            dispatch(self.notifier, 'notify_courier', cancelled.delivery_staff_id, order_id,
                     EVENT_ASSIGNMENT_CANCELLED, {'assignment_id': cancelled.id})
        dispatch(self.notifier, 'notify_customer', order, EVENT_ORDER_STATUS, {'status': order.status, 'reason': reason})
        return order


def _clean_unavailable(order: Order, entries: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if entries is None or not isinstance(entries, list):
        raise ValidationError('items must be a list')
    lines = {str(line['product_id']): line for line in order.line_items() if line['product_id'] is not None}
    cleaned = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise ValidationError('each unavailable item must be an object')
        product_id = entry.get('productId', entry.get('product_id'))
        if product_id is None or str(product_id) not in lines:
            raise ValidationError(f'product {product_id!r} is not part of order {order.id}', product_id=product_id)
        preference = entry.get('substitutionPreference', entry.get('substitution_preference', SubstitutionPreference.NONE.value))
        if preference not in ALL_SUBSTITUTION_PREFERENCES:
            raise ValidationError(
                f'substitutionPreference {preference!r} invalid',
                allowed=list(ALL_SUBSTITUTION_PREFERENCES),
            )
        line = lines[str(product_id)]
        cleaned.append({
            'product_id': line['product_id'],
            'product_name': line['name'],
            'quantity': line['quantity'],
            'substitution_preference': preference,
            'notes': entry.get('notes'),
        })
    return cleaned


__all__ = ['OrderGate', 'TO_PREPARE_STATUSES']
