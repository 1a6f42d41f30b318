"""Preparation checklist: one pick/pack entry per order line, gating the ``ready`` status."""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from distribution.constants.statuses import OrderStatus
from distribution.errors import Conflict, IncompletePreparation, InvalidState, NotFound
from distribution.models.order import Order
from distribution.models.preparation_item import PreparationItem
from distribution.services.lifecycle import advance_order, touch_order
from distribution.services.notifications import Notifier, dispatch, EVENT_ORDER_STATUS
from distribution.utils.clock import SystemClock
from distribution.utils.transaction import atomic

logger = logging.getLogger(__name__)


class PreparationTracker:
    def __init__(self, session: Session, clock=None, notifier: Optional[Notifier] = None):
        self.session = session
        self.clock = clock or SystemClock()
        self.notifier = notifier

    def get_order(self, order_id: int) -> Order:
        order = self.session.get(Order, order_id, populate_existing=True)
        if order is None:
            raise NotFound('Order', order_id)
        return order

    def items(self, order_id: int) -> List[PreparationItem]:
        stmt = select(PreparationItem).where(PreparationItem.order_id == order_id).order_by(PreparationItem.id)
        return list(self.session.execute(stmt).scalars())

    def progress(self, order_id: int) -> Dict[str, Any]:
        self.get_order(order_id)
        items = self.items(order_id)
        remaining = [i.id for i in items if not i.is_prepared]
        return {
            'items': items,
            'total': len(items),
            'prepared': len(items) - len(remaining),
            'remaining': len(remaining),
            'remaining_item_ids': remaining,
        }

    def start(self, order_id: int, prepared_by: Optional[int] = None) -> List[PreparationItem]:
        """Build the checklist and move the order to ``preparing``.

        Repeating the call on an order that is already preparing returns the existing
        checklist unchanged.
        """
        order = self.get_order(order_id)
        if order.status == OrderStatus.PREPARING:
            return self.items(order_id)
        if order.status != OrderStatus.CONFIRMED:
            raise InvalidState(
                f'Order {order_id} is {order.status}; preparation starts from confirmed',
                order_id=order_id, current=order.status,
            )
        now = self.clock.now()
        with atomic(self.session):
            advance_order(self.session, order, OrderStatus.PREPARING, now)
            existing = {i.line_no for i in self.items(order_id)}
            for line_no, line in enumerate(order.line_items()):
                if line_no in existing:
                    continue
                self.session.add(PreparationItem(
                    order_id=order_id,
                    line_no=line_no,
                    product_id=line['product_id'],
                    product_name=line['name'],
                    quantity=line['quantity'],
                ))
            try:
                self.session.flush()
            except IntegrityError as exc:
                raise Conflict(f'Preparation items for order {order_id} created concurrently', order_id=order_id) from exc
        items = self.items(order_id)
        logger.info('order %s preparation started with %d items (by %s)', order_id, len(items), prepared_by)
        dispatch(self.notifier, 'notify_customer', order, EVENT_ORDER_STATUS, {'status': order.status})
        return items

    def toggle(self, item_id: int, is_prepared: bool, notes: Optional[str] = None,
               prepared_by: Optional[int] = None) -> PreparationItem:
        item = self.session.get(PreparationItem, item_id, populate_existing=True)
        if item is None:
            raise NotFound('PreparationItem', item_id)
        order = self.get_order(item.order_id)
        if order.status != OrderStatus.PREPARING:
            raise InvalidState(
                f'Order {order.id} is {order.status}; checklist is locked',
                order_id=order.id, current=order.status,
            )
        now = self.clock.now()
        with atomic(self.session):
            touch_order(self.session, order, now)
            item.is_prepared = bool(is_prepared)
            item.prepared_at = now if item.is_prepared else None
            item.prepared_by = prepared_by if item.is_prepared else None
            if notes is not None:
                item.notes = notes
        return item

    def complete(self, order_id: int) -> Order:
        order = self.get_order(order_id)
        if order.status != OrderStatus.PREPARING:
            raise InvalidState(
                f'Order {order_id} is {order.status}; only preparing orders can be completed',
                order_id=order_id, current=order.status,
            )
        remaining = [i.id for i in self.items(order_id) if not i.is_prepared]
        if remaining:
            raise IncompletePreparation(order_id, remaining)
        # An order without line items has nothing to pick and is complete as-is.
        with atomic(self.session):
            advance_order(self.session, order, OrderStatus.READY, self.clock.now())
        logger.info('order %s ready for delivery', order_id)
        dispatch(self.notifier, 'notify_customer', order, EVENT_ORDER_STATUS, {'status': order.status})
        return order


__all__ = ['PreparationTracker']
