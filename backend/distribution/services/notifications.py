"""Best-effort notification sink.

Delivery mechanics (push, SMS, sockets) live elsewhere; the engine only needs somewhere to
hand events once a transition is committed. ``dispatch`` guarantees a failing sink can
never undo or abort the state change that triggered it.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

EVENT_ASSIGNMENT_NEW = 'assignment.new'
EVENT_ASSIGNMENT_EXPIRED = 'assignment.expired'
EVENT_ASSIGNMENT_REJECTED = 'assignment.rejected'
EVENT_ASSIGNMENT_CANCELLED = 'assignment.cancelled'
EVENT_ORDER_STATUS = 'order.status'
EVENT_ORDER_RETURNED = 'order.returned'


class Notifier:
    """Interface for notification sinks. Subclasses override what they support."""

    def notify_courier(self, staff_id: int, order_id: int, event: str, payload: Optional[Dict[str, Any]] = None):
        pass

    def notify_customer(self, order, event: str, payload: Optional[Dict[str, Any]] = None):
        pass

    def notify_branch(self, branch_id: int, order_id: int, event: str, payload: Optional[Dict[str, Any]] = None):
        pass


class LogNotifier(Notifier):
    """Default sink: records every event in the application log."""

    def notify_courier(self, staff_id, order_id, event, payload=None):
        logger.info('notify courier=%s order=%s event=%s payload=%s', staff_id, order_id, event, payload or {})

    def notify_customer(self, order, event, payload=None):
        logger.info('notify customer=%s order=%s event=%s payload=%s',
                    getattr(order, 'customer_id', None), order.id, event, payload or {})

    def notify_branch(self, branch_id, order_id, event, payload=None):
        logger.info('notify branch=%s order=%s event=%s payload=%s', branch_id, order_id, event, payload or {})


def dispatch(notifier: Optional[Notifier], method: str, *args, **kwargs) -> bool:
    """Call ``notifier.<method>``; failures are logged and reported as False."""
    if notifier is None:
        return False
    try:
        getattr(notifier, method)(*args, **kwargs)
        return True
    except Exception:
        logger.exception('notification %s failed', method)
        return False


__all__ = [
    'Notifier', 'LogNotifier', 'dispatch',
    'EVENT_ASSIGNMENT_NEW', 'EVENT_ASSIGNMENT_EXPIRED', 'EVENT_ASSIGNMENT_REJECTED',
    'EVENT_ASSIGNMENT_CANCELLED', 'EVENT_ORDER_STATUS', 'EVENT_ORDER_RETURNED',
]
