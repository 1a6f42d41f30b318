"""Request-scoped service construction from the app config (session, clock, notifier)."""
from __future__ import annotations
from flask import current_app
from distribution import get_db, get_clock, get_notifier
from distribution.services.assignment import AssignmentEngine
from distribution.services.orders import OrderGate
from distribution.services.preparation import PreparationTracker
from distribution.services.staff_registry import DeliveryStaffRegistry


def staff_registry() -> DeliveryStaffRegistry:
    return DeliveryStaffRegistry(get_db(), get_clock())


def assignment_engine() -> AssignmentEngine:
    return AssignmentEngine(
        get_db(), get_clock(), get_notifier(),
        default_accept_timeout=current_app.config['DEFAULT_ACCEPT_TIMEOUT_MINUTES'],
        default_expected_delivery=current_app.config['DEFAULT_EXPECTED_DELIVERY_MINUTES'],
    )


def preparation_tracker() -> PreparationTracker:
    return PreparationTracker(get_db(), get_clock(), get_notifier())


def order_gate() -> OrderGate:
    return OrderGate(get_db(), get_clock(), get_notifier(), engine=assignment_engine())


__all__ = ['staff_registry', 'assignment_engine', 'preparation_tracker', 'order_gate']
