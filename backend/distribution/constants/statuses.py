"""Closed status vocabularies for orders and delivery assignments.

Values are the lowercase strings persisted in the database and exchanged over the API.
Never rename a value in place; add a new member and migrate stored rows instead.
"""
from __future__ import annotations
from enum import Enum
from typing import FrozenSet


class OrderStatus(str, Enum):
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    PREPARING = 'preparing'
    READY = 'ready'
    OUT_FOR_DELIVERY = 'out_for_delivery'
    DELIVERED = 'delivered'
    CANCELLED = 'cancelled'
    REJECTED = 'rejected'


class AssignmentStatus(str, Enum):
    ASSIGNED = 'assigned'
    ACCEPTED = 'accepted'
    PICKED_UP = 'picked_up'
    ARRIVING = 'arriving'
    DELIVERED = 'delivered'
    EXPIRED = 'expired'
    REJECTED = 'rejected'
    CANCELLED = 'cancelled'


class SubstitutionPreference(str, Enum):
    CALL_ME = 'call_me'
    SIMILAR_PRODUCT = 'similar_product'
    CANCEL_ITEM = 'cancel_item'
    CONTACT = 'contact'
    NONE = 'none'


ORDER_TERMINAL: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
    OrderStatus.REJECTED,
})

# Reaching any of these releases the courier's load slot.
ASSIGNMENT_TERMINAL: FrozenSet[AssignmentStatus] = frozenset({
    AssignmentStatus.DELIVERED,
    AssignmentStatus.EXPIRED,
    AssignmentStatus.REJECTED,
    AssignmentStatus.CANCELLED,
})

ASSIGNMENT_ACTIVE: FrozenSet[AssignmentStatus] = frozenset(set(AssignmentStatus) - ASSIGNMENT_TERMINAL)

# Accepted and en route; the window in which lateness is measured.
ASSIGNMENT_IN_TRANSIT: FrozenSet[AssignmentStatus] = frozenset({
    AssignmentStatus.ACCEPTED,
    AssignmentStatus.PICKED_UP,
    AssignmentStatus.ARRIVING,
})

ALL_ORDER_STATUSES = tuple(s.value for s in OrderStatus)
ALL_ASSIGNMENT_STATUSES = tuple(s.value for s in AssignmentStatus)
ALL_SUBSTITUTION_PREFERENCES = tuple(p.value for p in SubstitutionPreference)

__all__ = [
    'OrderStatus', 'AssignmentStatus', 'SubstitutionPreference',
    'ORDER_TERMINAL', 'ASSIGNMENT_TERMINAL', 'ASSIGNMENT_ACTIVE', 'ASSIGNMENT_IN_TRANSIT',
    'ALL_ORDER_STATUSES', 'ALL_ASSIGNMENT_STATUSES', 'ALL_SUBSTITUTION_PREFERENCES',
]
