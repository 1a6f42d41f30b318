"""Test seeding utilities: orders in a given status and couriers serving given branches."""
from typing import Any, Dict, Iterable, List, Optional
from distribution import get_db
from distribution.models.order import Order
from distribution.models.delivery_staff import DeliveryStaff
from distribution.services.staff_registry import DeliveryStaffRegistry

DEFAULT_ITEMS: List[Dict[str, Any]] = [
    {'product_id': 101, 'name': 'Milk 1L', 'quantity': 2, 'price': 0.45},
    {'productId': 102, 'title': 'Brown bread', 'quantity': 1, 'price': 0.30},
    {'id': 103, 'name': 'Eggs x12', 'quantity': 1, 'price': 1.10},
]


def create_order(branch_id: int = 1, items: Optional[List[Dict[str, Any]]] = None, status: str = 'pending',
                 customer_name: str = 'Customer', customer_id: int = 900, total_cents: int = 285):
    """Create an Order directly (non-idempotent). Returns the Order.

    Args:
        branch_id: Branch under which the order is placed
        items: Checkout line items (defaults to three lines in mixed key spellings)
        status: Initial status (default pending)
    """
    session = get_db()
    order = Order(
        branch_id=branch_id,
        customer_id=customer_id,
        customer_name=customer_name,
        total_cents=total_cents,
        status=status,
        items=list(DEFAULT_ITEMS if items is None else items),
        shipping_info={'address': 'Way 1234, Muscat'},
    )
    session.add(order); session.commit(); session.refresh(order)
    return order


def ensure_staff(name: str = 'Courier', branch_ids: Iterable[int] = (1,), max_orders: int = 5,
                 is_available: bool = True, user_id: Optional[int] = None) -> DeliveryStaff:
    """Register a courier through the registry so branch links are created the normal way."""
    registry = DeliveryStaffRegistry(get_db())
    return registry.create(name=name, branch_ids=branch_ids, phone='+968 9000 0000',
                           max_orders=max_orders, user_id=user_id, is_available=is_available)


def fresh(model, pk):
    """Reload a row, bypassing whatever the identity map holds."""
    return get_db().get(model, pk, populate_existing=True)


__all__ = ['DEFAULT_ITEMS', 'create_order', 'ensure_staff', 'fresh']
