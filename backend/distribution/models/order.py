from __future__ import annotations
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, JSON, DateTime
from typing import Any, Dict, List, Optional

from .base import Base
from distribution.constants.statuses import OrderStatus, ALL_ORDER_STATUSES, ORDER_TERMINAL
from distribution.utils.clock import utcnow


class Order(Base):
    __tablename__ = 'orders'
    ALL_STATUSES = ALL_ORDER_STATUSES
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    branch_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    customer_id: Mapped[Optional[int]] = mapped_column(Integer, index=True, nullable=True)
    customer_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    total_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=OrderStatus.PENDING.value, index=True)
    items: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    unavailable_items: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSON, nullable=True)
    shipping_info: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    cancel_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    # Compare-and-swap token, bumped by every core operation that touches the order.
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in {s.value for s in ORDER_TERMINAL}

    def line_items(self) -> List[Dict[str, Any]]:
        """Normalized ``{product_id, name, quantity, price}`` view of ``items``.

        Checkout writes either ``product_id``/``productId``/``id`` and ``name``/``title``.
        """
        out = []
        for raw in self.items or []:
            out.append({
                'product_id': _product_id(raw.get('product_id', raw.get('productId', raw.get('id')))),
                'name': raw.get('name') or raw.get('title') or '',
                'quantity': int(raw.get('quantity') or 1),
                'price': raw.get('price'),
            })
        return out


def _product_id(value) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None
