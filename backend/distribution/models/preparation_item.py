from __future__ import annotations
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Boolean, ForeignKey, DateTime, UniqueConstraint
from typing import Optional

from .base import Base


class PreparationItem(Base):
    __tablename__ = 'order_preparation_items'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey('orders.id'), nullable=False, index=True)
    # Position of the source line in Order.items; the unique key makes bulk creation idempotent.
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False, default='')
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_prepared: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    prepared_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    prepared_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    __table_args__ = (UniqueConstraint('order_id', 'line_no', name='uq_prep_item_order_line'),)
