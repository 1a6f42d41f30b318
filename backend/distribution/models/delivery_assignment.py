from __future__ import annotations
from datetime import datetime
from sqlalchemy.orm import relationship, Mapped, mapped_column
from sqlalchemy import Integer, String, Boolean, ForeignKey, DateTime, Index, text
from typing import Optional

from .base import Base
from distribution.constants.statuses import AssignmentStatus, ASSIGNMENT_ACTIVE
from distribution.utils.clock import utcnow

_ACTIVE_SQL = "assignment_status IN ({})".format(
    ', '.join(f"'{s.value}'" for s in sorted(ASSIGNMENT_ACTIVE, key=lambda s: s.value))
)


class DeliveryAssignment(Base):
    """One courier's attempt at delivering one order.

    Rows are append-only history: rejection or expiry ends a row and a reassignment
    inserts a new one. At most one row per order may be non-terminal, enforced by the
    partial unique index below as well as by the engine.
    """
    __tablename__ = 'order_assignments'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey('orders.id'), nullable=False, index=True)
    delivery_staff_id: Mapped[int] = mapped_column(ForeignKey('delivery_staff.id'), nullable=False, index=True)
    assignment_status: Mapped[str] = mapped_column(String(32), nullable=False, default=AssignmentStatus.ASSIGNED.value, index=True)
    assigned_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    assigned_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    accept_deadline: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    picked_up_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    customer_arrived_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    expired_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    expected_delivery_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    is_late: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    late_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)

    order = relationship('Order', lazy='joined')
    staff = relationship('DeliveryStaff', lazy='joined')

    __table_args__ = (
        Index(
            'uq_assignment_active_per_order', 'order_id', unique=True,
            sqlite_where=text(_ACTIVE_SQL), postgresql_where=text(_ACTIVE_SQL),
        ),
    )

    def delivery_minutes(self) -> Optional[float]:
        """Minutes from acceptance to hand-off, once delivered."""
        if not (self.accepted_at and self.delivered_at):
            return None
        return (self.delivered_at - self.accepted_at).total_seconds() / 60.0
