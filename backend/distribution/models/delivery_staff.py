from __future__ import annotations
from datetime import datetime
from sqlalchemy.orm import relationship, Mapped, mapped_column
from sqlalchemy import Integer, String, Boolean, ForeignKey, DateTime, UniqueConstraint, CheckConstraint
from typing import List, Optional

from .base import Base
from distribution.utils.clock import utcnow


class DeliveryStaff(Base):
    __tablename__ = 'delivery_staff'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # Login identity of the courier (JWT ``staff_id`` claims map to DeliveryStaff.id).
    user_id: Mapped[Optional[int]] = mapped_column(Integer, unique=True, nullable=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(32))
    phone2: Mapped[Optional[str]] = mapped_column(String(32))
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    max_orders: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    current_orders: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    expired_orders: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)
    branches = relationship(
        'DeliveryStaffBranch', back_populates='staff', cascade='all, delete-orphan', lazy='selectin'
    )

    __table_args__ = (
        CheckConstraint('current_orders >= 0', name='ck_staff_load_non_negative'),
        CheckConstraint('current_orders <= max_orders', name='ck_staff_load_within_max'),
    )

    @property
    def branch_ids(self) -> List[int]:
        return sorted(b.branch_id for b in self.branches)

    @property
    def has_capacity(self) -> bool:
        return self.is_available and self.current_orders < self.max_orders


class DeliveryStaffBranch(Base):
    __tablename__ = 'delivery_staff_branches'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    delivery_staff_id: Mapped[int] = mapped_column(ForeignKey('delivery_staff.id', ondelete='CASCADE'), nullable=False)
    branch_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    staff = relationship('DeliveryStaff', back_populates='branches')

    __table_args__ = (UniqueConstraint('delivery_staff_id', 'branch_id', name='uq_staff_branch'),)
