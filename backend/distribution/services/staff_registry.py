from __future__ import annotations
import logging
from typing import Iterable, List, Optional
from sqlalchemy import select, update, exists
from sqlalchemy.orm import Session

from distribution.errors import Conflict, NotFound, StaffUnavailable, ValidationError
from distribution.models.delivery_staff import DeliveryStaff, DeliveryStaffBranch
from distribution.utils.clock import SystemClock
from distribution.utils.transaction import atomic, compare_and_swap

logger = logging.getLogger(__name__)


class DeliveryStaffRegistry:
    """Courier records, branch membership and the ``current_orders`` load counter.

    ``increment_load``/``decrement_load`` never commit; they run inside the caller's
    transaction so the counter moves together with the assignment row.
    """

    def __init__(self, session: Session, clock=None):
        self.session = session
        self.clock = clock or SystemClock()

    def get(self, staff_id: int) -> DeliveryStaff:
        staff = self.session.get(DeliveryStaff, staff_id, populate_existing=True)
        if staff is None:
            raise NotFound('DeliveryStaff', staff_id)
        return staff

    def query(self, branch_id: Optional[int] = None, branch_ids: Optional[Iterable[int]] = None):
        q = self.session.query(DeliveryStaff)
        if branch_id is not None:
            q = q.filter(serves_branches([branch_id]))
        if branch_ids:
            q = q.filter(serves_branches(branch_ids))
        return q

    def list_available(self, branch_id: int) -> List[DeliveryStaff]:
        """Couriers that can take another order in ``branch_id``, least loaded first."""
        stmt = (
            select(DeliveryStaff)
            .where(
                DeliveryStaff.is_available.is_(True),
                DeliveryStaff.current_orders < DeliveryStaff.max_orders,
                serves_branches([branch_id]),
            )
            .order_by(DeliveryStaff.current_orders.asc(), DeliveryStaff.id.asc())
        )
        return list(self.session.execute(stmt).scalars())

    def increment_load(self, staff_id: int, branch_id: Optional[int] = None) -> DeliveryStaff:
        staff = self.get(staff_id)
        criteria = [
            DeliveryStaff.id == staff_id,
            DeliveryStaff.is_available.is_(True),
            DeliveryStaff.current_orders < DeliveryStaff.max_orders,
        ]
        if branch_id is not None:
            criteria.append(serves_branches([branch_id]))
        stmt = (
            update(DeliveryStaff)
            .where(*criteria)
            .values(current_orders=DeliveryStaff.current_orders + 1, updated_at=self.clock.now())
        )
        if not compare_and_swap(self.session, stmt):
            raise StaffUnavailable(
                f'Delivery staff {staff_id} is unavailable or at capacity',
                delivery_staff_id=staff_id,
            )
        self.session.refresh(staff)
        return staff

    def decrement_load(self, staff_id: int, expired: bool = False) -> DeliveryStaff:
        staff = self.get(staff_id)
        values = {'current_orders': DeliveryStaff.current_orders - 1, 'updated_at': self.clock.now()}
        if expired:
            values['expired_orders'] = DeliveryStaff.expired_orders + 1
        stmt = (
            update(DeliveryStaff)
            .where(DeliveryStaff.id == staff_id, DeliveryStaff.current_orders > 0)
            .values(**values)
        )
        if not compare_and_swap(self.session, stmt):
            # A release without a matching claim means the counter is already out of step.
            raise Conflict(f'Delivery staff {staff_id} has no load to release', delivery_staff_id=staff_id)
        self.session.refresh(staff)
        return staff

    def create(self, name: str, branch_ids: Iterable[int], phone: Optional[str] = None,
               phone2: Optional[str] = None, max_orders: int = 5, user_id: Optional[int] = None,
               is_available: bool = True) -> DeliveryStaff:
        if not name:
            raise ValidationError('name required')
        _check_max_orders(max_orders)
        now = self.clock.now()
        with atomic(self.session):
            staff = DeliveryStaff(
                name=name, phone=phone, phone2=phone2, max_orders=max_orders,
                user_id=user_id, is_available=is_available, created_at=now, updated_at=now,
            )
            staff.branches = [DeliveryStaffBranch(branch_id=b) for b in sorted(set(branch_ids))]
            self.session.add(staff)
        logger.info('delivery staff %s created for branches %s', staff.id, staff.branch_ids)
        return staff

    def update(self, staff_id: int, **fields) -> DeliveryStaff:
        staff = self.get(staff_id)
        with atomic(self.session):
            for key in ('name', 'phone', 'phone2'):
                if fields.get(key) is not None:
                    setattr(staff, key, fields[key])
            if fields.get('max_orders') is not None:
                max_orders = fields['max_orders']
                _check_max_orders(max_orders)
                if max_orders < staff.current_orders:
                    raise ValidationError(
                        f'max_orders cannot drop below current load {staff.current_orders}',
                        current_orders=staff.current_orders,
                    )
                staff.max_orders = max_orders
            if fields.get('is_available') is not None:
                staff.is_available = bool(fields['is_available'])
            if fields.get('branch_ids') is not None:
                wanted = set(fields['branch_ids'])
                for link in list(staff.branches):
                    if link.branch_id not in wanted:
                        staff.branches.remove(link)
                have = {link.branch_id for link in staff.branches}
                for b in sorted(wanted - have):
                    staff.branches.append(DeliveryStaffBranch(branch_id=b))
            staff.updated_at = self.clock.now()
        return staff


def serves_branches(branch_ids: Iterable[int]):
    return exists().where(
        DeliveryStaffBranch.delivery_staff_id == DeliveryStaff.id,
        DeliveryStaffBranch.branch_id.in_(list(branch_ids)),
    )


def _check_max_orders(value):
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise ValidationError('max_orders must be a positive integer')


__all__ = ['DeliveryStaffRegistry', 'serves_branches']
