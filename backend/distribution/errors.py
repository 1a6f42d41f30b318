"""Domain error taxonomy for the distribution engine.

Every error is an ``HTTPException`` so it reaches the unified JSON error handler in
``create_app`` unchanged; ``kind`` is the machine-readable discriminator and ``payload``
carries structured detail (merged into the error body).
"""
from __future__ import annotations
from typing import Any, Dict, Iterable, Optional
from werkzeug.exceptions import HTTPException


class DistributionError(HTTPException):
    code = 400
    kind = 'distribution_error'

    def __init__(self, description: Optional[str] = None, **payload: Any):
        super().__init__(description=description)
        self.payload: Dict[str, Any] = payload

    def to_dict(self) -> Dict[str, Any]:
        body = {
            'status': self.code,
            'title': self.name,
            'detail': self.description,
            'kind': self.kind,
        }
        body.update(self.payload)
        return body


class ValidationError(DistributionError):
    code = 400
    kind = 'validation_error'


class NotFound(DistributionError):
    code = 404
    kind = 'not_found'

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f'{entity} {entity_id} not found', entity=entity, entity_id=entity_id)


class InvalidState(DistributionError):
    code = 409
    kind = 'invalid_state'


class Conflict(DistributionError):
    code = 409
    kind = 'conflict'


class StaffUnavailable(DistributionError):
    code = 409
    kind = 'staff_unavailable'


class DeadlineExpired(DistributionError):
    code = 409
    kind = 'deadline_expired'


class IncompletePreparation(DistributionError):
    code = 422
    kind = 'incomplete_preparation'

    def __init__(self, order_id: int, remaining_item_ids: Iterable[int]):
        remaining = sorted(remaining_item_ids)
        super().__init__(
            f'{len(remaining)} items remaining for order {order_id}',
            order_id=order_id,
            remaining=len(remaining),
            remaining_item_ids=remaining,
        )
        self.remaining_item_ids = remaining


__all__ = [
    'DistributionError', 'ValidationError', 'NotFound', 'InvalidState', 'Conflict',
    'StaffUnavailable', 'DeadlineExpired', 'IncompletePreparation',
]
