from functools import wraps
from flask import abort
from flask_jwt_extended import verify_jwt_in_request
from distribution.services.policy import has_permissions, current_staff_id


def require_permissions(*codes: str):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            if not has_permissions(*codes):
                abort(403, description='Missing permission')
            return fn(*args, **kwargs)
        return wrapper
    return outer


def require_courier(fn):
    """Views acting as "me" need a courier token (one carrying ``staff_id``)."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        verify_jwt_in_request()
        if current_staff_id() is None:
            abort(403, description='Courier token required')
        return fn(*args, **kwargs)
    return wrapper
