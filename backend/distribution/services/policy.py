"""Claim-based authorization helpers.

Tokens are minted by the identity service; this module only reads the claims it needs:
``perms`` (permission codes), ``branch_ids`` (branch scope, empty means unrestricted) and
``staff_id`` (present on courier tokens).
"""
from __future__ import annotations
from typing import List, Optional, Set
from flask import abort
from flask_jwt_extended import get_jwt, get_jwt_identity


def current_permissions() -> Set[str]:
    claims = get_jwt()
    return set(claims.get('perms', []))


def has_permissions(*codes: str) -> bool:
    perms = current_permissions()
    return all(c in perms for c in codes)


def current_user_id() -> Optional[int]:
    ident = get_jwt_identity()
    try:
        return int(ident) if ident is not None else None
    except (TypeError, ValueError):
        return None


def current_branch_ids() -> List[int]:
    return list(get_jwt().get('branch_ids') or [])


def current_staff_id() -> Optional[int]:
    staff_id = get_jwt().get('staff_id')
    try:
        return int(staff_id) if staff_id is not None else None
    except (TypeError, ValueError):
        return None


def filter_query_by_branches(query, model_branch_column, branch_ids):
    """Return query filtered by branch ids if list not empty."""
    if branch_ids:
        return query.filter(model_branch_column.in_(branch_ids))
    return query


def assert_branch_access(branch_id: int):
    branch_ids = current_branch_ids()
    if not branch_ids:
        return  # No scoping
    if branch_id not in branch_ids:
        abort(403, description='Branch access denied')


def assert_any_branch_access(branch_ids: List[int]):
    """Staff serve several branches; access to one of them is enough."""
    scope = current_branch_ids()
    if not scope:
        return
    if not set(scope) & set(branch_ids):
        abort(403, description='Branch access denied')


def assert_courier_identity(delivery_staff_id: int):
    """Courier tokens may only act on their own assignments; distributor tokens carry no staff_id."""
    staff_id = current_staff_id()
    if staff_id is None and get_jwt().get('staff_id') is not None:
        abort(403, description='Malformed staff_id claim')
    if staff_id is not None and staff_id != delivery_staff_id:
        abort(403, description='Assignment belongs to another courier')
