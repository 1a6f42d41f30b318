"""Central enum-like definitions to avoid typos in permission/service strings.
Extend cautiously; never rename codes silently. Add new ones and retire old ones explicitly.
"""
from __future__ import annotations
from typing import List, Dict

SERVICES = ['ORDERS', 'DIST', 'DELIVERY', 'STAFF']

SERVICE_ACTIONS = {
    'ORDERS': ['READ', 'UPDATE'],
    'DIST': ['READ', 'PREPARE', 'ASSIGN'],
    'DELIVERY': ['ACT'],
    'STAFF': ['MANAGE'],
}


def build_all_permission_codes() -> List[str]:
    codes: List[str] = []
    for svc, actions in SERVICE_ACTIONS.items():
        for act in actions:
            codes.append(f"{svc}.{act}")
    return codes

ALL_PERMISSION_CODES = build_all_permission_codes()

# Presets handed to the identity provider when it mints tokens for each role.
ROLE_PRESETS: Dict[str, List[str]] = {
    'Distributor': ['ORDERS.READ', 'ORDERS.UPDATE', 'DIST.READ', 'DIST.PREPARE', 'DIST.ASSIGN'],
    'Courier': ['DELIVERY.ACT'],
    'Manager': ALL_PERMISSION_CODES,
}
