"""Centralized constants for the OpenAPI spec builder.

Keeps `distribution/openapi_builder.py` to assembly logic only. Ordering here is output
ordering; the document must stay byte-stable between builds.
"""
from typing import Any, Dict, List

from distribution.constants.statuses import (
    ALL_ORDER_STATUSES, ALL_ASSIGNMENT_STATUSES, ALL_SUBSTITUTION_PREFERENCES,
)

_INT = {"type": "integer"}
_STR = {"type": "string"}
_BOOL = {"type": "boolean"}
_TS = {"type": "string", "format": "date-time", "nullable": True}
_NULL_INT = {"type": "integer", "nullable": True}
_NULL_STR = {"type": "string", "nullable": True}

# Schema name -> (properties, required)
SCHEMAS: Dict[str, Dict[str, Any]] = {
    "Order": {
        "properties": {
            "id": _INT,
            "branch_id": _INT,
            "customer_id": _NULL_INT,
            "customer_name": _NULL_STR,
            "total_cents": _INT,
            "status": {"type": "string", "enum": list(ALL_ORDER_STATUSES)},
            "items": {"type": "array", "items": {"type": "object"}},
            "unavailable_items": {"type": "array", "items": {"$ref": "#/components/schemas/UnavailableItem"}},
            "shipping_info": {"type": "object", "nullable": True},
            "cancel_reason": _NULL_STR,
            "version": _INT,
            "created_at": _TS,
            "updated_at": _TS,
            "assignment": {"$ref": "#/components/schemas/DeliveryAssignment"},
        },
        "required": ["id", "branch_id", "status", "version"],
    },
    "UnavailableItem": {
        "properties": {
            "product_id": _INT,
            "product_name": _STR,
            "quantity": _INT,
            "substitution_preference": {"type": "string", "enum": list(ALL_SUBSTITUTION_PREFERENCES)},
            "notes": _NULL_STR,
        },
        "required": ["product_id", "substitution_preference"],
    },
    "PreparationItem": {
        "properties": {
            "id": _INT,
            "order_id": _INT,
            "line_no": _INT,
            "product_id": _NULL_INT,
            "product_name": _STR,
            "quantity": _INT,
            "is_prepared": _BOOL,
            "prepared_at": _TS,
            "prepared_by": _NULL_INT,
            "notes": _NULL_STR,
        },
        "required": ["id", "order_id", "is_prepared"],
    },
    "Checklist": {
        "properties": {
            "order_id": _INT,
            "status": _STR,
            "data": {"type": "array", "items": {"$ref": "#/components/schemas/PreparationItem"}},
            "total": _INT,
            "prepared": _INT,
            "remaining": _INT,
            "remaining_item_ids": {"type": "array", "items": _INT},
        },
        "required": ["order_id", "data", "total", "prepared", "remaining"],
    },
    "DeliveryStaff": {
        "properties": {
            "id": _INT,
            "user_id": _NULL_INT,
            "name": _STR,
            "phone": _NULL_STR,
            "phone2": _NULL_STR,
            "is_available": _BOOL,
            "max_orders": _INT,
            "current_orders": _INT,
            "expired_orders": _INT,
            "branch_ids": {"type": "array", "items": _INT},
        },
        "required": ["id", "name", "max_orders", "current_orders"],
    },
    "DeliveryAssignment": {
        "properties": {
            "id": _INT,
            "order_id": _INT,
            "delivery_staff_id": _INT,
            "assignment_status": {"type": "string", "enum": list(ALL_ASSIGNMENT_STATUSES)},
            "assigned_at": _TS,
            "accept_deadline": _TS,
            "accepted_at": _TS,
            "picked_up_at": _TS,
            "customer_arrived_at": _TS,
            "delivered_at": _TS,
            "rejected_at": _TS,
            "expired_at": _TS,
            "cancelled_at": _TS,
            "rejection_reason": _NULL_STR,
            "expected_delivery_minutes": _INT,
            "is_late": _BOOL,
            "late_minutes": _NULL_INT,
        },
        "required": ["id", "order_id", "delivery_staff_id", "assignment_status", "accept_deadline"],
    },
    "SweepResult": {
        "properties": {
            "expired": {"type": "array", "items": _INT},
            "late": {"type": "array", "items": _INT},
        },
        "required": ["expired", "late"],
    },
}

# Request bodies (schema name -> properties, required)
BODIES: Dict[str, Dict[str, Any]] = {
    "StatusChange": {"properties": {"status": {"type": "string", "enum": list(ALL_ORDER_STATUSES)}, "reason": _STR}, "required": ["status"]},
    "UnavailableItems": {"properties": {"items": {"type": "array", "items": {"type": "object", "properties": {
        "productId": _INT, "substitutionPreference": {"type": "string", "enum": list(ALL_SUBSTITUTION_PREFERENCES)}, "notes": _STR,
    }}}}, "required": ["items"]},
    "ItemToggle": {"properties": {"isPrepared": _BOOL, "notes": _STR}, "required": ["isPrepared"]},
    "AssignDelivery": {"properties": {
        "deliveryStaffId": _INT,
        "acceptTimeoutMinutes": {"type": "integer", "minimum": 1, "default": 5},
        "expectedDeliveryMinutes": {"type": "integer", "minimum": 1, "default": 30},
    }, "required": ["deliveryStaffId"]},
    "Rejection": {"properties": {"reason": _STR}, "required": []},
    "StaffWrite": {"properties": {
        "name": _STR, "phone": _STR, "phone2": _STR, "branchIds": {"type": "array", "items": _INT},
        "maxOrders": {"type": "integer", "minimum": 1}, "isAvailable": _BOOL, "userId": _INT,
    }, "required": []},
}

# Operation registry, output order. kind: list | single | action
#   path params are inferred from {braces}; errors lists the documented error statuses.
OPERATIONS: List[Dict[str, Any]] = [
    {"method": "get", "path": "/orders/{order_id}", "kind": "single", "schema": "Order",
     "summary": "Get order with its active assignment", "permission": "ORDERS.READ", "errors": [403, 404]},
    {"method": "post", "path": "/orders/{order_id}/status", "kind": "action", "schema": "Order", "body": "StatusChange",
     "summary": "Confirm, cancel or reject an order", "permission": "ORDERS.UPDATE", "errors": [400, 403, 404, 409]},
    {"method": "get", "path": "/distribution/orders-to-prepare", "kind": "list", "schema": "Order",
     "summary": "Board of confirmed, preparing and ready orders", "permission": "DIST.READ",
     "query": ["branchId", "status"], "sort": "SortBoardParam"},
    {"method": "put", "path": "/distribution/unavailable-items/{order_id}", "kind": "action", "schema": "Order",
     "body": "UnavailableItems", "summary": "Record unavailable items", "permission": "DIST.PREPARE",
     "errors": [400, 403, 404, 409]},
    {"method": "post", "path": "/distribution/start-preparation/{order_id}", "kind": "action", "schema": "Checklist",
     "summary": "Start preparation (idempotent)", "permission": "DIST.PREPARE", "errors": [403, 404, 409]},
    {"method": "get", "path": "/distribution/preparation-items/{order_id}", "kind": "action", "schema": "Checklist",
     "summary": "Preparation checklist with progress", "permission": "DIST.READ", "errors": [403, 404]},
    {"method": "put", "path": "/distribution/preparation-items/{item_id}", "kind": "action", "schema": "PreparationItem",
     "body": "ItemToggle", "summary": "Mark an item prepared or not", "permission": "DIST.PREPARE",
     "errors": [400, 403, 404, 409]},
    {"method": "post", "path": "/distribution/complete-preparation/{order_id}", "kind": "action", "schema": "Order",
     "summary": "Complete preparation", "permission": "DIST.PREPARE", "errors": [403, 404, 409, 422]},
    {"method": "get", "path": "/distribution/available-delivery/{branch_id}", "kind": "action", "schema": "DeliveryStaff",
     "many": True, "summary": "Couriers able to take an order, least loaded first", "permission": "DIST.READ",
     "errors": [403]},
    {"method": "post", "path": "/distribution/assign-delivery/{order_id}", "kind": "action", "schema": "DeliveryAssignment",
     "body": "AssignDelivery", "status": "201", "summary": "Assign a ready order to a courier", "permission": "DIST.ASSIGN",
     "errors": [400, 403, 404, 409]},
    {"method": "post", "path": "/distribution/accept-order/{order_id}", "kind": "action", "schema": "DeliveryAssignment",
     "summary": "Courier accepts before the deadline", "permission": "DELIVERY.ACT", "errors": [403, 404, 409]},
    {"method": "post", "path": "/distribution/reject-order/{order_id}", "kind": "action", "schema": "DeliveryAssignment",
     "body": "Rejection", "summary": "Courier rejects the assignment", "permission": "DELIVERY.ACT", "errors": [403, 404, 409]},
    {"method": "post", "path": "/distribution/pickup-order/{order_id}", "kind": "action", "schema": "DeliveryAssignment",
     "summary": "Courier picked the order up", "permission": "DELIVERY.ACT", "errors": [403, 404, 409]},
    {"method": "post", "path": "/distribution/arriving-order/{order_id}", "kind": "action", "schema": "DeliveryAssignment",
     "summary": "Courier arriving at the customer", "permission": "DELIVERY.ACT", "errors": [403, 404, 409]},
    {"method": "post", "path": "/distribution/deliver-order/{order_id}", "kind": "action", "schema": "DeliveryAssignment",
     "summary": "Courier handed the order over", "permission": "DELIVERY.ACT", "errors": [403, 404, 409]},
    {"method": "get", "path": "/distribution/active-deliveries", "kind": "list", "schema": "DeliveryAssignment",
     "summary": "Non-terminal assignments (runs the expiry sweep)", "permission": "DIST.READ",
     "query": ["branchId", "deliveryStaffId", "isLate"], "sort": "SortAssignmentsParam"},
    {"method": "get", "path": "/distribution/assignments/{order_id}", "kind": "action", "schema": "DeliveryAssignment",
     "many": True, "summary": "Assignment history of an order (runs the expiry sweep)", "permission": "DIST.READ",
     "errors": [403, 404]},
    {"method": "get", "path": "/distribution/my-delivery-orders", "kind": "list", "schema": "DeliveryAssignment",
     "summary": "Active assignments of the calling courier", "permission": "DELIVERY.ACT"},
    {"method": "post", "path": "/distribution/sweep", "kind": "action", "schema": "SweepResult",
     "summary": "Expire stale assignments and flag late deliveries", "permission": "DIST.ASSIGN"},
    {"method": "get", "path": "/distribution/delivery-staff", "kind": "list", "schema": "DeliveryStaff",
     "summary": "List couriers", "permission": "DIST.READ", "query": ["branchId", "isAvailable", "name"],
     "sort": "SortStaffParam"},
    {"method": "post", "path": "/distribution/delivery-staff", "kind": "action", "schema": "DeliveryStaff",
     "body": "StaffWrite", "status": "201", "summary": "Register a courier", "permission": "STAFF.MANAGE",
     "errors": [400, 403]},
    {"method": "get", "path": "/distribution/delivery-staff/{staff_id}", "kind": "action", "schema": "DeliveryStaff",
     "summary": "Get courier", "permission": "DIST.READ", "errors": [403, 404]},
    {"method": "put", "path": "/distribution/delivery-staff/{staff_id}", "kind": "action", "schema": "DeliveryStaff",
     "body": "StaffWrite", "summary": "Update courier", "permission": "STAFF.MANAGE", "errors": [400, 403, 404]},
]

SORT_DETAILS = {
    "SortBoardParam": "Multi-field sort (id,status,created_at,updated_at,total_cents). Prefix - for desc",
    "SortAssignmentsParam": "Multi-field sort (id,assigned_at,accept_deadline,updated_at). Prefix - for desc",
    "SortStaffParam": "Multi-field sort (id,name,current_orders,updated_at). Prefix - for desc",
}

ERROR_KINDS = {
    400: ("BadRequest", "validation_error"),
    403: ("Forbidden", None),
    404: ("NotFound", "not_found"),
    409: ("Conflict", "invalid_state | conflict | staff_unavailable | deadline_expired"),
    422: ("IncompletePreparation", "incomplete_preparation"),
}

__all__ = ["SCHEMAS", "BODIES", "OPERATIONS", "SORT_DETAILS", "ERROR_KINDS"]
