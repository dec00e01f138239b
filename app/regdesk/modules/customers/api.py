"""
JSON API under /api/customers (staff session required).

Every handler converts RegDeskError into `{"error": ...}` with its status code
and any other fault into a 500 `{"error", "details"}`; nothing propagates raw.
"""

from __future__ import annotations

import math
from typing import Any

from flask import Blueprint, current_app, g, jsonify, request

from app.regdesk.db import db_session
from app.regdesk.errors import RegDeskError, ValidationError
from app.regdesk.models import User
from app.regdesk.modules.customers.approval import approve_customer, reject_customer
from app.regdesk.modules.customers.service import (
    DEFAULT_PAGE_SIZE,
    CustomerFilters,
    CustomerUpdate,
    create_customer,
    customer_to_dict,
    delete_customer,
    get_customer_by_id,
    list_customers,
    status_counts,
    update_customer,
)
from app.regdesk.modules.shopify.client import current_client
from app.regdesk.rbac import require_permission
from app.regdesk.utils import parse_positive_int

bp = Blueprint("customers_api", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _json_body() -> dict[str, Any]:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def _client_error(s, e: RegDeskError):
    s.rollback()
    current_app.logger.warning(
        "API %s %s -> %s: %s (request_id=%s)",
        request.method,
        request.path,
        e.status_code,
        e.message,
        getattr(g, "request_id", None),
    )
    return jsonify({"error": e.message}), e.status_code


def _server_error(s, message: str, e: Exception):
    s.rollback()
    current_app.logger.exception("%s (request_id=%s)", message, getattr(g, "request_id", None))
    return jsonify({"error": message, "details": str(e)}), 500


@bp.get("/customers")
@require_permission("customers.view")
def customers_list():
    s = db_session()
    try:
        filters = CustomerFilters.from_args(request.args)
        page = parse_positive_int(request.args.get("page"), 1)
        limit = parse_positive_int(request.args.get("limit"), DEFAULT_PAGE_SIZE)
        customers, total = list_customers(s, filters, page=page, limit=limit)
        statistics = status_counts(s)
    except Exception as e:
        return _server_error(s, "Failed to fetch customers", e)

    return jsonify(
        {
            "customers": [customer_to_dict(c) for c in customers],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "totalPages": math.ceil(total / limit),
            },
            "statistics": statistics,
        }
    )


@bp.post("/customers")
@require_permission("customers.create")
def customers_create():
    s = db_session()
    try:
        c = create_customer(s, _json_body(), user=_current_user())
        s.commit()
    except RegDeskError as e:
        return _client_error(s, e)
    except Exception as e:
        return _server_error(s, "Failed to create customer", e)
    return jsonify({"customer": customer_to_dict(c), "success": True}), 201


@bp.get("/customers/<customer_id>")
@require_permission("customers.view")
def customer_get(customer_id: str):
    s = db_session()
    try:
        c = get_customer_by_id(s, customer_id)
    except Exception as e:
        return _server_error(s, "Failed to fetch customer", e)
    if not c:
        return jsonify({"error": "Customer not found"}), 404
    return jsonify({"customer": customer_to_dict(c)})


@bp.put("/customers/<customer_id>")
@require_permission("customers.edit")
def customer_update(customer_id: str):
    s = db_session()
    try:
        upd = CustomerUpdate.from_payload(_json_body())
        c = update_customer(s, customer_id, upd, user=_current_user())
        s.commit()
    except RegDeskError as e:
        return _client_error(s, e)
    except Exception as e:
        return _server_error(s, "Operation failed", e)
    return jsonify({"customer": customer_to_dict(c), "success": True})


@bp.delete("/customers/<customer_id>")
@require_permission("customers.delete")
def customer_delete(customer_id: str):
    s = db_session()
    try:
        delete_customer(s, customer_id, user=_current_user())
        s.commit()
    except RegDeskError as e:
        return _client_error(s, e)
    except Exception as e:
        return _server_error(s, "Operation failed", e)
    return jsonify({"success": True, "message": "Customer deleted"})


def _transition_args() -> tuple[str, str]:
    body = _json_body()
    customer_id = str(body.get("customerId") or "").strip()
    if not customer_id:
        raise ValidationError("Customer ID is required")
    return customer_id, str(body.get("notes") or "")


@bp.post("/customers/approve")
@require_permission("customers.approve")
def customers_approve():
    """Approve a registration and create the matching Shopify customer."""
    s = db_session()
    try:
        customer_id, notes = _transition_args()
        result = approve_customer(s, customer_id, notes=notes, user=_current_user(), client=current_client())
        s.commit()
    except RegDeskError as e:
        return _client_error(s, e)
    except Exception as e:
        return _server_error(s, "Failed to approve customer", e)
    return jsonify(
        {
            "customer": customer_to_dict(result.customer),
            "shopifyCustomer": result.shopify_customer,
            "success": True,
            "message": "Customer approved and created in Shopify successfully",
        }
    )


@bp.post("/customers/reject")
@require_permission("customers.approve")
def customers_reject():
    s = db_session()
    try:
        customer_id, notes = _transition_args()
        c = reject_customer(s, customer_id, notes=notes, user=_current_user())
        s.commit()
    except RegDeskError as e:
        return _client_error(s, e)
    except Exception as e:
        return _server_error(s, "Failed to reject customer", e)
    return jsonify({"customer": customer_to_dict(c), "success": True, "message": "Customer registration rejected"})
