from __future__ import annotations

import io

from flask import Blueprint, current_app, flash, g, jsonify, redirect, render_template, request, send_file, url_for

from app.regdesk.audit import record_event
from app.regdesk.db import db_session
from app.regdesk.errors import DuplicateEmail, RegDeskError, ValidationError
from app.regdesk.models import User
from app.regdesk.modules.customers.approval import approve_customer, reject_customer
from app.regdesk.modules.customers.dashboard import compute_dashboard
from app.regdesk.modules.customers.enrichment import enrich_customers
from app.regdesk.modules.customers.export import CSV_BOM, customers_to_csv, export_filename
from app.regdesk.modules.customers.models import Customer
from app.regdesk.modules.customers.service import (
    DEFAULT_PAGE_SIZE,
    CustomerFilters,
    create_customer,
    customer_to_dict,
    list_customers,
    query_customers,
    registration_payload,
    status_counts,
)
from app.regdesk.modules.shopify.client import current_client
from app.regdesk.rbac import require_permission
from app.regdesk.utils import parse_positive_int

bp = Blueprint("customers", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _wants_json() -> bool:
    return (request.args.get("format") or "").strip().lower() == "json"


@bp.get("/customers")
@require_permission("customers.view")
def customers_list():
    s = db_session()
    filters = CustomerFilters.from_args(request.args, search_phone=True)
    status = filters.status or "all"
    page = parse_positive_int(request.args.get("page"), 1)

    customers, total = list_customers(s, filters, page=page, limit=DEFAULT_PAGE_SIZE)
    rows = enrich_customers(customers, current_client())
    counts = status_counts(s)

    if _wants_json():
        return jsonify(
            {
                "customers": rows,
                "status": status,
                "search": filters.search or "",
                "page": page,
                "total": total,
                "pendingCount": counts["pending"],
                "approvedCount": counts["approved"],
                "rejectedCount": counts["rejected"],
            }
        )
    return render_template(
        "app/customers/list.html",
        customers=rows,
        status=status,
        search=filters.search or "",
        counts=counts,
        page=page,
        total=total,
        has_prev=page > 1,
        has_next=page * DEFAULT_PAGE_SIZE < total,
    )


@bp.post("/customers")
@require_permission("customers.approve")
def customers_action():
    """Approve/reject buttons on the list and dashboard."""
    s = db_session()
    u = _current_user()
    action = (request.form.get("action") or "").strip()
    customer_id = (request.form.get("customerId") or "").strip()
    notes = request.form.get("notes") or ""
    back = url_for(
        "customers.customers_list",
        status=request.form.get("status") or None,
        search=request.form.get("search") or None,
    )

    if not customer_id or not action:
        flash("Invalid request", "danger")
        return redirect(back)

    try:
        if action == "approve":
            approve_customer(s, customer_id, notes=notes, user=u, client=current_client())
            message = "Customer approved and created in Shopify successfully"
        elif action == "reject":
            reject_customer(s, customer_id, notes=notes, user=u)
            message = "Customer registration rejected"
        else:
            flash("Invalid action", "danger")
            return redirect(back)
        s.commit()
        flash(message, "success")
    except RegDeskError as e:
        s.rollback()
        flash(e.message, "danger")
    except Exception:
        s.rollback()
        current_app.logger.exception("Customer action error (action=%s customer=%s)", action, customer_id)
        flash("An error occurred. Please try again.", "danger")
    return redirect(back)


@bp.get("/customers/export")
@require_permission("customers.export")
def customers_export():
    s = db_session()
    u = _current_user()
    filters = CustomerFilters.from_args(request.args, search_phone=True)
    selected_ids = [i for raw in request.args.getlist("ids") for i in raw.split(",") if i.strip()]

    q = query_customers(s, filters)
    if selected_ids:
        q = q.filter(Customer.id.in_([i.strip() for i in selected_ids]))
    customers = q.order_by(Customer.created_at.desc(), Customer.id.asc()).all()

    if not customers:
        flash("No customers to export", "danger")
        return redirect(url_for("customers.customers_list", status=filters.status, search=filters.search))

    rows = enrich_customers(customers, current_client())
    record_event(
        s,
        actor=u,
        action="customer.export",
        entity_type="Customer",
        entity_id="export",
        metadata={"status": filters.status, "search": filters.search, "selected": bool(selected_ids), "row_count": len(rows)},
    )
    s.commit()

    data = (CSV_BOM + customers_to_csv(rows)).encode("utf-8")
    return send_file(
        io.BytesIO(data),
        mimetype="text/csv",
        as_attachment=True,
        download_name=export_filename(filters.status, selected=bool(selected_ids)),
        max_age=0,
    )


@bp.get("/dashboard")
@require_permission("dashboard.view")
def dashboard():
    s = db_session()
    data = compute_dashboard(s)
    if _wants_json():
        return jsonify(
            {
                "statistics": data["statistics"],
                "recentCustomers": [customer_to_dict(c) for c in data["recent_customers"]],
                "registrationsByDate": data["registrations_by_date"],
            }
        )
    return render_template("app/dashboard.html", **data)


@bp.get("/register")
@require_permission("customers.create")
def register_get():
    return render_template("app/register.html", form={})


@bp.post("/register")
@require_permission("customers.create")
def register_post():
    """Staff entering a registration on a customer's behalf."""
    s = db_session()
    payload = registration_payload(request.form)
    try:
        create_customer(s, payload, user=_current_user())
        s.commit()
    except DuplicateEmail:
        s.rollback()
        flash("This email is already registered", "danger")
        return render_template("app/register.html", form=payload), 409
    except ValidationError as e:
        s.rollback()
        flash(e.message, "danger")
        return render_template("app/register.html", form=payload), 400
    flash("Registration submitted successfully! The customer will be reviewed by the admin team.", "success")
    return redirect(url_for("customers.customers_list", status="pending"))
