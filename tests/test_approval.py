"""Approval state machine: approve/reject transitions and the Shopify hand-off."""

import pytest

from app.regdesk.db import session_scope
from app.regdesk.errors import InvalidTransition, NotFound, RemoteValidationError
from app.regdesk.models import AuditEvent
from app.regdesk.modules.customers.approval import approve_customer, build_customer_input, reject_customer
from app.regdesk.modules.customers.models import Customer
from app.regdesk.modules.shopify.client import customer_id_from_gid


def test_approve_pending(app, admin_user, add_customer, shopify):
    cid = add_customer("jane@example.com", first_name="Jane", last_name="Doe", phone="555-0100")

    with session_scope(app) as s:
        result = approve_customer(s, cid, notes="VIP", user=admin_user, client=shopify)
        assert result.shopify_customer["id"] == "gid://shopify/Customer/555"

    with session_scope(app) as s:
        c = s.get(Customer, cid)
        assert c.status == "approved"
        assert c.shopify_customer_id == "555"
        assert c.approved_by == "admin@example.com"
        assert c.approved_at is not None
        assert c.notes == "VIP"

        ev = s.query(AuditEvent).filter(AuditEvent.action == "customer.approve").one()
        assert ev.entity_id == cid
        assert ev.reason == "VIP"

    assert shopify.created == [
        {"email": "jane@example.com", "firstName": "Jane", "lastName": "Doe", "phone": "555-0100", "note": "VIP"}
    ]


def test_approve_already_approved_changes_nothing(app, admin_user, add_customer, shopify):
    cid = add_customer("jane@example.com", status="approved", shopify_customer_id="42", approved_by="someone@example.com")

    with session_scope(app) as s:
        with pytest.raises(InvalidTransition) as exc:
            approve_customer(s, cid, notes=None, user=admin_user, client=shopify)
        assert exc.value.message == "Customer is already approved"

    with session_scope(app) as s:
        c = s.get(Customer, cid)
        assert c.shopify_customer_id == "42"
        assert c.approved_by == "someone@example.com"
    assert shopify.created == []


def test_approve_user_errors_leave_row_pending(app, admin_user, add_customer, shopify):
    cid = add_customer("jane@example.com")
    shopify.user_errors = [{"field": ["email"], "message": "Email has already been taken"}]

    with session_scope(app) as s:
        with pytest.raises(RemoteValidationError) as exc:
            approve_customer(s, cid, notes=None, user=admin_user, client=shopify)
        assert exc.value.message == "Email has already been taken"
        s.rollback()

    with session_scope(app) as s:
        c = s.get(Customer, cid)
        assert c.status == "pending"
        assert c.shopify_customer_id is None


def test_approve_user_error_without_message(app, admin_user, add_customer, shopify):
    cid = add_customer("jane@example.com")
    shopify.user_errors = [{"field": None}]
    with session_scope(app) as s:
        with pytest.raises(RemoteValidationError) as exc:
            approve_customer(s, cid, notes=None, user=admin_user, client=shopify)
        assert exc.value.message == "Failed to create customer in Shopify"


def test_approve_missing_customer(app, admin_user, shopify):
    with session_scope(app) as s:
        with pytest.raises(NotFound):
            approve_customer(s, "missing", notes=None, user=admin_user, client=shopify)
    assert shopify.created == []


def test_reject_pending_makes_no_remote_call(app, admin_user, add_customer, shopify):
    cid = add_customer("jane@example.com")

    with session_scope(app) as s:
        c = reject_customer(s, cid, notes="Incomplete details", user=admin_user)
        assert c.status == "rejected"
        assert c.rejected_at is not None
        assert c.approved_by == "admin@example.com"
        assert c.notes == "Incomplete details"

    assert shopify.created == []


def test_reject_already_rejected(app, admin_user, add_customer):
    cid = add_customer("jane@example.com", status="rejected")
    with session_scope(app) as s:
        with pytest.raises(InvalidTransition) as exc:
            reject_customer(s, cid, notes=None, user=admin_user)
        assert exc.value.message == "Customer is already rejected"


def test_reapprove_after_reject_reuses_shopify_id(app, admin_user, add_customer, shopify):
    cid = add_customer("jane@example.com")

    with session_scope(app) as s:
        approve_customer(s, cid, notes=None, user=admin_user, client=shopify)
    with session_scope(app) as s:
        c = reject_customer(s, cid, notes=None, user=admin_user)
        assert c.shopify_customer_id == "555"

    shopify.next_id = 999
    with session_scope(app) as s:
        result = approve_customer(s, cid, notes=None, user=admin_user, client=shopify)
        assert result.shopify_customer is None
        assert result.customer.status == "approved"
        assert result.customer.shopify_customer_id == "555"

    assert len(shopify.created) == 1


def test_build_customer_input_with_address(app, add_customer):
    cid = add_customer(
        "jane@example.com",
        first_name="Jane",
        last_name="Doe",
        address="1 Main St",
        city="Austin",
        state="TX",
        country="US",
        zip_code="73301",
        notes="stored note",
    )
    with session_scope(app) as s:
        payload = build_customer_input(s.get(Customer, cid), None)

    assert payload["addresses"] == [
        {"address1": "1 Main St", "city": "Austin", "province": "TX", "country": "US", "zip": "73301"}
    ]
    assert payload["note"] == "stored note"
    assert "phone" not in payload


def test_build_customer_input_without_address_skips_location(app, add_customer):
    cid = add_customer("jane@example.com", city="Austin", country="US")
    with session_scope(app) as s:
        payload = build_customer_input(s.get(Customer, cid), "approval note")

    assert "addresses" not in payload
    assert payload["note"] == "approval note"


@pytest.mark.parametrize(
    "gid, expected",
    [
        ("gid://shopify/Customer/555", "555"),
        ("gid://x/Customer/123456", "123456"),
        ("", None),
        (None, None),
    ],
)
def test_customer_id_from_gid(gid, expected):
    assert customer_id_from_gid(gid) == expected
