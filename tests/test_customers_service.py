"""Repository-level tests for app.regdesk.modules.customers.service."""

import pytest

from app.regdesk.db import session_scope
from app.regdesk.errors import DuplicateEmail, NotFound, ValidationError
from app.regdesk.models import AuditEvent
from app.regdesk.modules.customers.models import Customer
from app.regdesk.modules.customers.service import (
    UNSET,
    CustomerFilters,
    CustomerUpdate,
    create_customer,
    customer_to_dict,
    delete_customer,
    list_customers,
    registration_payload,
    status_counts,
    update_customer,
)


def _payload(email="jane@example.com", **extra):
    return {"firstName": "Jane", "lastName": "Doe", "email": email, **extra}


def test_create_defaults(app):
    with session_scope(app) as s:
        c = create_customer(s, _payload(phone=" 555-0100 ", company="", status="approved"))
        d = customer_to_dict(c)

    assert d["id"]
    assert d["status"] == "pending"
    assert d["shopifyCustomerId"] is None
    assert d["approvedAt"] is None
    assert d["rejectedAt"] is None
    assert d["approvedBy"] is None
    assert d["createdAt"].endswith("Z")
    assert d["phone"] == " 555-0100 "
    assert d["company"] is None


def test_create_records_public_audit_event(app):
    with session_scope(app) as s:
        c = create_customer(s, _payload())
        cid = c.id
    with session_scope(app) as s:
        ev = s.query(AuditEvent).filter(AuditEvent.action == "customer.create").one()
        assert ev.entity_id == cid
        assert '"source": "public"' in ev.metadata_json


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"firstName": "Jane", "email": "jane@example.com"}, "First name, last name, and email are required"),
        ({"firstName": "Jane", "lastName": "", "email": "jane@example.com"}, "First name, last name, and email are required"),
        ({"firstName": "Jane", "lastName": "Doe", "email": " jane@example.com "}, "Please enter a valid email address"),
        ({"firstName": "Jane", "lastName": "Doe", "email": "not-an-email"}, "Please enter a valid email address"),
    ],
)
def test_create_validation(app, payload, message):
    with session_scope(app) as s:
        with pytest.raises(ValidationError) as exc:
            create_customer(s, payload)
        assert exc.value.message == message
        assert s.query(Customer).count() == 0


def test_create_duplicate_email(app):
    with session_scope(app) as s:
        create_customer(s, _payload())
    with session_scope(app) as s:
        with pytest.raises(DuplicateEmail) as exc:
            create_customer(s, _payload())
        assert exc.value.status_code == 409
    with session_scope(app) as s:
        assert s.query(Customer).count() == 1


def test_update_own_email_never_conflicts(app, admin_user, add_customer):
    cid = add_customer("jane@example.com")
    with session_scope(app) as s:
        upd = CustomerUpdate.from_payload({"email": "jane@example.com", "company": "Acme"})
        c = update_customer(s, cid, upd, user=admin_user)
        assert c.company == "Acme"


def test_update_to_taken_email(app, admin_user, add_customer):
    add_customer("taken@example.com")
    cid = add_customer("jane@example.com")
    with session_scope(app) as s:
        with pytest.raises(DuplicateEmail) as exc:
            update_customer(s, cid, CustomerUpdate.from_payload({"email": "taken@example.com"}), user=admin_user)
        assert exc.value.message == "Email already exists"


def test_update_missing_customer(app, admin_user):
    with session_scope(app) as s:
        with pytest.raises(NotFound):
            update_customer(s, "nope", CustomerUpdate(notes="x"), user=admin_user)


def test_update_payload_distinguishes_absent_from_cleared():
    upd = CustomerUpdate.from_payload({"phone": "", "city": "Austin"})
    assert upd.phone is None
    assert upd.city == "Austin"
    assert upd.company is UNSET
    assert upd.changes() == {"phone": None, "city": "Austin"}

    upd = CustomerUpdate.from_payload({"phone": 0, "company": False, "zipCode": 73301})
    assert upd.phone is None
    assert upd.company is None
    assert upd.zip_code == "73301"


def test_update_stores_falsy_values_as_null(app, admin_user, add_customer):
    cid = add_customer("jane@example.com", phone="555-0100")
    with session_scope(app) as s:
        c = update_customer(s, cid, CustomerUpdate.from_payload({"phone": 0}), user=admin_user)
        assert c.phone is None


def test_create_keeps_values_as_submitted(app):
    with session_scope(app) as s:
        c = create_customer(s, {"firstName": " Jane ", "lastName": "Doe", "email": "Jane@Example.com"})
        assert c.first_name == " Jane "
        assert c.email == "Jane@Example.com"


@pytest.mark.parametrize(
    "body, message",
    [
        ({"firstName": ""}, "First name cannot be empty"),
        ({"email": None}, "Email cannot be empty"),
        ({"email": "bad"}, "Please enter a valid email address"),
        ({"status": "archived"}, "Invalid status: archived"),
    ],
)
def test_update_payload_validation(body, message):
    with pytest.raises(ValidationError) as exc:
        CustomerUpdate.from_payload(body)
    assert exc.value.message == message


def test_update_status_applies_bookkeeping_without_remote_call(app, admin_user, add_customer, shopify):
    cid = add_customer("jane@example.com")
    with session_scope(app) as s:
        c = update_customer(s, cid, CustomerUpdate(status="approved"), user=admin_user)
        assert c.status == "approved"
        assert c.approved_at is not None
        assert c.approved_by == "admin@example.com"
        assert c.shopify_customer_id is None
    assert shopify.created == []


def test_update_records_changed_fields(app, admin_user, add_customer):
    cid = add_customer("jane@example.com", city="Austin")
    with session_scope(app) as s:
        update_customer(s, cid, CustomerUpdate(city="Dallas", country=None), user=admin_user)
    with session_scope(app) as s:
        ev = s.query(AuditEvent).filter(AuditEvent.action == "customer.update").one()
        assert '"fields_changed": ["city"]' in ev.metadata_json
        assert ev.actor_user_email == "admin@example.com"


def test_delete_customer(app, admin_user, add_customer):
    cid = add_customer("jane@example.com")
    with session_scope(app) as s:
        delete_customer(s, cid, user=admin_user)
    with session_scope(app) as s:
        assert s.get(Customer, cid) is None
        with pytest.raises(NotFound):
            delete_customer(s, cid, user=admin_user)


def test_search_matches_name_email_company(app, add_customer):
    hits = {
        add_customer("one@example.com", company="acme corp"),
        add_customer("bob@acme.io"),
        add_customer("two@example.com", first_name="acmeson"),
        add_customer("three@example.com", last_name="Macme"),
    }
    add_customer("control@example.com", company="Globex")
    add_customer("upper@example.com", company="ACME Industries")
    add_customer("phone@example.com", phone="acme-line")

    with session_scope(app) as s:
        items, total = list_customers(s, CustomerFilters(search="acme"))
        assert total == 4
        assert {c.id for c in items} == hits


def test_search_phone_only_when_enabled(app, add_customer):
    cid = add_customer("phone@example.com", phone="555-0199")
    with session_scope(app) as s:
        assert list_customers(s, CustomerFilters(search="0199"))[1] == 0
        items, total = list_customers(s, CustomerFilters(search="0199", search_phone=True))
        assert total == 1
        assert items[0].id == cid


def test_search_treats_wildcards_literally(app, add_customer):
    add_customer("percent@example.com", company="100% Cotton")
    add_customer("plain@example.com", company="100 Cotton")
    with session_scope(app) as s:
        assert list_customers(s, CustomerFilters(search="100%"))[1] == 1


def test_pagination(app):
    with session_scope(app) as s:
        for i in range(120):
            create_customer(s, _payload(email=f"user{i}@example.com"))

    with session_scope(app) as s:
        items, total = list_customers(s, CustomerFilters(), page=1, limit=50)
        assert len(items) == 50
        assert total == 120

        items, _ = list_customers(s, CustomerFilters(), page=3, limit=50)
        assert len(items) == 20

        items, _ = list_customers(s, CustomerFilters(), page=4, limit=50)
        assert items == []


def test_list_newest_first(app, add_customer):
    from datetime import datetime, timedelta

    base = datetime(2026, 3, 1, 12, 0, 0)
    old = add_customer("old@example.com", created_at=base)
    new = add_customer("new@example.com", created_at=base + timedelta(hours=1))
    with session_scope(app) as s:
        items, _ = list_customers(s, CustomerFilters())
        assert [c.id for c in items] == [new, old]


def test_status_filter_and_counts(app, add_customer):
    add_customer("p@example.com")
    add_customer("a@example.com", status="approved")
    add_customer("r@example.com", status="rejected")
    add_customer("r2@example.com", status="rejected")

    with session_scope(app) as s:
        _, total = list_customers(s, CustomerFilters(status="rejected"))
        assert total == 2
        _, total = list_customers(s, CustomerFilters(status="all"))
        assert total == 4
        assert status_counts(s) == {"pending": 1, "approved": 1, "rejected": 2, "total": 4}


def test_registration_payload_picks_known_fields():
    src = {"firstName": "Jane", "zipCode": "73301", "status": "approved", "id": "x"}
    assert registration_payload(src) == {"firstName": "Jane", "zipCode": "73301"}
    assert registration_payload(None) == {}
