"""Public self-registration (/register) and the staff-side /app/register form."""

from app.regdesk.db import session_scope
from app.regdesk.modules.customers.models import Customer


def _form(**overrides):
    data = {
        "csrf_token": "test-csrf-token",
        "firstName": "Jane",
        "lastName": "Doe",
        "email": "jane@example.com",
        "company": "Acme",
    }
    data.update(overrides)
    return data


def _with_csrf(client):
    with client.session_transaction() as sess:
        sess["csrf_token"] = "test-csrf-token"
    return client


def test_register_form_renders(client):
    r = client.get("/register")
    assert r.status_code == 200
    assert b"Customer Registration" in r.data
    assert b'name="csrf_token"' in r.data


def test_register_success_is_pending(app, client):
    _with_csrf(client)
    r = client.post("/register", data=_form(status="approved"))
    assert r.status_code == 200
    assert b"Registration submitted successfully!" in r.data

    with session_scope(app) as s:
        c = s.query(Customer).one()
        assert c.status == "pending"
        assert c.company == "Acme"


def test_register_duplicate_email(client, add_customer):
    add_customer("jane@example.com")
    _with_csrf(client)
    r = client.post("/register", data=_form())
    assert r.status_code == 409
    assert b"This email is already registered" in r.data


def test_register_validation_keeps_input(client):
    _with_csrf(client)
    r = client.post("/register", data=_form(email="not-an-email"))
    assert r.status_code == 400
    assert b"Please enter a valid email address" in r.data
    assert b'value="Acme"' in r.data


def test_register_json(client):
    _with_csrf(client)
    headers = {"X-CSRF-Token": "test-csrf-token"}
    body = {"firstName": "Jane", "lastName": "Doe", "email": "jane@example.com"}

    r = client.post("/register", json=body, headers=headers)
    assert r.status_code == 200
    assert r.json["success"] is True

    r = client.post("/register", json=body, headers=headers)
    assert r.status_code == 409
    assert r.json == {"success": False, "error": "This email is already registered"}

    r = client.post("/register", json={"firstName": "Jane"}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "First name, last name, and email are required"


def test_register_requires_csrf(client):
    r = client.post("/register", data={"firstName": "Jane", "lastName": "Doe", "email": "jane@example.com"})
    assert r.status_code == 400


def test_staff_register(app, admin_client):
    r = admin_client.get("/app/register")
    assert r.status_code == 200

    r = admin_client.post("/app/register", data=_form(), follow_redirects=False)
    assert r.status_code == 302
    assert "status=pending" in r.headers["Location"]

    r = admin_client.post("/app/register", data=_form())
    assert r.status_code == 409

    with session_scope(app) as s:
        assert s.query(Customer).count() == 1


def test_staff_register_requires_permission(viewer_client):
    assert viewer_client.get("/app/register").status_code == 403
