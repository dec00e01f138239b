from datetime import datetime

import pytest
from werkzeug.security import generate_password_hash

from app.regdesk import create_app
from app.regdesk.db import session_scope
from app.regdesk.models import Base, Permission, Role, User
from app.regdesk.modules.customers.models import Customer
from app.regdesk.modules.shopify.client import CustomerCreateResult, CustomerStats, ShopifyError

CSRF_TOKEN = "test-csrf-token"

ALL_PERMISSIONS = [
    ("dashboard.view", "Dashboard: view"),
    ("customers.view", "Customers: view"),
    ("customers.create", "Customers: create"),
    ("customers.edit", "Customers: edit"),
    ("customers.delete", "Customers: delete"),
    ("customers.approve", "Customers: approve/reject"),
    ("customers.export", "Customers: export CSV"),
]


class FakeShopify:
    """Stands in for ShopifyClient; records every call."""

    def __init__(self):
        self.created: list[dict] = []
        self.stats_calls: list[str] = []
        self.next_id = 555
        self.user_errors: list[dict] = []
        self.stats: dict[str, CustomerStats] = {}
        self.failing: set[str] = set()
        self.forks = 0
        self.closed = 0

    def create_customer(self, customer_input):
        self.created.append(customer_input)
        if self.user_errors:
            return CustomerCreateResult(customer=None, user_errors=list(self.user_errors))
        customer = {
            "id": f"gid://shopify/Customer/{self.next_id}",
            "email": customer_input.get("email"),
            "firstName": customer_input.get("firstName"),
            "lastName": customer_input.get("lastName"),
        }
        return CustomerCreateResult(customer=customer, user_errors=[])

    def get_customer_stats(self, shopify_customer_id):
        self.stats_calls.append(shopify_customer_id)
        if shopify_customer_id in self.failing:
            raise ShopifyError("HTTP 502 from Shopify: bad gateway")
        return self.stats.get(shopify_customer_id, CustomerStats())

    def for_thread(self):
        self.forks += 1
        return self

    def close(self):
        self.closed += 1


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    for k in ("SHOPIFY_SHOP_DOMAIN", "SHOPIFY_ACCESS_TOKEN"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    app.config["TESTING"] = True

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        perms = {key: Permission(key=key, name=name) for key, name in ALL_PERMISSIONS}
        admin = Role(key="admin", name="Administrator")
        admin.permissions.extend(perms.values())
        viewer = Role(key="viewer", name="Viewer")
        viewer.permissions.append(perms["customers.view"])

        u = User(email="admin@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        u.roles.append(admin)
        v = User(email="viewer@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        v.roles.append(viewer)
        s.add_all([*perms.values(), admin, viewer, u, v])

    app.extensions["shopify_client"] = FakeShopify()
    return app


@pytest.fixture()
def shopify(app):
    return app.extensions["shopify_client"]


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client, email):
    client.post("/auth/login", data={"email": email, "password": "pw"})
    with client.session_transaction() as sess:
        sess["csrf_token"] = CSRF_TOKEN


@pytest.fixture()
def admin_client(client):
    _login(client, "admin@example.com")
    return client


@pytest.fixture()
def viewer_client(client):
    _login(client, "viewer@example.com")
    return client


@pytest.fixture()
def csrf():
    return {"X-CSRF-Token": CSRF_TOKEN}


@pytest.fixture()
def admin_user(app):
    with session_scope(app) as s:
        return s.query(User).filter(User.email == "admin@example.com").one()


@pytest.fixture()
def add_customer(app):
    """Insert a customer row directly; returns its id."""

    def _add(email, *, first_name="Test", last_name="User", status="pending", created_at=None, **fields):
        with session_scope(app) as s:
            c = Customer(
                first_name=first_name,
                last_name=last_name,
                email=email,
                status=status,
                created_at=created_at or datetime.utcnow(),
                **fields,
            )
            s.add(c)
            s.flush()
            return c.id

    return _add
