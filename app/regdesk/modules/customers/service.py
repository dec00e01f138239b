"""
Customer repository operations.

Every read/write against the `customers` table goes through here. Routes never
build queries themselves; they call these functions and commit.

INVARIANTS:
- One row per email (case-sensitive, stored exactly as submitted).
- New rows always start as `pending`.
- Only the allow-listed fields in CustomerUpdate can change via the generic
  update path; id/created_at/shopify_customer_id/approved_*/rejected_at cannot.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from app.regdesk.audit import record_event
from app.regdesk.errors import DuplicateEmail, NotFound, ValidationError
from app.regdesk.models import User
from app.regdesk.modules.customers.models import CUSTOMER_STATUSES, STATUS_PENDING, Customer
from app.regdesk.utils import isoformat_utc

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

DEFAULT_PAGE_SIZE = 50

# wire name -> column attribute
OPTIONAL_FIELDS = {
    "phone": "phone",
    "company": "company",
    "address": "address",
    "city": "city",
    "state": "state",
    "country": "country",
    "zipCode": "zip_code",
    "notes": "notes",
}


def _text(value: Any) -> str | None:
    """Falsy (None, "", 0, False) -> None; anything else is kept as submitted."""
    if not value:
        return None
    return str(value)


def is_valid_email(email: str | None) -> bool:
    return bool(email and EMAIL_RE.match(email))


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def get_customer_by_id(s, customer_id: str) -> Customer | None:
    return s.query(Customer).filter(Customer.id == customer_id).one_or_none()


def get_customer_by_email(s, email: str) -> Customer | None:
    return s.query(Customer).filter(Customer.email == email).one_or_none()


@dataclass(frozen=True)
class CustomerFilters:
    status: str | None = None  # pending/approved/rejected; None or "all" = no filter
    search: str | None = None
    search_phone: bool = False  # staff list view also matches phone

    @classmethod
    def from_args(cls, args, *, search_phone: bool = False) -> "CustomerFilters":
        status = (args.get("status") or "").strip() or None
        search = (args.get("search") or "").strip() or None
        return cls(status=status, search=search, search_phone=search_phone)


def query_customers(s, filters: CustomerFilters):
    q = s.query(Customer)
    if filters.status and filters.status != "all":
        q = q.filter(Customer.status == filters.status)
    if filters.search:
        cols = [Customer.first_name, Customer.last_name, Customer.email, Customer.company]
        if filters.search_phone:
            cols.append(Customer.phone)
        q = q.filter(or_(*[c.contains(filters.search, autoescape=True) for c in cols]))
    return q


def list_customers(
    s,
    filters: CustomerFilters,
    *,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> tuple[list[Customer], int]:
    """
    Filtered page of customers, newest first, plus the filtered total.
    `page` is 1-indexed.
    """
    page = max(page, 1)
    limit = max(limit, 1)
    q = query_customers(s, filters)
    total = q.count()
    items = (
        q.order_by(Customer.created_at.desc(), Customer.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total


def count_by_status(s, status: str | None = None) -> int:
    q = s.query(func.count(Customer.id))
    if status:
        q = q.filter(Customer.status == status)
    return int(q.scalar() or 0)


def status_counts(s) -> dict[str, int]:
    """Badge counters: pending/approved/rejected plus the unfiltered total."""
    counts = {st: count_by_status(s, st) for st in CUSTOMER_STATUSES}
    counts["total"] = count_by_status(s)
    return counts


def customer_to_dict(c: Customer) -> dict[str, Any]:
    return {
        "id": c.id,
        "firstName": c.first_name,
        "lastName": c.last_name,
        "email": c.email,
        "phone": c.phone,
        "company": c.company,
        "address": c.address,
        "city": c.city,
        "state": c.state,
        "country": c.country,
        "zipCode": c.zip_code,
        "notes": c.notes,
        "status": c.status,
        "shopifyCustomerId": c.shopify_customer_id,
        "approvedAt": isoformat_utc(c.approved_at),
        "rejectedAt": isoformat_utc(c.rejected_at),
        "approvedBy": c.approved_by,
        "createdAt": isoformat_utc(c.created_at),
        "updatedAt": isoformat_utc(c.updated_at),
    }


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str


def validate_customer_payload(payload: dict[str, Any]) -> list[FieldError]:
    errs: list[FieldError] = []
    for key in ("firstName", "lastName", "email"):
        if not _text(payload.get(key)):
            errs.append(FieldError(key, "First name, last name, and email are required"))
            break
    email = _text(payload.get("email"))
    if email and not is_valid_email(email):
        errs.append(FieldError("email", "Please enter a valid email address"))
    return errs


REGISTRATION_FIELDS = ("firstName", "lastName", "email", *OPTIONAL_FIELDS.keys())


def registration_payload(source) -> dict[str, Any]:
    """Pick the registration fields out of a form MultiDict or JSON object."""
    if not source or not hasattr(source, "get"):
        return {}
    return {key: source.get(key) for key in REGISTRATION_FIELDS if source.get(key) is not None}


def _ensure_email_available(s, email: str) -> None:
    if get_customer_by_email(s, email) is not None:
        raise DuplicateEmail("Customer with this email already exists")


def create_customer(s, payload: dict[str, Any], *, user: User | None = None) -> Customer:
    """
    New registration. Always `pending`, whatever the payload says.
    `user` is None for public self-registration.
    """
    errs = validate_customer_payload(payload)
    if errs:
        raise ValidationError(errs[0].message)

    email = _text(payload.get("email")) or ""
    _ensure_email_available(s, email)

    c = Customer(
        first_name=_text(payload.get("firstName")) or "",
        last_name=_text(payload.get("lastName")) or "",
        email=email,
        status=STATUS_PENDING,
    )
    for wire, attr in OPTIONAL_FIELDS.items():
        setattr(c, attr, _text(payload.get(wire)))

    s.add(c)
    try:
        s.flush()  # unique(email) race with a concurrent insert surfaces here
    except IntegrityError as e:
        s.rollback()
        raise DuplicateEmail("Customer with this email already exists") from e

    record_event(
        s,
        actor=user,
        action="customer.create",
        entity_type="Customer",
        entity_id=c.id,
        metadata={"email": c.email, "source": "staff" if user else "public"},
    )
    return c


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(frozen=True)
class CustomerUpdate:
    """
    Partial update. A field left as UNSET is not touched; None clears it.
    """

    first_name: Any = UNSET
    last_name: Any = UNSET
    email: Any = UNSET
    phone: Any = UNSET
    company: Any = UNSET
    address: Any = UNSET
    city: Any = UNSET
    state: Any = UNSET
    country: Any = UNSET
    zip_code: Any = UNSET
    status: Any = UNSET
    notes: Any = UNSET

    @classmethod
    def from_payload(cls, body: dict[str, Any]) -> "CustomerUpdate":
        def pick(key: str):
            return _text(body[key]) if key in body else UNSET

        upd = cls(
            first_name=pick("firstName"),
            last_name=pick("lastName"),
            email=pick("email"),
            phone=pick("phone"),
            company=pick("company"),
            address=pick("address"),
            city=pick("city"),
            state=pick("state"),
            country=pick("country"),
            zip_code=pick("zipCode"),
            status=pick("status"),
            notes=pick("notes"),
        )
        upd.validate()
        return upd

    def validate(self) -> None:
        for name, label in (("first_name", "First name"), ("last_name", "Last name"), ("email", "Email")):
            if getattr(self, name) is None:
                raise ValidationError(f"{label} cannot be empty")
        if self.email is not UNSET and not is_valid_email(self.email):
            raise ValidationError("Please enter a valid email address")
        if self.status is not UNSET and self.status not in CUSTOMER_STATUSES:
            raise ValidationError(f"Invalid status: {self.status}")

    def changes(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not UNSET}


def _snapshot(c: Customer, names) -> dict[str, Any]:
    return {n: getattr(c, n) for n in names}


def update_customer(s, customer_id: str, upd: CustomerUpdate, *, user: User | None) -> Customer:
    from app.regdesk.modules.customers.approval import actor_id, apply_status_change

    c = get_customer_by_id(s, customer_id)
    if not c:
        raise NotFound("Customer not found")

    changes = upd.changes()
    if not changes:
        return c

    new_email = changes.get("email")
    if new_email and new_email != c.email:
        if get_customer_by_email(s, new_email) is not None:
            raise DuplicateEmail("Email already exists")

    before = _snapshot(c, changes.keys())
    new_status = changes.pop("status", None)
    for attr, value in changes.items():
        setattr(c, attr, value)
    if new_status and new_status != c.status:
        apply_status_change(c, new_status, actor=actor_id(user), now=datetime.utcnow())
    after = _snapshot(c, before.keys())

    try:
        s.flush()
    except IntegrityError as e:
        s.rollback()
        raise DuplicateEmail("Email already exists") from e

    record_event(
        s,
        actor=user,
        action="customer.update",
        entity_type="Customer",
        entity_id=c.id,
        metadata={
            "before": before,
            "after": after,
            "fields_changed": [k for k in before if before[k] != after[k]],
        },
    )
    return c


def delete_customer(s, customer_id: str, *, user: User | None) -> None:
    c = get_customer_by_id(s, customer_id)
    if not c:
        raise NotFound("Customer not found")
    record_event(
        s,
        actor=user,
        action="customer.delete",
        entity_type="Customer",
        entity_id=c.id,
        metadata={"email": c.email, "status": c.status},
    )
    s.delete(c)
    s.flush()
