"""
Approval state machine.

    pending --approve--> approved   (creates the customer in Shopify first)
    pending --reject---> rejected   (local only)

Re-approving an approved row or re-rejecting a rejected row raises
InvalidTransition. Cross moves (approved <-> rejected) are allowed; see
DESIGN.md for the policy. shopify_customer_id is written once and never cleared.

There is no transaction spanning the Shopify call and the local update: if the
process dies in between, Shopify has the customer and the row stays pending.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from app.regdesk.audit import record_event
from app.regdesk.errors import InvalidTransition, NotFound, RemoteValidationError
from app.regdesk.models import User
from app.regdesk.modules.customers.models import STATUS_APPROVED, STATUS_PENDING, STATUS_REJECTED, Customer
from app.regdesk.modules.customers.service import get_customer_by_id
from app.regdesk.modules.shopify.client import CustomerCreateResult, customer_id_from_gid

logger = logging.getLogger(__name__)


class CustomerDirectory(Protocol):
    def create_customer(self, customer_input: dict[str, Any]) -> CustomerCreateResult: ...


@dataclass(frozen=True)
class ApprovalResult:
    customer: Customer
    shopify_customer: dict[str, Any] | None


def actor_id(user: User | None) -> str | None:
    return user.email if user else None


# ---------------------------------------------------------------------------
# Per-status bookkeeping
# ---------------------------------------------------------------------------


def mark_approved(c: Customer, *, actor: str | None, now: datetime, shopify_customer_id: str | None = None) -> None:
    c.status = STATUS_APPROVED
    c.approved_at = now
    c.approved_by = actor
    if shopify_customer_id and not c.shopify_customer_id:
        c.shopify_customer_id = shopify_customer_id


def mark_rejected(c: Customer, *, actor: str | None, now: datetime) -> None:
    c.status = STATUS_REJECTED
    c.rejected_at = now
    c.approved_by = actor


def apply_status_change(c: Customer, new_status: str, *, actor: str | None, now: datetime) -> None:
    """
    Status edits coming through the generic update path. No Shopify call here:
    that only happens in approve_customer().
    """
    if new_status == c.status:
        return
    if new_status == STATUS_APPROVED:
        mark_approved(c, actor=actor, now=now)
    elif new_status == STATUS_REJECTED:
        mark_rejected(c, actor=actor, now=now)
    else:
        c.status = STATUS_PENDING


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def build_customer_input(c: Customer, notes: str | None) -> dict[str, Any]:
    """CustomerInput for Shopify's customerCreate. Empty values are omitted."""
    payload: dict[str, Any] = {
        "email": c.email,
        "firstName": c.first_name,
        "lastName": c.last_name,
    }
    if c.phone:
        payload["phone"] = c.phone
    if c.address:
        addr = {"address1": c.address}
        for key, value in (
            ("city", c.city),
            ("province", c.state),
            ("country", c.country),
            ("zip", c.zip_code),
        ):
            if value:
                addr[key] = value
        payload["addresses"] = [addr]
    note = notes or c.notes
    if note:
        payload["note"] = note
    return payload


def _load(s, customer_id: str) -> Customer:
    c = get_customer_by_id(s, customer_id)
    if not c:
        raise NotFound("Customer not found")
    return c


def approve_customer(
    s,
    customer_id: str,
    *,
    notes: str | None,
    user: User | None,
    client: CustomerDirectory,
) -> ApprovalResult:
    c = _load(s, customer_id)
    if c.status == STATUS_APPROVED:
        raise InvalidTransition("Customer is already approved")

    notes = notes or None
    shopify_customer: dict[str, Any] | None = None
    shopify_id = c.shopify_customer_id

    if shopify_id:
        # Previously approved then rejected: the Shopify record already exists.
        logger.info("approve: customer=%s reusing shopify_customer_id=%s", c.id, shopify_id)
    else:
        result = client.create_customer(build_customer_input(c, notes))
        if result.user_errors:
            msg = (result.user_errors[0] or {}).get("message") or "Failed to create customer in Shopify"
            raise RemoteValidationError(msg)
        shopify_customer = result.customer
        shopify_id = customer_id_from_gid((shopify_customer or {}).get("id"))
        logger.info("approve: customer=%s created in Shopify id=%s", c.id, shopify_id)

    previous_status = c.status
    mark_approved(c, actor=actor_id(user), now=datetime.utcnow(), shopify_customer_id=shopify_id)
    if notes:
        c.notes = notes
    s.flush()

    record_event(
        s,
        actor=user,
        action="customer.approve",
        entity_type="Customer",
        entity_id=c.id,
        reason=notes,
        metadata={"from_status": previous_status, "shopify_customer_id": c.shopify_customer_id},
    )
    return ApprovalResult(customer=c, shopify_customer=shopify_customer)


def reject_customer(s, customer_id: str, *, notes: str | None, user: User | None) -> Customer:
    c = _load(s, customer_id)
    if c.status == STATUS_REJECTED:
        raise InvalidTransition("Customer is already rejected")

    notes = notes or None
    previous_status = c.status
    mark_rejected(c, actor=actor_id(user), now=datetime.utcnow())
    if notes:
        c.notes = notes
    s.flush()

    record_event(
        s,
        actor=user,
        action="customer.reject",
        entity_type="Customer",
        entity_id=c.id,
        reason=notes,
        metadata={"from_status": previous_status},
    )
    return c
