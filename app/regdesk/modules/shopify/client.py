from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any

import requests
from flask import current_app

logger = logging.getLogger(__name__)

CUSTOMER_GID_PREFIX = "gid://shopify/Customer/"

CUSTOMER_CREATE_MUTATION = """
mutation customerCreate($input: CustomerInput!) {
  customerCreate(input: $input) {
    customer {
      id
      email
      firstName
      lastName
      phone
    }
    userErrors {
      field
      message
    }
  }
}
"""

CUSTOMER_STATS_QUERY = """
query getCustomer($id: ID!) {
  customer(id: $id) {
    id
    emailMarketingConsent {
      marketingState
      marketingOptInLevel
    }
    numberOfOrders
    amountSpent {
      amount
      currencyCode
    }
  }
}
"""


class ShopifyError(RuntimeError):
    pass


@dataclass(frozen=True)
class CustomerCreateResult:
    customer: dict[str, Any] | None
    user_errors: list[dict[str, Any]]


@dataclass(frozen=True)
class CustomerStats:
    order_count: int = 0
    total_spent: float = 0.0
    currency_code: str = "USD"
    email_subscribed: bool = False


def customer_gid(shopify_customer_id: str) -> str:
    return f"{CUSTOMER_GID_PREFIX}{shopify_customer_id}"


def customer_id_from_gid(gid: str | None) -> str | None:
    """
    gid://shopify/Customer/123456 -> "123456" (trailing path segment).
    """
    if not gid:
        return None
    tail = str(gid).rsplit("/", 1)[-1]
    return tail or None


@dataclass(frozen=True)
class ShopifyClient:
    """
    Minimal Admin GraphQL client. One POST per call; no retries.
    """

    shop_domain: str
    access_token: str
    api_version: str = "2025-10"
    timeout_seconds: int = 30
    session: requests.Session = field(default_factory=requests.Session, repr=False, compare=False)

    @property
    def endpoint(self) -> str:
        domain = self.shop_domain.strip().rstrip("/")
        if not domain.startswith(("http://", "https://")):
            domain = "https://" + domain
        return f"{domain}/admin/api/{self.api_version}/graphql.json"

    def for_thread(self) -> "ShopifyClient":
        """Same credentials on a fresh requests.Session; Session is not shared across threads."""
        return replace(self, session=requests.Session())

    def close(self) -> None:
        self.session.close()

    def graphql(self, query: str, *, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            resp = self.session.post(
                self.endpoint,
                json={"query": query, "variables": variables or {}},
                headers={
                    "X-Shopify-Access-Token": self.access_token,
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as e:
            raise ShopifyError(f"Shopify request failed: {e}") from e

        if resp.status_code >= 400:
            raise ShopifyError(f"HTTP {resp.status_code} from Shopify: {resp.text[:300]}")
        try:
            payload = resp.json()
        except ValueError as e:
            raise ShopifyError("Invalid JSON from Shopify") from e
        if not isinstance(payload, dict):
            raise ShopifyError("Unexpected response shape from Shopify")

        errors = payload.get("errors")
        if errors:
            first = errors[0] if isinstance(errors, list) and errors else errors
            msg = first.get("message") if isinstance(first, dict) else str(first)
            raise ShopifyError(f"Shopify GraphQL error: {msg}")
        return payload.get("data") or {}

    def create_customer(self, customer_input: dict[str, Any]) -> CustomerCreateResult:
        data = self.graphql(CUSTOMER_CREATE_MUTATION, variables={"input": customer_input})
        result = data.get("customerCreate") or {}
        user_errors = result.get("userErrors") or []
        if user_errors:
            logger.warning("Shopify customerCreate userErrors: %s", user_errors)
        return CustomerCreateResult(customer=result.get("customer"), user_errors=list(user_errors))

    def get_customer_stats(self, shopify_customer_id: str) -> CustomerStats:
        data = self.graphql(CUSTOMER_STATS_QUERY, variables={"id": customer_gid(shopify_customer_id)})
        c = data.get("customer")
        if not c:
            return CustomerStats()
        spent = c.get("amountSpent") or {}
        consent = c.get("emailMarketingConsent") or {}
        return CustomerStats(
            order_count=int(c.get("numberOfOrders") or 0),
            total_spent=float(spent.get("amount") or "0"),
            currency_code=spent.get("currencyCode") or "USD",
            email_subscribed=consent.get("marketingState") == "SUBSCRIBED",
        )


def client_from_config(config: dict) -> ShopifyClient:
    return ShopifyClient(
        shop_domain=str(config.get("SHOPIFY_SHOP_DOMAIN") or ""),
        access_token=str(config.get("SHOPIFY_ACCESS_TOKEN") or ""),
        api_version=str(config.get("SHOPIFY_API_VERSION") or "2025-10"),
        timeout_seconds=int(config.get("SHOPIFY_TIMEOUT_SECONDS") or 30),
    )


def current_client() -> ShopifyClient:
    """The process-wide client built by create_app() (tests swap in a fake)."""
    return current_app.extensions["shopify_client"]
