from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict
from typing import Any, Protocol

from app.regdesk.modules.customers.models import STATUS_APPROVED, Customer
from app.regdesk.modules.customers.service import customer_to_dict
from app.regdesk.modules.shopify.client import CustomerStats

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8


class CustomerStatsSource(Protocol):
    def get_customer_stats(self, shopify_customer_id: str) -> CustomerStats: ...

    def for_thread(self) -> "CustomerStatsSource": ...

    def close(self) -> None: ...


def _stats_fields(stats: CustomerStats) -> dict[str, Any]:
    d = asdict(stats)
    return {
        "orderCount": d["order_count"],
        "totalSpent": d["total_spent"],
        "currencyCode": d["currency_code"],
        "emailSubscribed": d["email_subscribed"],
    }


def _stats_for(c: Customer, client: CustomerStatsSource) -> CustomerStats:
    if c.status != STATUS_APPROVED or not c.shopify_customer_id:
        return CustomerStats()
    try:
        return client.get_customer_stats(c.shopify_customer_id)
    except Exception as e:
        logger.error("Error fetching Shopify data for customer %s: %s", c.id, e)
        return CustomerStats()


def enrich_customers(
    customers: list[Customer],
    client: CustomerStatsSource,
    *,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> list[dict[str, Any]]:
    """
    Wire dicts for `customers` with orderCount/totalSpent/currencyCode/emailSubscribed.

    Only approved rows with a Shopify id are looked up; lookups run concurrently
    and results keep the input order. A failed lookup leaves that row on the
    zero defaults and does not affect the others.

    Each worker thread gets its own client from `client.for_thread()`; all of
    them are closed once the batch is done.
    """
    if not customers:
        return []

    local = threading.local()
    forks: list[CustomerStatsSource] = []
    forks_lock = threading.Lock()

    def worker_client() -> CustomerStatsSource:
        fork = getattr(local, "client", None)
        if fork is None:
            fork = local.client = client.for_thread()
            with forks_lock:
                forks.append(fork)
        return fork

    def lookup(c: Customer) -> CustomerStats:
        if c.status != STATUS_APPROVED or not c.shopify_customer_id:
            return CustomerStats()
        return _stats_for(c, worker_client())

    try:
        with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(customers)))) as pool:
            stats = list(pool.map(lookup, customers))
    finally:
        for fork in forks:
            fork.close()
    return [{**customer_to_dict(c), **_stats_fields(st)} for c, st in zip(customers, stats)]
