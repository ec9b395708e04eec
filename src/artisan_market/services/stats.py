"""Marketplace-wide counters computed from seller, customer and order rows."""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Dict, List

import structlog

from ..domain.errors import StorePermissionError, classify_error
from ..domain.models import DegradedCounter, MarketplaceStats
from ..repositories.base import DataAccess

logger = structlog.get_logger()

APPROVED = "approved"
DELIVERED = "delivered"


class ActiveSellerPolicy(str, Enum):
    """What makes a seller count as active."""

    APPROVED = "approved"
    APPROVED_WITH_PRODUCTS = "approved_with_products"


class StatsAggregator:
    """Computes the three marketplace counters concurrently.

    Counters are independent: a failing one is reported as zero and listed
    in ``MarketplaceStats.degraded`` while the others still complete.
    """

    def __init__(
        self,
        data_access: DataAccess,
        active_seller_policy: ActiveSellerPolicy = ActiveSellerPolicy.APPROVED,
    ) -> None:
        self.data_access = data_access
        self.active_seller_policy = ActiveSellerPolicy(active_seller_policy)

    async def count_registered_customers(self) -> int:
        rows = await self.data_access.query("customer_profiles", columns=["id"])
        return len(rows)

    async def count_active_sellers(self) -> int:
        # profile_completed is a separate flag and plays no part here
        sellers = await self.data_access.query(
            "seller_profiles", filters={"status": APPROVED}, columns=["id"]
        )
        if self.active_seller_policy == ActiveSellerPolicy.APPROVED or not sellers:
            return len(sellers)

        seller_ids = [row["id"] for row in sellers]
        products = await self.data_access.query(
            "products", filters={"seller_id": seller_ids}, columns=["seller_id"]
        )
        listed = {row["seller_id"] for row in products}
        return sum(1 for seller_id in seller_ids if seller_id in listed)

    async def sum_units_sold(self) -> int:
        orders = await self.data_access.query(
            "orders", filters={"status": DELIVERED}, columns=["id"]
        )
        if not orders:
            return 0
        items = await self.data_access.query(
            "order_items",
            filters={"order_id": [row["id"] for row in orders]},
            columns=["order_id", "quantity"],
        )
        return sum(int(item.get("quantity") or 0) for item in items)

    async def compute_marketplace_stats(self) -> MarketplaceStats:
        """Fan out the three counters and join them once all have settled."""
        counters: Dict[str, Callable[[], Awaitable[int]]] = {
            "active_sellers": self.count_active_sellers,
            "registered_customers": self.count_registered_customers,
            "units_sold": self.sum_units_sold,
        }
        names: List[str] = list(counters)
        results = await asyncio.gather(
            *(counters[name]() for name in names), return_exceptions=True
        )

        values: Dict[str, int] = {}
        degraded: Dict[str, DegradedCounter] = {}
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                error = classify_error(result)
                degraded[name] = DegradedCounter(kind=error.kind, detail=error.message)
                values[name] = 0
                if isinstance(error, StorePermissionError):
                    # A policy rejection must not pass for an empty table
                    logger.error("stats_counter_permission_denied", counter=name, error=error.message)
                else:
                    logger.warning("stats_counter_failed", counter=name, kind=error.kind, error=error.message)
            else:
                values[name] = result

        stats = MarketplaceStats(degraded=degraded, **values)
        logger.info(
            "marketplace_stats_computed",
            active_sellers=stats.active_sellers,
            registered_customers=stats.registered_customers,
            units_sold=stats.units_sold,
            degraded=stats.degraded_counters(),
        )
        return stats
