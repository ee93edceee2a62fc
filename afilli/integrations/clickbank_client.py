"""
ClickBank marketplace client.

Walks a fixed set of marketplace categories, keeps products that clear
minimum gravity / earnings / commission bars, and turns them into offers
with hop links for the configured affiliate nickname.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

from afilli.config.loader import resolve_secret
from afilli.config.schema import ClickBankConfig
from afilli.exceptions import DependencyError

logger = logging.getLogger(__name__)

MARKETPLACE_CATEGORIES = (
    "health-fitness",
    "business-investing",
    "computers-internet",
    "education",
    "home-garden",
    "self-help",
)

MIN_GRAVITY = 20
MIN_INITIAL_EARNINGS = 15
MIN_PERCENT_PER_SALE = 40
MAX_OFFERS = 100


def clickbank_cps(gravity: float, epc: float, recurring: bool) -> float:
    score = min(gravity / 5, 50) + min(epc / 2, 30) + (20 if recurring else 0)
    return round(score, 1)


def _payout(product: dict[str, Any]) -> str:
    percent = product.get("percentPerSale") or 0
    initial = product.get("initialEarningsPerSale") or 0
    rebill = product.get("rebillAmount") or 0
    if percent > 0:
        payout = f"{percent}% commission"
        if initial > 0:
            payout += f" (~${initial:.2f} avg)"
    elif initial > 0:
        payout = f"${initial:.2f} per sale"
    else:
        payout = "Contact for details"
    if product.get("hasRecurringProducts") and rebill > 0:
        payout += f" + ${rebill:.2f} rebills"
    return payout


def product_to_offer(product: dict[str, Any], vendor: str) -> dict[str, Any]:
    epc = product.get("averageEarningsPerSale") or product.get("initialEarningsPerSale") or 0
    site = product["site"]
    title = product.get("title", site)
    return {
        "source": "clickbank",
        "source_id": site,
        "name": title,
        "merchant": title,
        "url": f"https://{site}.{vendor}.hop.clickbank.net/?tid=afilli",
        "payout": _payout(product),
        "epc": epc,
        "cookie_window": 60,
        "geo": "Global",
        "categories": [product["category"]] if product.get("category") else ["General"],
        "cps": clickbank_cps(
            product.get("gravity") or 0, epc, bool(product.get("hasRecurringProducts"))
        ),
        "image_url": None,
        "description": product.get("description") or f"{title} - ClickBank product",
        "meta": {
            "site": site,
            "gravity": product.get("gravity"),
            "percent_per_sale": product.get("percentPerSale"),
            "has_recurring_products": product.get("hasRecurringProducts", False),
        },
    }


def is_high_performer(product: dict[str, Any]) -> bool:
    return (
        (product.get("gravity") or 0) >= MIN_GRAVITY
        and (product.get("initialEarningsPerSale") or 0) >= MIN_INITIAL_EARNINGS
        and (product.get("percentPerSale") or 0) >= MIN_PERCENT_PER_SALE
    )


class ClickBankClient:
    """Fetches high-performing ClickBank marketplace products as offers."""

    def __init__(
        self,
        config: Optional[ClickBankConfig] = None,
        timeout: float = 30.0,
        request_delay_seconds: float = 0.3,
    ):
        self.config = config or ClickBankConfig()
        self.timeout = timeout
        self.request_delay_seconds = request_delay_seconds

    async def fetch_offers(self) -> list[dict[str, Any]]:
        api_key = resolve_secret(self.config.api_key_env)
        vendor = resolve_secret(self.config.vendor_env)
        if not api_key or not vendor:
            raise DependencyError(
                "ClickBank credentials not configured. Set "
                f"{self.config.api_key_env} and {self.config.vendor_env}.",
                service="clickbank",
            )

        products: list[dict[str, Any]] = []
        failures = 0
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for category in MARKETPLACE_CATEGORIES:
                try:
                    response = await client.get(
                        f"{self.config.base_url}/rest/1.3/marketplace/products",
                        params={"cat": category, "sort": "gravity", "length": "50", "language": "en"},
                        headers={
                            "Accept": "application/json",
                            "Authorization": f"Bearer {api_key}",
                        },
                    )
                    response.raise_for_status()
                except httpx.HTTPError as e:
                    failures += 1
                    logger.warning(
                        "clickbank_category_failed",
                        extra={"category": category, "error": str(e)},
                    )
                    continue
                products.extend(
                    p for p in response.json().get("products") or [] if is_high_performer(p)
                )
                if self.request_delay_seconds:
                    await asyncio.sleep(self.request_delay_seconds)

        if failures == len(MARKETPLACE_CATEGORIES):
            raise DependencyError(
                "ClickBank marketplace unavailable for every category",
                service="clickbank",
            )

        products.sort(
            key=lambda p: (p.get("gravity") or 0) * 0.4
            + (p.get("initialEarningsPerSale") or 0) * 0.3
            + (p.get("percentPerSale") or 0) * 0.3,
            reverse=True,
        )
        offers = [product_to_offer(p, vendor) for p in products[:MAX_OFFERS]]
        logger.info("clickbank_offers_fetched", extra={"offers": len(offers)})
        return offers
