"""
CJ Affiliate advertiser-lookup client.

Returns the advertisers the website is joined with, scored by network
rank and EPC.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from afilli.config.loader import resolve_secret
from afilli.config.schema import CJConfig
from afilli.exceptions import DependencyError

logger = logging.getLogger(__name__)


def cj_cps(network_rank: Optional[int], epc: float) -> float:
    """Network rank is 1 (best) to 5; missing ranks count as 3."""
    rank = network_rank or 3
    return round((6 - rank) * 20 + min(epc / 2, 50), 1)


def advertiser_to_offer(advertiser: dict[str, Any]) -> dict[str, Any]:
    actions = (advertiser.get("actions") or {}).get("action") or []
    primary = actions[0] if actions else {}
    epc = advertiser.get("seven-day-epc") or advertiser.get("three-month-epc") or 0
    category = advertiser.get("primary-category") or {}
    categories = [c for c in (category.get("parent"), category.get("child")) if c]
    incentives = advertiser.get("performance-incentives") or []
    advertiser_id = advertiser["advertiser-id"]
    name = advertiser.get("advertiser-name", "")

    return {
        "source": "cj",
        "source_id": str(advertiser_id),
        "name": name,
        "merchant": name,
        "url": advertiser.get("program-url") or f"https://www.cj.com/advertiser/{advertiser_id}",
        "payout": (primary.get("commission") or {}).get("default", "N/A"),
        "epc": epc,
        "cookie_window": primary.get("cookie-days") or 30,
        "geo": "Global",
        "categories": categories or ["General"],
        "cps": cj_cps(advertiser.get("network-rank"), epc),
        "image_url": None,
        "description": (
            incentives[0].get("incentive-description")
            if incentives else f"{name} affiliate program"
        ),
        "meta": {
            "network_rank": advertiser.get("network-rank"),
            "relationship_status": advertiser.get("relationship-status"),
            "seven_day_epc": advertiser.get("seven-day-epc"),
            "three_month_epc": advertiser.get("three-month-epc"),
        },
    }


class CJClient:
    """Fetches joined CJ advertisers as offers."""

    def __init__(self, config: Optional[CJConfig] = None, timeout: float = 30.0):
        self.config = config or CJConfig()
        self.timeout = timeout

    async def fetch_offers(self) -> list[dict[str, Any]]:
        api_key = resolve_secret(self.config.api_key_env)
        website_id = resolve_secret(self.config.website_id_env)
        if not api_key or not website_id:
            raise DependencyError(
                "CJ credentials not configured. Set "
                f"{self.config.api_key_env} and {self.config.website_id_env}.",
                service="cj",
            )

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    f"{self.config.base_url}/v3/advertiser-lookup",
                    params={
                        "website-id": website_id,
                        "advertiser-ids": "joined",
                        "records-per-page": "100",
                        "page-number": "1",
                    },
                    headers={
                        "Authorization": f"Bearer {api_key}",
                        "Accept": "application/json",
                    },
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            message = (
                "Invalid CJ API credentials" if status == 401
                else f"CJ API error: {status}"
            )
            raise DependencyError(message, service="cj", status_code=status) from e
        except httpx.HTTPError as e:
            raise DependencyError(f"CJ request failed: {e}", service="cj") from e

        advertisers = (response.json().get("advertisers") or {}).get("advertiser") or []
        offers = [advertiser_to_offer(a) for a in advertisers]
        logger.info("cj_offers_fetched", extra={"offers": len(offers)})
        return offers
