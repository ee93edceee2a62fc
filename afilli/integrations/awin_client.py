"""
AWIN publisher API client.

Discovers active programmes the publisher has not joined yet, pulls each
programme's KPIs and scores it. Only programmes whose CPS (conversion
potential score, 0-100) reaches AWIN_MIN_CPS are returned.

API Reference: https://wiki.awin.com/index.php/Publisher_API
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

from afilli.config.loader import resolve_secret
from afilli.config.schema import AwinConfig
from afilli.exceptions import DependencyError

logger = logging.getLogger(__name__)

AWIN_MIN_CPS = 50
MAX_PROGRAMMES_ANALYZED = 20


def awin_cps(
    epc: float,
    conversion_rate: float,
    approval_percentage: float,
    awin_index: float,
) -> float:
    """CPS from AWIN KPIs, rounded to one decimal."""
    score = (
        min(epc * 20, 30)
        + min(conversion_rate * 10, 25)
        + approval_percentage * 0.2
        + awin_index * 0.25
    )
    return round(score, 1)


def programme_to_offer(programme: dict[str, Any], details: dict[str, Any]) -> dict[str, Any]:
    kpi = details.get("kpi") or {}
    epc = kpi.get("epc") or 0
    conversion_rate = kpi.get("conversionRate") or 0
    approval = kpi.get("approvalPercentage") or 0
    awin_index = kpi.get("awinIndex") or 0

    commission = (details.get("commissionRange") or [{}])[0]
    region = programme.get("primaryRegion") or {}

    return {
        "source": "awin",
        "source_id": str(programme["id"]),
        "name": programme.get("name", ""),
        "merchant": programme.get("name", ""),
        "url": programme.get("clickThroughUrl") or programme.get("displayUrl"),
        "payout": (
            f"{commission.get('max', 0)}% "
            f"{commission.get('type', 'percentage')} commission"
        ),
        "epc": epc,
        "cookie_window": kpi.get("validationDays") or 30,
        "geo": region.get("name", "Global"),
        "categories": [programme["primarySector"]] if programme.get("primarySector") else ["General"],
        "cps": awin_cps(epc, conversion_rate, approval, awin_index),
        "image_url": programme.get("logoUrl"),
        "description": programme.get("description") or "",
        "meta": {
            "programme_id": programme["id"],
            "awin_index": awin_index,
            "conversion_rate": conversion_rate,
            "approval_percentage": approval,
            "valid_domains": [d.get("domain") for d in programme.get("validDomains") or []],
        },
    }


class AwinClient:
    """Fetches and scores AWIN programmes."""

    def __init__(
        self,
        config: Optional[AwinConfig] = None,
        timeout: float = 30.0,
        request_delay_seconds: float = 0.2,
    ):
        self.config = config or AwinConfig()
        self.timeout = timeout
        self.request_delay_seconds = request_delay_seconds

    def _credentials(self) -> tuple[str, str]:
        token = resolve_secret(self.config.api_token_env)
        publisher_id = resolve_secret(self.config.publisher_id_env)
        if not token or not publisher_id:
            raise DependencyError(
                "AWIN credentials not configured. Set "
                f"{self.config.api_token_env} and {self.config.publisher_id_env}.",
                service="awin",
            )
        return token, publisher_id

    async def fetch_offers(self) -> list[dict[str, Any]]:
        token, publisher_id = self._credentials()
        base = f"{self.config.base_url}/publishers/{publisher_id}"

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.get(
                    f"{base}/programmes",
                    params={
                        "accessToken": token,
                        "relationship": "notjoined",
                        "includeHidden": "false",
                    },
                    headers={"Accept": "application/json"},
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise DependencyError(
                    f"AWIN API error: {e.response.status_code}",
                    service="awin",
                    status_code=e.response.status_code,
                ) from e
            except httpx.HTTPError as e:
                raise DependencyError(f"AWIN request failed: {e}", service="awin") from e

            programmes = [
                p for p in response.json()
                if p.get("status") == "active" and p.get("validDomains")
            ]

            offers = []
            for programme in programmes[:MAX_PROGRAMMES_ANALYZED]:
                details = await self._programme_details(client, base, token, programme["id"])
                if details is None:
                    continue
                offer = programme_to_offer(programme, details)
                if offer["cps"] >= AWIN_MIN_CPS:
                    offers.append(offer)
                if self.request_delay_seconds:
                    await asyncio.sleep(self.request_delay_seconds)

        logger.info(
            "awin_offers_fetched",
            extra={"programmes": len(programmes), "offers": len(offers)},
        )
        return offers

    async def _programme_details(
        self,
        client: httpx.AsyncClient,
        base: str,
        token: str,
        advertiser_id: Any,
    ) -> Optional[dict[str, Any]]:
        response = await client.get(
            f"{base}/programmedetails",
            params={
                "accessToken": token,
                "advertiserId": str(advertiser_id),
                "relationship": "any",
            },
            headers={"Accept": "application/json"},
        )
        if response.status_code >= 400:
            logger.warning(
                "awin_programme_details_unavailable",
                extra={"advertiser_id": advertiser_id, "status": response.status_code},
            )
            return None
        return response.json()
