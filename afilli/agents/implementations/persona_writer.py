"""
PersonaWriter: builds buyer personas from the best offers and watches the
campaigns that target them.

- persona_generation: one persona per high-CPS offer, exact-name dedup
- campaign_monitoring: read-only performance report over active campaigns
- offer_switching: swaps the last offer of a converting-poorly campaign
  for a stronger offer from the same categories
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from afilli.agents.base import TaskContext, TaskExecutor, bump, task_handler
from afilli.agents.contracts import PersonaProfile, PersonaWriterConfig
from afilli.agents.registry import register_executor
from afilli.agents.types import AgentType, CampaignStatus, TaskType

logger = logging.getLogger(__name__)

RESULTS_WINDOW = timedelta(days=14)
MAX_REPORTED_CAMPAIGNS = 10

# Underperformance thresholds
MIN_CTR = 0.02
MIN_CVR = 0.01
MIN_REVENUE = 100

# Offer switching
SWITCH_MIN_CLICKS = 50
REPLACEMENT_MIN_CPS = 70
REPLACEMENT_CANDIDATES = 3

PERSONA_PROMPT = """Create a highly detailed ideal customer profile (persona) for this affiliate offer:

Offer: {name}
Merchant: {merchant}
Payout: {payout}
Categories: {categories}
Description: {description}

Create a persona that would be most likely to purchase this offer. Include:

1. name: A descriptive persona name (e.g., "Tech-Savvy Entrepreneur", "Fitness-Focused Millennial")
2. description: Detailed demographic and psychographic profile (200-300 words)
3. hypotheses: 5-7 hypotheses about why this persona would buy
4. signals: 7-10 buying signals to watch for, each with a strength (weak, medium, strong)
5. channels: Best marketing channels to reach them (email, twitter, linkedin, facebook, tiktok, chat, seo)
6. audienceSizeEst: Rough estimate of total addressable market size
7. clvEst: Estimated customer lifetime value in dollars
8. searchKeywords: 10-15 keywords this persona would search for
9. targetSites: 5-10 websites or communities where this persona hangs out

Be specific. Think like a marketer who deeply understands customer psychology."""


@dataclass
class CampaignPerformance:
    sent: int = 0
    clicks: int = 0
    conversions: int = 0
    revenue: float = 0.0

    @classmethod
    def from_results(cls, results: list[dict[str, Any]]) -> "CampaignPerformance":
        perf = cls()
        for result in results:
            metrics = result.get("metrics") or {}
            perf.sent += metrics.get("sent") or 0
            perf.clicks += metrics.get("clicks") or 0
            perf.conversions += metrics.get("conversions") or 0
            perf.revenue += metrics.get("revenue") or 0
        return perf

    @property
    def ctr(self) -> float:
        return self.clicks / self.sent if self.sent else 0.0

    @property
    def cvr(self) -> float:
        return self.conversions / self.clicks if self.clicks else 0.0

    @property
    def underperforming(self) -> bool:
        return self.ctr < MIN_CTR or self.cvr < MIN_CVR or self.revenue < MIN_REVENUE


@register_executor(AgentType.PERSONA_WRITER)
class PersonaWriterExecutor(TaskExecutor):
    config_model = PersonaWriterConfig

    def _recent_performance(self, campaign_id: str) -> CampaignPerformance:
        since = (datetime.now(timezone.utc) - RESULTS_WINDOW).isoformat()
        return CampaignPerformance.from_results(self.db.list_results(campaign_id, since))

    @task_handler(TaskType.PERSONA_GENERATION)
    async def persona_generation(self, ctx: TaskContext) -> dict[str, Any]:
        config: PersonaWriterConfig = ctx.config  # type: ignore[assignment]
        offers = self.db.list_offers(
            min_cps=config.min_cps_score, order_by="cps", limit=config.max_personas
        )

        created = []
        for offer in offers:
            profile = await self.services.generator.generate_object(
                PERSONA_PROMPT.format(
                    name=offer.get("name"),
                    merchant=offer.get("merchant"),
                    payout=offer.get("payout"),
                    categories=", ".join(offer.get("categories") or []),
                    description=offer.get("description") or "",
                ),
                PersonaProfile,
            )
            if self.db.get_persona_by_name(profile.name):
                logger.info("persona_exists", extra={"persona_name": profile.name})
                continue
            persona = self.db.create_persona({
                **profile.model_dump(),
                "web_insights": {
                    "linked_offer_id": offer["id"],
                    "offer_name": offer.get("name"),
                    "created_by_agent": ctx.agent_id,
                },
            })
            created.append(persona)

        return {
            "personas_created": len(created),
            "persona_ids": [p["id"] for p in created],
            "offers_analyzed": len(offers),
        }

    @task_handler(TaskType.CAMPAIGN_MONITORING)
    async def campaign_monitoring(self, ctx: TaskContext) -> dict[str, Any]:
        campaigns = self.db.list_campaigns(status=CampaignStatus.ACTIVE.value)

        analysis = []
        for campaign in campaigns:
            perf = self._recent_performance(campaign["id"])
            analysis.append({
                "campaign_id": campaign["id"],
                "campaign_name": campaign.get("name"),
                "persona_id": campaign.get("persona_id"),
                "metrics": {
                    "sent": perf.sent,
                    "clicks": perf.clicks,
                    "conversions": perf.conversions,
                    "revenue": perf.revenue,
                },
                "ctr": perf.ctr,
                "cvr": perf.cvr,
                "is_underperforming": perf.underperforming,
                "offer_ids": campaign.get("offer_ids") or [],
            })

        return {
            "campaigns_monitored": len(campaigns),
            "underperforming_campaigns": sum(1 for a in analysis if a["is_underperforming"]),
            "performance_analysis": analysis[:MAX_REPORTED_CAMPAIGNS],
        }

    @task_handler(TaskType.OFFER_SWITCHING)
    async def offer_switching(self, ctx: TaskContext) -> dict[str, Any]:
        campaigns = self.db.list_campaigns(status=CampaignStatus.ACTIVE.value)

        switches = []
        for campaign in campaigns:
            offer_ids = list(campaign.get("offer_ids") or [])
            perf = self._recent_performance(campaign["id"])
            if not offer_ids or perf.cvr >= MIN_CVR or perf.clicks <= SWITCH_MIN_CLICKS:
                continue

            categories = sorted({
                category
                for offer in self.db.list_offers(ids=offer_ids)
                for category in offer.get("categories") or []
            })
            if not categories:
                continue

            better = self.db.list_offers(
                min_cps=REPLACEMENT_MIN_CPS,
                exclude_ids=offer_ids,
                categories_any=categories,
                order_by="cps",
                limit=REPLACEMENT_CANDIDATES,
            )
            if not better:
                continue

            removed = offer_ids[-1]
            self.db.update_campaign(campaign["id"], {
                "offer_ids": offer_ids[:-1] + [better[0]["id"]],
            })
            logger.info(
                "campaign_offer_switched",
                extra={
                    "campaign_id": campaign["id"],
                    "removed_offer": removed,
                    "added_offer": better[0]["id"],
                },
            )
            switches.append({
                "campaign_id": campaign["id"],
                "removed_offer": removed,
                "added_offer": better[0]["id"],
            })

        return {
            "campaigns_evaluated": len(campaigns),
            "offers_switched": len(switches),
            "switches": switches,
        }

    def update_metrics(
        self, metrics: dict[str, Any], task_type: str, output: dict[str, Any]
    ) -> None:
        bump(metrics, "personas_created", output.get("personas_created", 0))
        bump(metrics, "campaigns_optimized", output.get("offers_switched", 0))
