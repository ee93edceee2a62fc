"""
Optimizer: keeps offer scores and persona SEO guidance current.

Alternates (via the task generator) between re-scoring offers against
what the persona's recent leads care about and drafting AI-search SEO
guidance for the persona.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from typing import Any

from afilli.agents.base import TaskContext, TaskExecutor, bump, task_handler
from afilli.agents.contracts import OfferOptimizationResult
from afilli.agents.registry import register_executor
from afilli.agents.types import AgentType, TaskType
from afilli.integrations.supabase_client import utcnow_iso

logger = logging.getLogger(__name__)

OFFER_POOL_SIZE = 50
OFFERS_IN_PROMPT = 20
RECENT_LEADS = 20
TOP_INTERESTS = 10

OFFER_MATCH_PROMPT = """Analyze these offers and match them to current customer interests:

Top Customer Interests:
{interests}

Available Offers:
{offers}

Rank the offers by relevance to current customer interests. Provide a score (0-100) and brief reasoning for each. Use the offer ID exactly as given."""

SEO_SYSTEM = (
    "You are an SEO expert specializing in optimizing content for AI "
    "search engines like ChatGPT."
)

SEO_PROMPT = """Generate SEO optimization recommendations for affiliate offers targeting this persona:

Persona: {name}
Description: {description}
Signals: {signals}

Provide:
1. Keywords that would trigger recommendations in ChatGPT
2. Content topics to create that would rank well
3. Question patterns users would ask that should lead to these offers
4. Metadata and descriptions that would improve discoverability
5. Strategies to appear as top results in AI-powered searches

Focus on making offers the top recommendation when users search for related products in ChatGPT or similar AI assistants."""


@register_executor(AgentType.OPTIMIZER)
class OptimizerExecutor(TaskExecutor):
    requires_persona = True

    @task_handler(TaskType.OFFER_OPTIMIZATION)
    async def offer_optimization(self, ctx: TaskContext) -> dict[str, Any]:
        persona = ctx.require_persona()
        offers = self.db.list_offers(order_by="cps", descending=True, limit=OFFER_POOL_SIZE)
        leads = self.db.list_leads(persona["id"], limit=RECENT_LEADS)

        interest_counts = Counter(
            interest for lead in leads for interest in lead.get("interests") or []
        )
        prompt = OFFER_MATCH_PROMPT.format(
            interests="\n".join(
                f"- {interest} ({count} mentions)"
                for interest, count in interest_counts.most_common(TOP_INTERESTS)
            ),
            offers="\n".join(
                f"ID: {o['id']}, Name: {o.get('name')}, Merchant: {o.get('merchant')}, "
                f"Categories: {', '.join(o.get('categories') or [])}"
                for o in offers[:OFFERS_IN_PROMPT]
            ),
        )
        result = await self.services.generator.generate_object(prompt, OfferOptimizationResult)

        known = {o["id"]: o for o in offers}
        applied = []
        for rec in result.recommendations:
            offer = known.get(rec.offer_id)
            if offer is None:
                logger.warning("optimizer_unknown_offer", extra={"offer_id": rec.offer_id})
                continue
            self.db.update_offer(rec.offer_id, {
                "cps": rec.score,
                "meta": {
                    **(offer.get("meta") or {}),
                    "last_optimized": utcnow_iso(),
                    "optimization_reasoning": rec.reasoning,
                },
            })
            applied.append(rec)

        return {
            "offers_optimized": len(applied),
            "top_recommendations": [rec.model_dump() for rec in applied[:5]],
        }

    @task_handler(TaskType.SEO_OPTIMIZATION)
    async def seo_optimization(self, ctx: TaskContext) -> dict[str, Any]:
        persona = ctx.require_persona()
        text = await self.services.generator.generate_text(
            SEO_PROMPT.format(
                name=persona.get("name", ""),
                description=persona.get("description", ""),
                signals=json.dumps(persona.get("signals") or []),
            ),
            system=SEO_SYSTEM,
        )
        self.db.update_persona(persona["id"], {
            "web_insights": {
                **(persona.get("web_insights") or {}),
                "seo_optimization": text,
                "last_optimized": utcnow_iso(),
            },
        })
        return {"persona_id": persona["id"], "seo_recommendations": text}

    def update_metrics(
        self, metrics: dict[str, Any], task_type: str, output: dict[str, Any]
    ) -> None:
        bump(metrics, "optimizations_run")
