"""
DealFinder: keeps the offer catalog fresh.

offer_sync pulls from AWIN, CJ and ClickBank. A failing network is
recorded in the output's `errors` list ("<SOURCE>: <message>") and the
other networks still sync; the task only fails for problems outside the
fetchers. offer_scoring asks the LLM to re-score the least recently
updated offers.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any

from afilli.agents.base import TaskContext, TaskExecutor, bump, task_handler
from afilli.agents.contracts import DealFinderConfig, OfferScoringResult
from afilli.agents.registry import register_executor
from afilli.agents.types import AgentType, TaskType
from afilli.integrations.supabase_client import utcnow_iso

logger = logging.getLogger(__name__)

SCORING_POOL_SIZE = 100
OFFERS_IN_PROMPT = 20

OFFER_SCORING_PROMPT = """Analyze these affiliate offers and provide updated Conversion Potential Scores (CPS).

Consider:
1. Payout amounts and commission rates
2. Cookie window length (longer is better)
3. EPC (Earnings Per Click) if available
4. Category relevance and market demand
5. Merchant reputation

Offers to score:
{offers}

Provide a CPS score (0-100) where:
- 0-30: Poor offer, consider removing
- 31-60: Average offer, keep but don't prioritize
- 61-80: Good offer, actively promote
- 81-100: Excellent offer, prioritize heavily

Also recommend an action: keep, remove, or promote. Use the offer ID exactly as given."""


def _describe_offer(offer: dict[str, Any]) -> str:
    return (
        f"ID: {offer['id']}\n"
        f"Name: {offer.get('name')}\n"
        f"Merchant: {offer.get('merchant')}\n"
        f"Payout: {offer.get('payout')}\n"
        f"EPC: {offer.get('epc') or 'N/A'}\n"
        f"Cookie Window: {offer.get('cookie_window')} days\n"
        f"Categories: {', '.join(offer.get('categories') or [])}\n"
        f"Current CPS: {offer.get('cps')}"
    )


@register_executor(AgentType.DEAL_FINDER)
class DealFinderExecutor(TaskExecutor):
    config_model = DealFinderConfig

    def _sources(self) -> list[tuple[str, Any]]:
        return [
            ("AWIN", self.services.awin),
            ("CJ", self.services.cj),
            ("ClickBank", self.services.clickbank),
        ]

    @task_handler(TaskType.OFFER_SYNC)
    async def offer_sync(self, ctx: TaskContext) -> dict[str, Any]:
        config: DealFinderConfig = ctx.config  # type: ignore[assignment]
        fetched: list[dict[str, Any]] = []
        errors: list[str] = []

        for label, client in self._sources():
            try:
                fetched.extend(await client.fetch_offers())
            except Exception as e:
                errors.append(f"{label}: {e}")
                logger.warning(
                    "offer_source_failed",
                    extra={"source": label, "error": str(e)[:200]},
                )

        saved = 0
        for offer in fetched:
            if (offer.get("cps") or 0) < config.min_cps_score:
                continue
            self.db.upsert_offer({
                **offer,
                "source_id": offer.get("source_id") or offer.get("name"),
            })
            saved += 1

        per_source = Counter(o.get("source") for o in fetched)
        output: dict[str, Any] = {
            "total_fetched": len(fetched),
            "saved_offers": saved,
            "min_score_threshold": config.min_cps_score,
            "sources": {
                "awin": per_source.get("awin", 0),
                "cj": per_source.get("cj", 0),
                "clickbank": per_source.get("clickbank", 0),
            },
        }
        if errors:
            output["errors"] = errors
        return output

    @task_handler(TaskType.OFFER_SCORING)
    async def offer_scoring(self, ctx: TaskContext) -> dict[str, Any]:
        offers = self.db.list_offers(
            order_by="updated_at", descending=False, limit=SCORING_POOL_SIZE
        )
        prompt = OFFER_SCORING_PROMPT.format(
            offers="\n---\n".join(_describe_offer(o) for o in offers[:OFFERS_IN_PROMPT])
        )
        result = await self.services.generator.generate_object(prompt, OfferScoringResult)

        known = {o["id"]: o for o in offers}
        scored = []
        for score in result.scores:
            offer = known.get(score.offer_id)
            if offer is None:
                logger.warning("offer_scoring_unknown_offer", extra={"offer_id": score.offer_id})
                continue
            self.db.update_offer(score.offer_id, {
                "cps": score.new_cps,
                "meta": {
                    **(offer.get("meta") or {}),
                    "last_scored_at": utcnow_iso(),
                    "scoring_reasoning": score.reasoning,
                    "recommended_action": score.recommend_action,
                },
            })
            scored.append(score)

        actions = Counter(s.recommend_action for s in scored)
        return {
            "offers_scored": len(scored),
            "average_score": (
                round(sum(s.new_cps for s in scored) / len(scored), 2) if scored else 0.0
            ),
            "recommendations": {
                "keep": actions.get("keep", 0),
                "remove": actions.get("remove", 0),
                "promote": actions.get("promote", 0),
            },
        }

    def update_metrics(
        self, metrics: dict[str, Any], task_type: str, output: dict[str, Any]
    ) -> None:
        if task_type == TaskType.OFFER_SYNC:
            bump(metrics, "offers_synced", output.get("saved_offers", 0))
            metrics["last_sync_at"] = utcnow_iso()
