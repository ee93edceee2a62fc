"""
ListBuilder: grows and fills in the persona's lead list.

lead_list_building discovers new leads on the web. lead_enrichment runs
the newest incomplete leads through Clay; one failing lead is recorded as
"Lead <id>: <message>" and does not stop the batch.
"""

from __future__ import annotations

import logging
from typing import Any

from afilli.agents.base import TaskContext, TaskExecutor, bump, task_handler
from afilli.agents.contracts import LeadListBuildingInput, ListBuilderConfig
from afilli.agents.registry import register_executor
from afilli.agents.types import AgentType, LeadStatus, TaskType
from afilli.integrations.supabase_client import utcnow_iso

logger = logging.getLogger(__name__)

ENRICHABLE_FIELDS = ("email", "company", "phone")


def default_list_query(persona: dict[str, Any]) -> str:
    keywords = (persona.get("search_keywords") or [])[:3]
    return " ".join([persona.get("name", ""), *keywords]).strip()


@register_executor(AgentType.LIST_BUILDER)
class ListBuilderExecutor(TaskExecutor):
    config_model = ListBuilderConfig

    @task_handler(TaskType.LEAD_LIST_BUILDING)
    async def lead_list_building(self, ctx: TaskContext) -> dict[str, Any]:
        persona = ctx.require_persona()
        config: ListBuilderConfig = ctx.config  # type: ignore[assignment]
        search_query = (
            LeadListBuildingInput.model_validate(ctx.input).search_query
            or default_list_query(persona)
        )

        leads = await self.services.scraper.discover_leads(
            search_query,
            max_leads=config.max_leads_per_run,
            persona_context=f"{persona.get('name', '')}: {persona.get('description', '')}",
        )
        saved = self.db.create_leads([
            {
                **lead,
                "persona_id": persona["id"],
                "outreach_status": LeadStatus.DISCOVERED.value,
            }
            for lead in leads
        ])
        return {
            "leads_discovered": len(saved),
            "lead_ids": [lead["id"] for lead in saved],
            "search_query": search_query,
            "persona_name": persona.get("name"),
        }

    @task_handler(TaskType.LEAD_ENRICHMENT)
    async def lead_enrichment(self, ctx: TaskContext) -> dict[str, Any]:
        config: ListBuilderConfig = ctx.config  # type: ignore[assignment]
        leads = self.db.list_leads(
            ctx.agent.get("persona_id"),
            missing_any=ENRICHABLE_FIELDS,
            limit=config.max_enrich_per_run,
        )

        enriched: list[str] = []
        errors: list[str] = []
        for lead in leads:
            try:
                data = await self.services.clay.enrich_lead(
                    name=lead.get("name"),
                    company=lead.get("company"),
                    website=lead.get("website"),
                    email=lead.get("email"),
                )
            except Exception as e:
                errors.append(f"Lead {lead['id']}: {e}")
                logger.warning(
                    "lead_enrichment_failed",
                    extra={"lead_id": lead["id"], "error": str(e)[:200]},
                )
                continue

            self.db.update_lead(lead["id"], {
                "email": data.email or lead.get("email"),
                "phone": data.phone or lead.get("phone"),
                "company": data.company_name or lead.get("company"),
                "website": data.company_website or lead.get("website"),
                "metadata": {
                    **(lead.get("metadata") or {}),
                    "enrichment": {
                        "enriched_at": utcnow_iso(),
                        "confidence": data.confidence,
                        "job_title": data.job_title,
                        "location": data.location,
                        "company_size": data.company_size,
                        "company_industry": data.company_industry,
                        "technologies": data.technologies,
                        "linkedin_url": data.linkedin_url,
                        "twitter_url": data.twitter_url,
                    },
                },
            })
            enriched.append(lead["id"])

        output: dict[str, Any] = {
            "leads_enriched": len(enriched),
            "lead_ids": enriched,
            "success_rate": len(enriched) / len(leads) * 100 if leads else 0,
        }
        if errors:
            output["errors"] = errors
        return output

    def update_metrics(
        self, metrics: dict[str, Any], task_type: str, output: dict[str, Any]
    ) -> None:
        bump(metrics, "leads_built", output.get("leads_discovered", 0))
        bump(metrics, "leads_enriched", output.get("leads_enriched", 0))
