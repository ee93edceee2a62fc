"""
Researcher: finds people who look like the agent's persona.

Task types:
- web_search: drafts five search queries from the persona's signals
- lead_discovery: searches the web and stores high-intent pages as leads
- content_analysis: analyzes one URL against the persona
"""

from __future__ import annotations

import json
import logging
from typing import Any

from afilli.agents.base import TaskContext, TaskExecutor, task_handler
from afilli.agents.contracts import ContentAnalysisInput, LeadDiscoveryInput
from afilli.agents.registry import register_executor
from afilli.agents.types import AgentType, TaskType
from afilli.integrations.supabase_client import utcnow_iso

logger = logging.getLogger(__name__)

SEARCH_QUERY_PROMPT = """Generate 5 highly specific search queries to find potential customers for this persona:

Name: {name}
Description: {description}
Signals: {signals}

Focus on queries that would find:
1. People actively looking for solutions
2. Companies with relevant pain points
3. Decision makers in target industries
4. Communities discussing related topics
5. Content indicating buying intent

Return only the queries, one per line."""


def persona_context(persona: dict[str, Any]) -> str:
    return f"{persona.get('name', '')}: {persona.get('description', '')}"


@register_executor(AgentType.RESEARCHER)
class ResearcherExecutor(TaskExecutor):
    requires_persona = True

    @task_handler(TaskType.WEB_SEARCH)
    async def web_search(self, ctx: TaskContext) -> dict[str, Any]:
        persona = ctx.require_persona()
        text = await self.services.generator.generate_text(
            SEARCH_QUERY_PROMPT.format(
                name=persona.get("name", ""),
                description=persona.get("description", ""),
                signals=json.dumps(persona.get("signals") or []),
            )
        )
        queries = [line.strip() for line in text.splitlines() if line.strip()]
        return {"queries": queries, "timestamp": utcnow_iso()}

    @task_handler(TaskType.LEAD_DISCOVERY)
    async def lead_discovery(self, ctx: TaskContext) -> dict[str, Any]:
        persona = ctx.require_persona()
        task_input = LeadDiscoveryInput.model_validate(ctx.input)
        search_query = task_input.search_query or f"{persona['name']} looking for solutions"

        leads = await self.services.scraper.discover_leads(
            search_query,
            max_leads=task_input.max_leads,
            persona_context=persona_context(persona),
        )
        saved = self.db.create_leads(
            [{**lead, "persona_id": persona["id"]} for lead in leads]
        )
        return {
            "leads_discovered": len(saved),
            "lead_ids": [lead["id"] for lead in saved],
            "search_query": search_query,
        }

    @task_handler(TaskType.CONTENT_ANALYSIS)
    async def content_analysis(self, ctx: TaskContext) -> dict[str, Any]:
        persona = ctx.require_persona()
        task_input = ContentAnalysisInput.model_validate(ctx.input)

        page = await self.services.scraper.extract_page_content(task_input.url)
        analysis = await self.services.scraper.analyze_content(
            page["content"], persona_context(persona)
        )
        return {
            "url": task_input.url,
            "analysis": analysis.model_dump(),
            "page_data": {
                "title": page["title"],
                "emails": page["emails"],
                "phones": page["phones"],
            },
        }

    def update_metrics(
        self, metrics: dict[str, Any], task_type: str, output: dict[str, Any]
    ) -> None:
        metrics["last_task_type"] = task_type
