"""
Wiring for a running fleet: record store, collaborators, orchestrator.

build_runtime() returns live Supabase/Anthropic/httpx-backed components,
or in-memory store + offline collaborators when mock=True.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from afilli.agents.base import Collaborators
from afilli.agents.orchestrator import AgentOrchestrator
from afilli.agents.service import AgentService
from afilli.agents.types import AgentType
from afilli.config.loader import resolve_secret
from afilli.config.schema import AfilliConfig

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    db: Any
    collaborators: Collaborators
    orchestrator: AgentOrchestrator
    service: AgentService


def build_collaborators(config: AfilliConfig, db: Any) -> Collaborators:
    """Live collaborators. Missing credentials surface when a call is made."""
    from anthropic import AsyncAnthropic

    from afilli.integrations.awin_client import AwinClient
    from afilli.integrations.cj_client import CJClient
    from afilli.integrations.clay_client import ClayClient
    from afilli.integrations.clickbank_client import ClickBankClient
    from afilli.integrations.web_scraper import WebScraper
    from afilli.llm.generator import TextGenerator
    from afilli.outreach.email_engine import EmailEngine

    generator = TextGenerator(
        AsyncAnthropic(api_key=resolve_secret(config.llm.api_key_env)),
        config.llm,
    )
    timeout = config.affiliates.timeout_seconds
    return Collaborators(
        generator=generator,
        scraper=WebScraper(generator, config.scraper),
        email=EmailEngine(db, config.email),
        awin=AwinClient(config.affiliates.awin, timeout=timeout),
        cj=CJClient(config.affiliates.cj, timeout=timeout),
        clickbank=ClickBankClient(config.affiliates.clickbank, timeout=timeout),
        clay=ClayClient(config.enrichment),
    )


def build_runtime(config: AfilliConfig, mock: bool = False) -> Runtime:
    if mock:
        from afilli.testing.memory_db import InMemoryDB
        from afilli.testing.mock_collaborators import build_mock_collaborators

        db: Any = InMemoryDB()
        collaborators = build_mock_collaborators()
        logger.info("runtime_mock_mode")
    else:
        from afilli.integrations.supabase_client import AfilliDB

        db = AfilliDB(url_env=config.database.url_env, key_env=config.database.key_env)
        collaborators = build_collaborators(config, db)

    orchestrator = AgentOrchestrator(db, collaborators)
    return Runtime(db, collaborators, orchestrator, AgentService(db, orchestrator))


def seed_demo_fleet(runtime: Runtime) -> list[dict[str, Any]]:
    """Create one persona and one working agent per archetype (mock runs)."""
    persona = runtime.db.create_persona({
        "name": "Freelance Finance Seeker",
        "description": "Solo professionals looking for simpler bookkeeping.",
        "signals": [{"signal": "searches invoicing tools", "strength": "strong"}],
        "channels": ["email", "seo"],
        "search_keywords": ["invoicing", "bookkeeping", "freelance taxes"],
        "web_insights": {},
    })
    agents = []
    for agent_type in AgentType:
        if agent_type is AgentType.ORCHESTRATOR:
            continue
        agent = runtime.service.create_agent({
            "name": agent_type.value.replace("_", " ").title(),
            "type": agent_type,
            "persona_id": persona["id"],
        })
        agents.append(runtime.service.start_agent(agent["id"]))
    return agents
