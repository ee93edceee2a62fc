"""
MarketingAgent: turns behavior data into campaigns and launches them.

Cycle (driven by the task generator):
    buying_signal_analysis -> campaign_creation -> campaign_launch
Any draft campaign for the persona jumps the cycle straight to launch.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any

from afilli.agents.base import TaskContext, TaskExecutor, bump, task_handler
from afilli.agents.contracts import (
    BuyingSignalAnalysis,
    CampaignBrief,
    MarketingAgentConfig,
)
from afilli.agents.implementations.outreach import DEFAULT_SUBJECT
from afilli.agents.registry import register_executor
from afilli.agents.types import AgentType, CampaignStatus, LeadStatus, TaskType
from afilli.exceptions import PreconditionError
from afilli.integrations.supabase_client import utcnow_iso

logger = logging.getLogger(__name__)

EVENTS_WINDOW = timedelta(days=7)
MAX_EVENTS = 500
SESSIONS_IN_PROMPT = 10
OFFERS_PER_CAMPAIGN = 3

SIGNAL_PROMPT = """Analyze user behavior patterns and identify strong buying signals for this persona:

Persona: {name}
Description: {description}

Recent user events show patterns like:
{sessions}

Identify:
1. Strong buying signals that indicate high purchase intent
2. Behavioral patterns that predict conversion
3. Trigger conditions for each signal
4. Recommended marketing actions when signals are detected

Focus on actionable, specific signals that can be programmatically detected."""

CAMPAIGN_PROMPT = """Create a comprehensive marketing campaign for this persona and offers:

Persona: {name}
Description: {description}
Buying Signals: {signals}
Channels: {channels}

Top Offers to Promote:
{offers}

Create a campaign that:
1. Has a compelling name
2. Uses the best channels for this persona (email, twitter, facebook, linkedin, chat, seo)
3. Sets realistic goals (clicks, conversions, revenue)
4. Includes 3-5 email subject line variations for A/B testing
5. Provides detailed email body copy (HTML format, personalized)
6. Creates engaging social media copy
7. Suggests SEO keywords for content marketing"""


def group_sessions(events: list[dict[str, Any]]) -> dict[str, list[dict[str, Any]]]:
    """Group events by session id, keeping first-seen session order."""
    sessions: dict[str, list[dict[str, Any]]] = defaultdict(list)
    for event in events:
        sessions[event.get("session_id") or ""].append(event)
    return dict(sessions)


def _describe_session(session_id: str, events: list[dict[str, Any]]) -> str:
    lines = [f"Session {session_id[:8]}:"]
    lines.extend(
        f"- {e.get('type')}: {json.dumps(e.get('payload') or {})}" for e in events
    )
    return "\n".join(lines)


def variant_label(index: int) -> str:
    """0 -> "a", 1 -> "b", ..."""
    return chr(ord("a") + index)


@register_executor(AgentType.MARKETING_AGENT)
class MarketingAgentExecutor(TaskExecutor):
    config_model = MarketingAgentConfig

    @task_handler(TaskType.BUYING_SIGNAL_ANALYSIS)
    async def buying_signal_analysis(self, ctx: TaskContext) -> dict[str, Any]:
        persona = ctx.require_persona()
        since = (datetime.now(timezone.utc) - EVENTS_WINDOW).isoformat()
        sessions = group_sessions(self.db.list_events(since, limit=MAX_EVENTS))

        analysis = await self.services.generator.generate_object(
            SIGNAL_PROMPT.format(
                name=persona.get("name", ""),
                description=persona.get("description", ""),
                sessions="\n---\n".join(
                    _describe_session(sid, events)
                    for sid, events in list(sessions.items())[:SESSIONS_IN_PROMPT]
                ),
            ),
            BuyingSignalAnalysis,
        )
        signals = [s.model_dump() for s in analysis.buying_signals]

        self.db.update_persona(persona["id"], {
            "signals": signals,
            "web_insights": {
                **(persona.get("web_insights") or {}),
                "buying_signal_analysis": {
                    "analyzed_at": utcnow_iso(),
                    "signals": signals,
                    "recommended_actions": analysis.recommended_actions,
                },
            },
        })
        return {
            "persona_id": persona["id"],
            "signals_identified": len(signals),
            "strong_signals": sum(
                1 for s in analysis.buying_signals if s.strength in ("strong", "very_strong")
            ),
            "recommended_actions": analysis.recommended_actions,
        }

    @task_handler(TaskType.CAMPAIGN_CREATION)
    async def campaign_creation(self, ctx: TaskContext) -> dict[str, Any]:
        persona = ctx.require_persona()
        config: MarketingAgentConfig = ctx.config  # type: ignore[assignment]
        offers = self.db.list_offers(
            min_cps=config.min_offer_score, order_by="cps", limit=OFFERS_PER_CAMPAIGN
        )
        if not offers:
            raise PreconditionError("No suitable offers found for campaign")

        brief = await self.services.generator.generate_object(
            CAMPAIGN_PROMPT.format(
                name=persona.get("name", ""),
                description=persona.get("description", ""),
                signals=json.dumps(persona.get("signals") or []),
                channels=", ".join(persona.get("channels") or []),
                offers="\n".join(
                    f"- {o.get('name')} ({o.get('merchant')})\n"
                    f"  Payout: {o.get('payout')}\n"
                    f"  CPS: {o.get('cps')}\n"
                    f"  Description: {o.get('description') or ''}"
                    for o in offers
                ),
            ),
            CampaignBrief,
        )

        campaign = self.db.create_campaign({
            "name": brief.campaign_name,
            "persona_id": persona["id"],
            "channels": list(brief.channels),
            "offer_ids": [o["id"] for o in offers],
            "goals": brief.goals.model_dump(),
            "status": CampaignStatus.DRAFT.value,
        })
        creatives = [
            self.db.create_creative({
                "campaign_id": campaign["id"],
                "channel": "email",
                "subject": subject,
                "body": brief.email_body,
                "cta_url": offers[0].get("url"),
                "variant": variant_label(i),
            })
            for i, subject in enumerate(brief.email_subject_lines)
        ]

        return {
            "campaign_id": campaign["id"],
            "campaign_name": brief.campaign_name,
            "channels": list(brief.channels),
            "creatives_created": len(creatives),
            "offers": [{"id": o["id"], "name": o.get("name")} for o in offers],
            "seo_keywords": brief.seo_keywords,
            "social_media_copy": brief.social_media_copy,
        }

    @task_handler(TaskType.CAMPAIGN_LAUNCH)
    async def campaign_launch(self, ctx: TaskContext) -> dict[str, Any]:
        config: MarketingAgentConfig = ctx.config  # type: ignore[assignment]
        drafts = self.db.list_campaigns(
            status=CampaignStatus.DRAFT.value,
            persona_id=ctx.agent.get("persona_id"),
            limit=config.max_campaigns_to_launch,
        )

        launched = []
        errors: list[str] = []
        for campaign in drafts:
            leads = self.db.list_leads(
                campaign.get("persona_id"),
                status=LeadStatus.DISCOVERED.value,
                has_email=True,
                limit=config.max_leads_per_campaign,
            )
            if not leads:
                logger.info("campaign_skipped_no_leads", extra={"campaign_id": campaign["id"]})
                continue
            creatives = self.db.list_creatives(campaign["id"], channel="email")
            if not creatives:
                logger.info("campaign_skipped_no_creative", extra={"campaign_id": campaign["id"]})
                continue
            creative = creatives[0]

            sent = 0
            for lead in leads:
                try:
                    result = await self.services.email.send_email(
                        to_email=lead["email"],
                        subject=creative.get("subject") or DEFAULT_SUBJECT,
                        body_html=creative.get("body") or "",
                        lead_id=lead["id"],
                        to_name=lead.get("name") or "",
                    )
                except Exception as e:
                    errors.append(f"Lead {lead['id']}: {e}")
                    logger.warning(
                        "campaign_email_failed",
                        extra={"lead_id": lead["id"], "error": str(e)[:200]},
                    )
                    continue
                if not result.get("success"):
                    continue
                sent += 1
                self.db.update_lead(lead["id"], {
                    "outreach_status": LeadStatus.CONTACTED.value,
                    "outreach_attempts": (lead.get("outreach_attempts") or 0) + 1,
                    "last_contacted_at": utcnow_iso(),
                })

            self.db.update_campaign(campaign["id"], {"status": CampaignStatus.ACTIVE.value})
            launched.append({
                "campaign_id": campaign["id"],
                "campaign_name": campaign.get("name"),
                "emails_sent": sent,
            })

        output: dict[str, Any] = {
            "campaigns_launched": len(launched),
            "total_emails_sent": sum(c["emails_sent"] for c in launched),
            "campaigns": launched,
        }
        if errors:
            output["errors"] = errors
        return output

    def update_metrics(
        self, metrics: dict[str, Any], task_type: str, output: dict[str, Any]
    ) -> None:
        bump(metrics, "campaigns_created", 1 if output.get("campaign_id") else 0)
        bump(metrics, "campaigns_launched", output.get("campaigns_launched", 0))
        bump(metrics, "emails_sent", output.get("total_emails_sent", 0))
