"""
Outreach: writes and sends one personalized email per task.

A send that fails does not fail the task: the output records
email_sent=False plus the provider error, and the lead keeps its
"discovered" status so it is picked up again later.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from afilli.agents.base import TaskContext, TaskExecutor, bump, task_handler
from afilli.agents.contracts import OutreachGenerationInput
from afilli.agents.registry import register_executor
from afilli.agents.types import AgentType, LeadStatus, TaskType
from afilli.exceptions import PreconditionError, RecordNotFoundError
from afilli.integrations.supabase_client import utcnow_iso

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "Personalized Recommendation"
MAX_OFFERS_PER_EMAIL = 3

_SUBJECT_RE = re.compile(r"Subject:\s*(.+?)(?:\n|$)", re.IGNORECASE)

COPYWRITER_SYSTEM = (
    "You are an expert sales copywriter specializing in personalized "
    "outreach that converts."
)

OUTREACH_PROMPT = """Create a highly personalized outreach message for this lead:

Lead Information:
- Company: {company}
- Interests: {interests}
- Pain Points: {pain_points}
- Source: {source_url}

Persona Context:
- {persona_name}: {persona_description}

Recommended Offers:
{offers}

Create an email that:
1. References their specific interests and pain points
2. Provides genuine value upfront
3. Naturally introduces the most relevant offer
4. Has a clear, low-friction call-to-action
5. Feels personal, not templated

Format as:
Subject: [subject line]

[email body in HTML format]"""


def split_subject(text: str) -> tuple[str, str]:
    """Split generated copy into (subject, body)."""
    match = _SUBJECT_RE.search(text)
    subject = match.group(1).strip() if match else DEFAULT_SUBJECT
    body = _SUBJECT_RE.sub("", text, count=1).strip()
    return subject, body


@register_executor(AgentType.OUTREACH)
class OutreachExecutor(TaskExecutor):
    requires_persona = True

    @task_handler(TaskType.OUTREACH_GENERATION)
    async def outreach_generation(self, ctx: TaskContext) -> dict[str, Any]:
        persona = ctx.require_persona()
        lead_id = OutreachGenerationInput.model_validate(ctx.input).lead_id

        lead = self.db.get_lead(lead_id)
        if lead is None:
            raise RecordNotFoundError(
                "Lead not found", table="customer_leads", record_id=lead_id
            )
        if not lead.get("email"):
            raise PreconditionError("Lead has no email address")

        offers = self.db.list_offers(
            ids=lead.get("recommended_offers") or [],
            limit=MAX_OFFERS_PER_EMAIL,
        )

        text = await self.services.generator.generate_text(
            OUTREACH_PROMPT.format(
                company=lead.get("company") or "Unknown",
                interests=", ".join(lead.get("interests") or []),
                pain_points=", ".join(lead.get("pain_points") or []),
                source_url=lead.get("source_url") or "",
                persona_name=persona.get("name", ""),
                persona_description=persona.get("description", ""),
                offers="\n".join(
                    f"- {o.get('name')} by {o.get('merchant')}: {o.get('description') or ''}"
                    for o in offers
                ),
            ),
            system=COPYWRITER_SYSTEM,
        )
        subject, body = split_subject(text)

        result = await self.services.email.send_email(
            to_email=lead["email"],
            subject=subject,
            body_html=body,
            lead_id=lead_id,
            to_name=lead.get("name") or "",
        )

        if result.get("success"):
            self.db.update_lead(lead_id, {
                "outreach_attempts": (lead.get("outreach_attempts") or 0) + 1,
                "outreach_status": LeadStatus.CONTACTED.value,
                "last_contacted_at": utcnow_iso(),
            })
        else:
            logger.warning(
                "outreach_email_not_sent",
                extra={"lead_id": lead_id, "error": result.get("error")},
            )

        return {
            "lead_id": lead_id,
            "outreach_content": text,
            "subject": subject,
            "channel": "email",
            "offers_included": [o["id"] for o in offers],
            "email_sent": bool(result.get("success")),
            "email_id": result.get("email_id"),
            "email_error": result.get("error"),
        }

    def update_metrics(
        self, metrics: dict[str, Any], task_type: str, output: dict[str, Any]
    ) -> None:
        bump(metrics, "outreach_generated")
