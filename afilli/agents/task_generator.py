"""
Synthesizes an agent's next task when its queue is empty.

One rule per archetype decides the next task type (or that there is
nothing to do) from the record store. Rotations read the agent's
`task_phase` column: the type of the last task this generator created.
The generator writes it whenever it creates a task, so manual tasks do
not disturb a rotation.

Usage:
    generator = TaskGenerator(db)
    task = generator.create_next_task(agent["id"], agent["type"], agent["persona_id"])
    # task is the new pending row, or None when no task was needed
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from afilli.agents.types import (
    AgentType,
    CampaignStatus,
    LeadStatus,
    TaskStatus,
    TaskType,
)
from afilli.exceptions import UnknownAgentTypeError
from afilli.integrations.supabase_client import parse_ts

logger = logging.getLogger(__name__)

RESEARCH_WINDOW = timedelta(hours=24)
MIN_RECENT_LEADS = 10
DISCOVERY_BATCH = 10
SYNC_INTERVAL_HOURS = 6
TARGET_PERSONA_COUNT = 20
ENRICHMENT_BACKLOG = 5


@dataclass
class TaskPlan:
    """What the generator decided, and why."""

    task_type: Optional[TaskType]
    input: dict[str, Any] = field(default_factory=dict)
    reason: str = ""
    facts: dict[str, Any] = field(default_factory=dict)


class TaskGenerator:
    """Decides and persists the next pending task for an agent."""

    def __init__(self, db: Any):
        self.db = db
        self._rules: dict[str, Callable[..., TaskPlan]] = {
            AgentType.RESEARCHER.value: self._researcher,
            AgentType.OUTREACH.value: self._outreach,
            AgentType.OPTIMIZER.value: self._optimizer,
            AgentType.DEAL_FINDER.value: self._deal_finder,
            AgentType.PERSONA_WRITER.value: self._persona_writer,
            AgentType.LIST_BUILDER.value: self._list_builder,
            AgentType.MARKETING_AGENT.value: self._marketing_agent,
        }

    def plan(
        self, agent_id: str, agent_type: str, persona_id: Optional[str]
    ) -> TaskPlan:
        key = getattr(agent_type, "value", agent_type)
        rule = self._rules.get(key)
        if rule is None:
            raise UnknownAgentTypeError(key)
        agent = self.db.get_agent(agent_id) or {}
        return rule(agent_id, persona_id, agent.get("task_phase"))

    def create_next_task(
        self, agent_id: str, agent_type: str, persona_id: Optional[str]
    ) -> Optional[dict[str, Any]]:
        """Persist the next task for the agent. Returns it, or None."""
        plan = self.plan(agent_id, agent_type, persona_id)
        log_extra = {
            "agent_id": agent_id,
            "agent_type": getattr(agent_type, "value", agent_type),
            "reason": plan.reason,
            **plan.facts,
        }

        if plan.task_type is None:
            logger.info("task_not_generated", extra=log_extra)
            return None

        task = self.db.create_task({
            "agent_id": agent_id,
            "type": plan.task_type.value,
            "status": TaskStatus.PENDING.value,
            "input": plan.input,
        })
        self.db.update_agent(agent_id, {"task_phase": plan.task_type.value})
        logger.info(
            "task_generated",
            extra={**log_extra, "task_id": task["id"], "task_type": plan.task_type.value},
        )
        return task

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def _researcher(self, agent_id, persona_id, phase) -> TaskPlan:
        since = (datetime.now(timezone.utc) - RESEARCH_WINDOW).isoformat()
        recent = self.db.count_leads(persona_id, created_since=since)
        facts = {"recent_leads": recent}
        if recent < MIN_RECENT_LEADS:
            return TaskPlan(
                TaskType.LEAD_DISCOVERY,
                {"max_leads": DISCOVERY_BATCH},
                reason="few leads in the last 24h",
                facts=facts,
            )
        return TaskPlan(TaskType.WEB_SEARCH, reason="lead flow healthy", facts=facts)

    def _outreach(self, agent_id, persona_id, phase) -> TaskPlan:
        leads = self.db.list_leads(
            persona_id,
            status=LeadStatus.DISCOVERED.value,
            has_email=True,
            limit=1,
        )
        if not leads:
            return TaskPlan(None, reason="no contactable leads")
        return TaskPlan(
            TaskType.OUTREACH_GENERATION,
            {"lead_id": leads[0]["id"]},
            reason="newest contactable lead",
            facts={"lead_id": leads[0]["id"]},
        )

    def _optimizer(self, agent_id, persona_id, phase) -> TaskPlan:
        if phase in (None, TaskType.SEO_OPTIMIZATION.value):
            return TaskPlan(TaskType.OFFER_OPTIMIZATION, reason="rotation", facts={"phase": phase})
        return TaskPlan(TaskType.SEO_OPTIMIZATION, reason="rotation", facts={"phase": phase})

    def _deal_finder(self, agent_id, persona_id, phase) -> TaskPlan:
        last_sync = self.db.get_latest_task(
            agent_id,
            task_type=TaskType.OFFER_SYNC.value,
            status=TaskStatus.COMPLETED.value,
        )
        if last_sync is None:
            hours = math.inf
        else:
            elapsed = datetime.now(timezone.utc) - parse_ts(last_sync["created_at"])
            hours = elapsed.total_seconds() / 3600
        facts = {"hours_since_sync": None if math.isinf(hours) else round(hours, 2)}
        if hours > SYNC_INTERVAL_HOURS:
            return TaskPlan(TaskType.OFFER_SYNC, reason="offer catalog stale", facts=facts)
        return TaskPlan(TaskType.OFFER_SCORING, reason="offer catalog fresh", facts=facts)

    def _persona_writer(self, agent_id, persona_id, phase) -> TaskPlan:
        count = self.db.count_personas()
        facts = {"persona_count": count, "phase": phase}
        if count < TARGET_PERSONA_COUNT:
            return TaskPlan(TaskType.PERSONA_GENERATION, reason="too few personas", facts=facts)
        if phase in (None, TaskType.OFFER_SWITCHING.value):
            return TaskPlan(TaskType.CAMPAIGN_MONITORING, reason="rotation", facts=facts)
        if phase == TaskType.CAMPAIGN_MONITORING.value:
            return TaskPlan(TaskType.OFFER_SWITCHING, reason="rotation", facts=facts)
        return TaskPlan(TaskType.PERSONA_GENERATION, reason="rotation", facts=facts)

    def _list_builder(self, agent_id, persona_id, phase) -> TaskPlan:
        if not persona_id:
            return TaskPlan(None, reason="no persona assigned")
        incomplete = self.db.count_leads(persona_id, missing_any=("email", "company"))
        facts = {"incomplete_leads": incomplete, "phase": phase}
        if incomplete > ENRICHMENT_BACKLOG and phase == TaskType.LEAD_LIST_BUILDING.value:
            return TaskPlan(TaskType.LEAD_ENRICHMENT, reason="enrichment backlog", facts=facts)
        return TaskPlan(TaskType.LEAD_LIST_BUILDING, reason="grow lead list", facts=facts)

    def _marketing_agent(self, agent_id, persona_id, phase) -> TaskPlan:
        if not persona_id:
            return TaskPlan(None, reason="no persona assigned")
        drafts = self.db.count_campaigns(status=CampaignStatus.DRAFT.value, persona_id=persona_id)
        facts = {"draft_campaigns": drafts, "phase": phase}
        if drafts > 0:
            return TaskPlan(TaskType.CAMPAIGN_LAUNCH, reason="drafts waiting", facts=facts)
        if phase in (None, TaskType.CAMPAIGN_LAUNCH.value):
            return TaskPlan(TaskType.BUYING_SIGNAL_ANALYSIS, reason="rotation", facts=facts)
        if phase == TaskType.BUYING_SIGNAL_ANALYSIS.value:
            return TaskPlan(TaskType.CAMPAIGN_CREATION, reason="rotation", facts=facts)
        return TaskPlan(TaskType.CAMPAIGN_LAUNCH, reason="rotation", facts=facts)
