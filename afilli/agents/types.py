"""
Closed vocabularies for agents and tasks.

Agent archetypes, their statuses, the sixteen task types and task
statuses. The stored values are the lowercase strings; every enum is a
`str` subclass so records and enum members compare equal.
"""

from __future__ import annotations

from enum import Enum


class AgentType(str, Enum):
    RESEARCHER = "researcher"
    OUTREACH = "outreach"
    OPTIMIZER = "optimizer"
    ORCHESTRATOR = "orchestrator"  # reserved, no executor
    DEAL_FINDER = "deal_finder"
    PERSONA_WRITER = "persona_writer"
    LIST_BUILDER = "list_builder"
    MARKETING_AGENT = "marketing_agent"


class AgentStatus(str, Enum):
    IDLE = "idle"
    WORKING = "working"
    PAUSED = "paused"
    ERROR = "error"


class TaskType(str, Enum):
    WEB_SEARCH = "web_search"
    LEAD_DISCOVERY = "lead_discovery"
    CONTENT_ANALYSIS = "content_analysis"
    OUTREACH_GENERATION = "outreach_generation"
    OFFER_OPTIMIZATION = "offer_optimization"
    SEO_OPTIMIZATION = "seo_optimization"
    OFFER_SYNC = "offer_sync"
    OFFER_SCORING = "offer_scoring"
    PERSONA_GENERATION = "persona_generation"
    CAMPAIGN_MONITORING = "campaign_monitoring"
    OFFER_SWITCHING = "offer_switching"
    LEAD_LIST_BUILDING = "lead_list_building"
    LEAD_ENRICHMENT = "lead_enrichment"
    BUYING_SIGNAL_ANALYSIS = "buying_signal_analysis"
    CAMPAIGN_CREATION = "campaign_creation"
    CAMPAIGN_LAUNCH = "campaign_launch"


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class LeadStatus(str, Enum):
    DISCOVERED = "discovered"
    CONTACTED = "contacted"


class CampaignStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


# Task types each archetype can execute.
ARCHETYPE_TASK_TYPES: dict[AgentType, tuple[TaskType, ...]] = {
    AgentType.RESEARCHER: (
        TaskType.WEB_SEARCH,
        TaskType.LEAD_DISCOVERY,
        TaskType.CONTENT_ANALYSIS,
    ),
    AgentType.OUTREACH: (TaskType.OUTREACH_GENERATION,),
    AgentType.OPTIMIZER: (
        TaskType.OFFER_OPTIMIZATION,
        TaskType.SEO_OPTIMIZATION,
    ),
    AgentType.DEAL_FINDER: (TaskType.OFFER_SYNC, TaskType.OFFER_SCORING),
    AgentType.PERSONA_WRITER: (
        TaskType.PERSONA_GENERATION,
        TaskType.CAMPAIGN_MONITORING,
        TaskType.OFFER_SWITCHING,
    ),
    AgentType.LIST_BUILDER: (
        TaskType.LEAD_LIST_BUILDING,
        TaskType.LEAD_ENRICHMENT,
    ),
    AgentType.MARKETING_AGENT: (
        TaskType.BUYING_SIGNAL_ANALYSIS,
        TaskType.CAMPAIGN_CREATION,
        TaskType.CAMPAIGN_LAUNCH,
    ),
}


def task_label(task_type: str) -> str:
    """Human-readable label for a task type: "offer_sync" -> "Offer Sync"."""
    value = task_type.value if isinstance(task_type, Enum) else str(task_type)
    return " ".join(word.capitalize() for word in value.split("_"))
