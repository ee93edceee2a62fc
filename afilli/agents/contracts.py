"""
Typed payloads for the agent fleet.

Every shape that crosses a boundary is a Pydantic model here:
- task inputs (stored in agent_tasks.input)
- per-archetype agent tunables (stored in agents.config)
- structured LLM replies (validated before anything is written)
- control-surface requests (create / update agent)

Stored records predate this module and use camelCase keys
("maxLeads", "minCpsScore", "offerId"), so every model accepts both the
alias and the field name. Dumps use field names.

Usage:
    from afilli.agents.contracts import LeadDiscoveryInput

    task_input = LeadDiscoveryInput.model_validate(task["input"] or {})
    task_input.max_leads   # 10 unless the task says otherwise
"""

from __future__ import annotations

from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from afilli.agents.types import AgentType


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


def _clamp_score(v: float) -> float:
    return max(0.0, min(100.0, float(v)))


# ─── Task Inputs ──────────────────────────────────────────────────────

class EmptyInput(_Payload):
    """Input for task types that take no parameters."""


class LeadDiscoveryInput(_Payload):
    max_leads: int = Field(10, alias="maxLeads", ge=1)
    search_query: Optional[str] = Field(None, alias="searchQuery")


class ContentAnalysisInput(_Payload):
    url: str


class OutreachGenerationInput(_Payload):
    lead_id: str = Field(..., alias="leadId")


class LeadListBuildingInput(_Payload):
    search_query: Optional[str] = Field(None, alias="searchQuery")


# ─── Agent Tunables ───────────────────────────────────────────────────

class AgentConfig(_Payload):
    """Base for per-archetype tunables. Unknown keys are kept."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class DealFinderConfig(AgentConfig):
    min_cps_score: float = Field(50, alias="minCpsScore")


class PersonaWriterConfig(AgentConfig):
    min_cps_score: float = Field(60, alias="minCpsScore")
    max_personas: int = Field(20, alias="maxPersonas", ge=1)


class ListBuilderConfig(AgentConfig):
    max_leads_per_run: int = Field(20, alias="maxLeadsPerRun", ge=1)
    max_enrich_per_run: int = Field(10, alias="maxEnrichPerRun", ge=1)


class MarketingAgentConfig(AgentConfig):
    min_offer_score: float = Field(70, alias="minOfferScore")
    max_campaigns_to_launch: int = Field(1, alias="maxCampaignsToLaunch", ge=1)
    max_leads_per_campaign: int = Field(50, alias="maxLeadsPerCampaign", ge=1)


# ─── Structured Generation: Offers ────────────────────────────────────

class OfferRecommendation(_Payload):
    offer_id: str = Field(..., alias="offerId")
    score: float
    reasoning: str = ""

    @field_validator("score")
    @classmethod
    def clamp_score(cls, v: float) -> float:
        return _clamp_score(v)


class OfferOptimizationResult(_Payload):
    recommendations: list[OfferRecommendation] = Field(default_factory=list)


class OfferScore(_Payload):
    offer_id: str = Field(..., alias="offerId")
    new_cps: float = Field(..., alias="newCps")
    reasoning: str = ""
    recommend_action: Literal["keep", "remove", "promote"] = Field(
        "keep", alias="recommendAction"
    )

    @field_validator("new_cps")
    @classmethod
    def clamp_cps(cls, v: float) -> float:
        return _clamp_score(v)


class OfferScoringResult(_Payload):
    scores: list[OfferScore] = Field(default_factory=list)


# ─── Structured Generation: Personas ──────────────────────────────────

class PersonaSignal(_Payload):
    signal: str
    strength: Literal["weak", "medium", "strong"] = "medium"


class PersonaProfile(_Payload):
    """A buyer persona derived from one affiliate offer."""

    name: str
    description: str = ""
    hypotheses: list[str] = Field(default_factory=list)
    signals: list[PersonaSignal] = Field(default_factory=list)
    channels: list[str] = Field(default_factory=list)
    audience_size_est: Optional[int] = Field(None, alias="audienceSizeEst")
    clv_est: Optional[float] = Field(None, alias="clvEst")
    search_keywords: list[str] = Field(default_factory=list, alias="searchKeywords")
    target_sites: list[str] = Field(default_factory=list, alias="targetSites")


class BuyingSignal(_Payload):
    signal: str
    strength: Literal["weak", "medium", "strong", "very_strong"] = "medium"
    description: str = ""
    trigger_conditions: list[str] = Field(
        default_factory=list, alias="triggerConditions"
    )


class BuyingSignalAnalysis(_Payload):
    buying_signals: list[BuyingSignal] = Field(
        default_factory=list, alias="buyingSignals"
    )
    recommended_actions: list[str] = Field(
        default_factory=list, alias="recommendedActions"
    )


# ─── Structured Generation: Campaigns ─────────────────────────────────

CampaignChannel = Literal["email", "twitter", "facebook", "linkedin", "chat", "seo"]


class CampaignGoals(_Payload):
    target_clicks: int = Field(0, alias="targetClicks")
    target_conversions: int = Field(0, alias="targetConversions")
    target_revenue: float = Field(0.0, alias="targetRevenue")


class CampaignBrief(_Payload):
    campaign_name: str = Field(..., alias="campaignName")
    channels: list[CampaignChannel] = Field(default_factory=lambda: ["email"])
    goals: CampaignGoals = Field(default_factory=CampaignGoals)
    email_subject_lines: list[str] = Field(
        default_factory=list, alias="emailSubjectLines"
    )
    email_body: str = Field("", alias="emailBody")
    social_media_copy: Union[dict[str, str], str] = Field(
        default_factory=dict, alias="socialMediaCopy"
    )
    seo_keywords: list[str] = Field(default_factory=list, alias="seoKeywords")


# ─── Structured Generation: Web Content ───────────────────────────────

class ContentAnalysis(_Payload):
    """What a page says about its author's needs and purchase intent."""

    main_topics: list[str] = Field(default_factory=list, alias="mainTopics")
    keywords: list[str] = Field(default_factory=list)
    sentiment: Literal["positive", "neutral", "negative"] = "neutral"
    buying_intent: float = Field(0, alias="buyingIntent")
    pain_points: list[str] = Field(default_factory=list, alias="painPoints")
    interests: list[str] = Field(default_factory=list)

    @field_validator("buying_intent")
    @classmethod
    def clamp_intent(cls, v: float) -> float:
        return _clamp_score(v)


# ─── Control Surface ──────────────────────────────────────────────────

class AgentCreate(_Payload):
    name: str = Field(..., min_length=1)
    type: AgentType
    persona_id: Optional[str] = Field(None, alias="personaId")
    config: dict[str, Any] = Field(default_factory=dict)


class AgentUpdate(_Payload):
    """Mutable agent fields. The archetype is fixed at creation."""

    name: Optional[str] = Field(None, min_length=1)
    persona_id: Optional[str] = Field(None, alias="personaId")
    config: Optional[dict[str, Any]] = None
