"""
Pydantic configuration schema for an Afilli deployment.

A single afilli.yaml file conforms to `AfilliConfig`. Secrets are never
stored in the file; each section names the environment variable that
holds its credential.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

class SchedulerConfig(BaseModel):
    """How often the scheduler runs a pass over working agents."""
    interval_seconds: float = Field(
        60.0, description="Delay between the end of one pass and the start of the next"
    )
    run_immediately: bool = True

    @field_validator("interval_seconds")
    @classmethod
    def interval_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("interval_seconds must be positive")
        return v


class LLMConfig(BaseModel):
    """Text / structured generation settings."""
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096
    temperature: float = 0.7
    api_key_env: str = "ANTHROPIC_API_KEY"


class EmailConfig(BaseModel):
    """Outbound email delivery."""
    provider: str = Field("sendgrid", description="sendgrid | mailgun")
    from_email: str = "noreply@afilli.app"
    from_name: str = "Afilli"
    api_key_env: str = "SENDGRID_API_KEY"
    mailgun_domain_env: str = "MAILGUN_DOMAIN"
    track_opens: bool = True
    track_clicks: bool = True

    @field_validator("provider")
    @classmethod
    def provider_must_be_known(cls, v: str) -> str:
        v = v.lower().strip()
        if v not in ("sendgrid", "mailgun"):
            raise ValueError(f"Unsupported email provider: {v}")
        return v


class ScraperConfig(BaseModel):
    """Web search and page extraction."""
    search_url: str = "https://html.duckduckgo.com/html/"
    user_agent: str = (
        "Mozilla/5.0 (compatible; AfilliBot/1.0; +https://afilli.app/bot)"
    )
    timeout_seconds: float = 20.0
    min_buying_intent: int = Field(
        30, ge=0, le=100,
        description="Pages scoring below this are not turned into leads",
    )
    max_content_chars: int = 4000
    request_delay_seconds: float = Field(
        2.0, ge=0, description="Pause between pages during lead discovery"
    )


class AwinConfig(BaseModel):
    api_token_env: str = "AWIN_API_TOKEN"
    publisher_id_env: str = "AWIN_PUBLISHER_ID"
    base_url: str = "https://api.awin.com"


class CJConfig(BaseModel):
    api_key_env: str = "CJ_API_KEY"
    website_id_env: str = "CJ_WEBSITE_ID"
    base_url: str = "https://link-search.api.cj.com"


class ClickBankConfig(BaseModel):
    api_key_env: str = "CLICKBANK_API_KEY"
    vendor_env: str = "CLICKBANK_VENDOR"
    base_url: str = "https://api.clickbank.com"


class AffiliatesConfig(BaseModel):
    """Affiliate network credentials and endpoints."""
    awin: AwinConfig = Field(default_factory=AwinConfig)
    cj: CJConfig = Field(default_factory=CJConfig)
    clickbank: ClickBankConfig = Field(default_factory=ClickBankConfig)
    timeout_seconds: float = 30.0


class EnrichmentConfig(BaseModel):
    """Contact enrichment via Clay."""
    api_key_env: str = "CLAY_API_KEY"
    base_url: str = "https://api.clay.com/v1"
    enrichments: list[str] = Field(
        default_factory=lambda: [
            "email", "phone", "linkedin", "twitter",
            "company_info", "job_title", "location", "technologies",
        ]
    )
    timeout_seconds: float = 30.0


class DatabaseConfig(BaseModel):
    url_env: str = "SUPABASE_URL"
    key_env: str = "SUPABASE_SERVICE_KEY"


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------

class AfilliConfig(BaseModel):
    """Top-level settings for the agent fleet."""
    environment: Optional[str] = None
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    email: EmailConfig = Field(default_factory=EmailConfig)
    scraper: ScraperConfig = Field(default_factory=ScraperConfig)
    affiliates: AffiliatesConfig = Field(default_factory=AffiliatesConfig)
    enrichment: EnrichmentConfig = Field(default_factory=EnrichmentConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
