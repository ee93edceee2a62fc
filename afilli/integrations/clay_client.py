"""
Clay enrichment API client.

Given whatever is known about a lead (name, company, website, email),
returns contact and firmographic fields with a confidence score.

API Reference: https://docs.clay.com
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from afilli.config.loader import resolve_secret
from afilli.config.schema import EnrichmentConfig
from afilli.exceptions import DependencyError

logger = logging.getLogger(__name__)


class EnrichmentResult(BaseModel):
    """Fields Clay may return for a person; every field is optional."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    email: Optional[str] = None
    phone: Optional[str] = None
    linkedin_url: Optional[str] = Field(None, alias="linkedinUrl")
    twitter_url: Optional[str] = Field(None, alias="twitterUrl")
    company_name: Optional[str] = Field(None, alias="companyName")
    company_website: Optional[str] = Field(None, alias="companyWebsite")
    company_size: Optional[str] = Field(None, alias="companySize")
    company_industry: Optional[str] = Field(None, alias="companyIndustry")
    job_title: Optional[str] = Field(None, alias="jobTitle")
    location: Optional[str] = None
    technologies: list[str] = Field(default_factory=list)
    confidence: float = 0.0


class ClayClient:
    """Clay enrichment client."""

    def __init__(self, config: Optional[EnrichmentConfig] = None):
        self.config = config or EnrichmentConfig()

    async def enrich_lead(
        self,
        name: Optional[str] = None,
        company: Optional[str] = None,
        website: Optional[str] = None,
        email: Optional[str] = None,
        linkedin_url: Optional[str] = None,
    ) -> EnrichmentResult:
        """
        Enrich one person.

        Raises:
            DependencyError: credentials missing or rejected, HTTP failure,
                or the enrichment job did not complete.
        """
        api_key = resolve_secret(self.config.api_key_env)
        if not api_key:
            raise DependencyError(
                f"Clay API credentials not configured. Set {self.config.api_key_env}.",
                service="clay",
            )

        payload = {
            "input": {
                "name": name,
                "company": company,
                "website": website,
                "email": email,
                "linkedin_url": linkedin_url,
            },
            "enrichments": self.config.enrichments,
        }

        try:
            async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
                response = await client.post(
                    f"{self.config.base_url}/enrichment",
                    headers={
                        "Authorization": f"Bearer {api_key}",
                        "Content-Type": "application/json",
                        "Accept": "application/json",
                    },
                    json=payload,
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            message = (
                "Invalid Clay API credentials" if status in (401, 403)
                else f"Clay API error: {status}"
            )
            raise DependencyError(message, service="clay", status_code=status) from e
        except httpx.HTTPError as e:
            raise DependencyError(f"Clay request failed: {e}", service="clay") from e

        data = response.json().get("data") or {}
        if data.get("status") != "completed":
            raise DependencyError(
                "Clay enrichment failed or is still processing",
                service="clay",
                details={"status": data.get("status")},
            )
        return EnrichmentResult.model_validate(data.get("enrichment") or {})
