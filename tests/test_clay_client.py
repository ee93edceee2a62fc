"""
Tests for the Clay enrichment client.

HTTP is served by an httpx.MockTransport so no request leaves the process.
"""

from __future__ import annotations

import json
import os
from unittest.mock import patch

import httpx
import pytest

from afilli.exceptions import DependencyError
from afilli.integrations.clay_client import ClayClient, EnrichmentResult

_RealAsyncClient = httpx.AsyncClient


def _serve(handler):
    """Patch AsyncClient so every client built by the module uses `handler`."""
    def factory(*args, **kwargs):
        return _RealAsyncClient(*args, transport=httpx.MockTransport(handler), **kwargs)
    return patch("afilli.integrations.clay_client.httpx.AsyncClient", factory)


@pytest.fixture
def credentials():
    with patch.dict(os.environ, {"CLAY_API_KEY": "clay-key"}):
        yield


class TestClayClient:

    @pytest.mark.asyncio
    async def test_missing_credentials(self):
        with patch.dict(os.environ, {"CLAY_API_KEY": ""}):
            with pytest.raises(DependencyError) as exc_info:
                await ClayClient().enrich_lead(name="Ann")
        assert exc_info.value.service == "clay"

    @pytest.mark.asyncio
    async def test_completed_enrichment(self, credentials):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"data": {
                "status": "completed",
                "enrichment": {
                    "email": "ann@acme.example.com",
                    "companyName": "Acme",
                    "jobTitle": "Founder",
                    "confidence": 0.9,
                },
            }})

        with _serve(handler):
            result = await ClayClient().enrich_lead(name="Ann", company="Acme")

        assert isinstance(result, EnrichmentResult)
        assert result.email == "ann@acme.example.com"
        assert result.company_name == "Acme"
        assert result.job_title == "Founder"
        assert result.confidence == 0.9
        assert seen["auth"] == "Bearer clay-key"
        assert seen["body"]["input"]["company"] == "Acme"
        assert "email" in seen["body"]["enrichments"]

    @pytest.mark.asyncio
    async def test_pending_job_is_an_error(self, credentials):
        def handler(request):
            return httpx.Response(200, json={"data": {"status": "processing"}})

        with _serve(handler):
            with pytest.raises(DependencyError) as exc_info:
                await ClayClient().enrich_lead(email="ann@x.example.com")
        assert exc_info.value.details["status"] == "processing"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status, message", [
        (401, "Invalid Clay API credentials"),
        (500, "Clay API error: 500"),
    ])
    async def test_http_errors(self, credentials, status, message):
        def handler(request):
            return httpx.Response(status, json={})

        with _serve(handler):
            with pytest.raises(DependencyError) as exc_info:
                await ClayClient().enrich_lead(name="Ann")
        assert str(exc_info.value) == message
        assert exc_info.value.status_code == status
