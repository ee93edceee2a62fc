"""
Tests for the Optimizer executor.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from afilli.agents.contracts import OfferOptimizationResult
from afilli.agents.implementations.optimizer import OptimizerExecutor
from afilli.testing.memory_db import InMemoryDB
from afilli.testing.mock_collaborators import build_mock_collaborators


@pytest.fixture
def db():
    return InMemoryDB()


@pytest.fixture
def agent(db):
    persona = db.create_persona({
        "name": "Home Cook",
        "description": "Cooks every night",
        "web_insights": {"source": "seed"},
    })
    return db.create_agent({
        "name": "Tuner",
        "type": "optimizer",
        "status": "working",
        "persona_id": persona["id"],
    })


@pytest.fixture
def offers(db):
    return [
        db.seed("offers", name="Knives", merchant="Edge", cps=40, categories=["kitchen"], meta={"keep": 1}),
        db.seed("offers", name="Pans", merchant="Iron", cps=60, categories=["kitchen"]),
    ]


def _task(db, agent, task_type):
    return db.create_task({"agent_id": agent["id"], "type": task_type})


class TestOfferOptimization:

    @pytest.mark.asyncio
    async def test_rescores_offers_and_merges_meta(self, db, agent, offers):
        db.create_leads([
            {"persona_id": agent["persona_id"], "interests": ["knives", "pans"]},
            {"persona_id": agent["persona_id"], "interests": ["knives"]},
        ])
        collaborators = build_mock_collaborators()
        task = _task(db, agent, "offer_optimization")

        output = await OptimizerExecutor(db, collaborators).execute(agent["id"], task["id"])

        assert output["offers_optimized"] == 2
        assert len(output["top_recommendations"]) == 2
        knives = db.list_offers(ids=[offers[0]["id"]])[0]
        assert knives["cps"] == 75
        assert knives["meta"]["keep"] == 1
        assert knives["meta"]["optimization_reasoning"] == "matches top interests"
        assert knives["meta"]["last_optimized"]
        assert "- knives (2 mentions)" in collaborators.generator.prompts[0]
        assert db.get_agent(agent["id"])["metrics"]["optimizations_run"] == 1

    @pytest.mark.asyncio
    async def test_unknown_offer_ids_are_skipped(self, db, agent, offers):
        collaborators = build_mock_collaborators()
        collaborators.generator = MagicMock()
        collaborators.generator.generate_object = AsyncMock(
            return_value=OfferOptimizationResult(recommendations=[
                {"offer_id": offers[1]["id"], "score": 90},
                {"offer_id": "made-up", "score": 99},
            ])
        )
        task = _task(db, agent, "offer_optimization")

        output = await OptimizerExecutor(db, collaborators).execute(agent["id"], task["id"])

        assert output["offers_optimized"] == 1
        assert output["top_recommendations"][0]["offer_id"] == offers[1]["id"]
        assert db.list_offers(ids=[offers[0]["id"]])[0]["cps"] == 40


class TestSeoOptimization:

    @pytest.mark.asyncio
    async def test_stores_guidance_on_persona(self, db, agent):
        collaborators = build_mock_collaborators()
        task = _task(db, agent, "seo_optimization")

        output = await OptimizerExecutor(db, collaborators).execute(agent["id"], task["id"])

        persona = db.get_persona(agent["persona_id"])
        assert output["persona_id"] == persona["id"]
        assert persona["web_insights"]["seo_optimization"] == output["seo_recommendations"]
        assert persona["web_insights"]["source"] == "seed"
        assert persona["web_insights"]["last_optimized"]
