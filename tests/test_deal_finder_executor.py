"""
Tests for the DealFinder executor: multi-network sync and LLM re-scoring.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from afilli.agents.contracts import OfferScoringResult
from afilli.agents.implementations.deal_finder import DealFinderExecutor
from afilli.exceptions import DependencyError
from afilli.testing.memory_db import InMemoryDB
from afilli.testing.mock_collaborators import build_mock_collaborators


@pytest.fixture
def db():
    return InMemoryDB()


@pytest.fixture
def collaborators():
    return build_mock_collaborators()


def _agent(db, config=None):
    return db.create_agent({
        "name": "Deals",
        "type": "deal_finder",
        "status": "working",
        "config": config or {},
    })


async def _run(db, collaborators, agent, task_type):
    task = db.create_task({"agent_id": agent["id"], "type": task_type})
    return await DealFinderExecutor(db, collaborators).execute(agent["id"], task["id"])


class TestOfferSync:

    @pytest.mark.asyncio
    async def test_syncs_all_networks(self, db, collaborators):
        agent = _agent(db)

        output = await _run(db, collaborators, agent, "offer_sync")

        assert output == {
            "total_fetched": 4,
            "saved_offers": 3,
            "min_score_threshold": 50,
            "sources": {"awin": 1, "cj": 2, "clickbank": 1},
        }
        assert sorted(o["name"] for o in db.rows("offers")) == [
            "12 Week Fit Plan", "Ledgerly Bookkeeping", "Trailhead Outdoor Gear",
        ]
        metrics = db.get_agent(agent["id"])["metrics"]
        assert metrics["offers_synced"] == 3
        assert metrics["last_sync_at"]

    @pytest.mark.asyncio
    async def test_configured_threshold(self, db, collaborators):
        agent = _agent(db, {"minCpsScore": 70})

        output = await _run(db, collaborators, agent, "offer_sync")

        assert output["saved_offers"] == 2
        assert output["min_score_threshold"] == 70

    @pytest.mark.asyncio
    async def test_one_failing_network_is_reported(self, db, collaborators):
        collaborators.awin = MagicMock()
        collaborators.awin.fetch_offers = AsyncMock(
            side_effect=DependencyError("AWIN API error: 500", service="awin", status_code=500)
        )
        agent = _agent(db)

        output = await _run(db, collaborators, agent, "offer_sync")

        assert output["errors"] == ["AWIN: AWIN API error: 500"]
        assert output["total_fetched"] == 3
        assert output["saved_offers"] == 2
        assert output["sources"]["awin"] == 0
        assert db.get_agent(agent["id"])["metrics"]["offers_synced"] == 2

    @pytest.mark.asyncio
    async def test_resync_updates_in_place(self, db, collaborators):
        agent = _agent(db)

        await _run(db, collaborators, agent, "offer_sync")
        await _run(db, collaborators, agent, "offer_sync")

        assert len(db.rows("offers")) == 3
        assert db.get_agent(agent["id"])["metrics"]["offers_synced"] == 6


class TestOfferScoring:

    @pytest.mark.asyncio
    async def test_rescoring_with_mock_generator(self, db, collaborators):
        agent = _agent(db)
        first = db.seed("offers", name="A", merchant="A", cps=40, meta={"origin": "cj"})
        db.seed("offers", name="B", merchant="B", cps=55)

        output = await _run(db, collaborators, agent, "offer_scoring")

        assert output == {
            "offers_scored": 2,
            "average_score": 65.0,
            "recommendations": {"keep": 2, "remove": 0, "promote": 0},
        }
        stored = db.list_offers(ids=[first["id"]])[0]
        assert stored["cps"] == 65
        assert stored["meta"]["origin"] == "cj"
        assert stored["meta"]["recommended_action"] == "keep"
        assert stored["meta"]["scoring_reasoning"] == "solid payout"
        assert "offers_synced" not in db.get_agent(agent["id"])["metrics"]

    @pytest.mark.asyncio
    async def test_unknown_ids_are_ignored(self, db, collaborators):
        agent = _agent(db)
        a = db.seed("offers", name="A", cps=40)
        b = db.seed("offers", name="B", cps=55)
        collaborators.generator = MagicMock()
        collaborators.generator.generate_object = AsyncMock(return_value=OfferScoringResult(scores=[
            {"offer_id": a["id"], "new_cps": 90, "recommend_action": "promote"},
            {"offer_id": b["id"], "new_cps": 20, "recommend_action": "remove"},
            {"offer_id": "ghost", "new_cps": 50},
        ]))

        output = await _run(db, collaborators, agent, "offer_scoring")

        assert output["offers_scored"] == 2
        assert output["average_score"] == 55.0
        assert output["recommendations"] == {"keep": 0, "remove": 1, "promote": 1}

    @pytest.mark.asyncio
    async def test_no_offers(self, db, collaborators):
        agent = _agent(db)

        output = await _run(db, collaborators, agent, "offer_scoring")

        assert output["offers_scored"] == 0
        assert output["average_score"] == 0.0
