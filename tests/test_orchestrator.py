"""
Tests for the agent loop, start/stop and the fleet pass.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from afilli.agents.orchestrator import AgentOrchestrator
from afilli.exceptions import RecordNotFoundError
from afilli.testing.memory_db import InMemoryDB
from afilli.testing.mock_collaborators import build_mock_collaborators


@pytest.fixture
def db():
    return InMemoryDB()


@pytest.fixture
def collaborators():
    return build_mock_collaborators()


@pytest.fixture
def orchestrator(db, collaborators):
    return AgentOrchestrator(db, collaborators)


@pytest.fixture
def persona(db):
    return db.create_persona({"name": "Home Cook", "description": "Cooks every night"})


def _agent(db, agent_type, status="working", persona_id=None):
    return db.create_agent({
        "name": agent_type,
        "type": agent_type,
        "status": status,
        "persona_id": persona_id,
    })


class TestRunAgentLoop:

    @pytest.mark.asyncio
    async def test_missing_agent_raises(self, orchestrator):
        with pytest.raises(RecordNotFoundError):
            await orchestrator.run_agent_loop("nope")

    @pytest.mark.asyncio
    async def test_non_working_agent_is_skipped(self, db, orchestrator, persona):
        agent = _agent(db, "optimizer", status="paused", persona_id=persona["id"])
        db.create_task({"agent_id": agent["id"], "type": "seo_optimization"})

        result = await orchestrator.run_agent_loop(agent["id"])

        assert result.action == "skipped"
        assert db.rows("agent_tasks")[0]["status"] == "pending"

    @pytest.mark.asyncio
    async def test_generates_then_executes(self, db, orchestrator, persona):
        agent = _agent(db, "optimizer", persona_id=persona["id"])

        first = await orchestrator.run_agent_loop(agent["id"])
        assert first.action == "generated"
        assert first.task_type == "offer_optimization"
        assert db.get_task(first.task_id)["status"] == "pending"

        second = await orchestrator.run_agent_loop(agent["id"])
        assert second.action == "executed"
        assert second.task_id == first.task_id
        assert db.get_task(first.task_id)["status"] == "completed"

    @pytest.mark.asyncio
    async def test_oldest_pending_task_runs_first(self, db, orchestrator, persona):
        agent = _agent(db, "optimizer", persona_id=persona["id"])
        older = db.create_task({"agent_id": agent["id"], "type": "seo_optimization"})
        db.create_task({"agent_id": agent["id"], "type": "offer_optimization"})

        result = await orchestrator.run_agent_loop(agent["id"])

        assert result.task_id == older["id"]

    @pytest.mark.asyncio
    async def test_current_task_set_during_execution(self, db, collaborators, orchestrator):
        agent = _agent(db, "deal_finder")
        db.create_task({"agent_id": agent["id"], "type": "offer_sync"})
        seen = []

        async def fetch_offers():
            seen.append(db.get_agent(agent["id"])["current_task"])
            return []

        collaborators.awin = MagicMock()
        collaborators.awin.fetch_offers = fetch_offers

        await orchestrator.run_agent_loop(agent["id"])

        assert seen == ["Offer Sync"]
        assert db.get_agent(agent["id"])["current_task"] is None

    @pytest.mark.asyncio
    async def test_task_failure_is_contained(self, db, orchestrator, persona):
        agent = _agent(db, "outreach", persona_id=persona["id"])
        [lead] = db.create_leads([{"persona_id": persona["id"], "email": None}])
        task = db.create_task({
            "agent_id": agent["id"], "type": "outreach_generation", "input": {"leadId": lead["id"]},
        })

        result = await orchestrator.run_agent_loop(agent["id"])

        assert result.action == "failed"
        assert result.error == "Lead has no email address"
        assert db.get_task(task["id"])["status"] == "failed"
        stored = db.get_agent(agent["id"])
        assert stored["status"] == "working"
        assert stored["current_task"] is None

    @pytest.mark.asyncio
    async def test_idle_when_nothing_to_do(self, db, orchestrator, persona):
        agent = _agent(db, "outreach", persona_id=persona["id"])

        result = await orchestrator.run_agent_loop(agent["id"])

        assert result.action == "idle"
        assert db.rows("agent_tasks") == []


class TestStartStop:

    def test_start_sets_working_and_seeds_task(self, db, orchestrator, persona):
        agent = _agent(db, "optimizer", status="idle", persona_id=persona["id"])

        updated = orchestrator.start_agent(agent["id"])

        assert updated["status"] == "working"
        [task] = db.rows("agent_tasks")
        assert task["type"] == "offer_optimization"

    def test_start_twice_does_not_duplicate_tasks(self, db, orchestrator, persona):
        agent = _agent(db, "optimizer", status="idle", persona_id=persona["id"])

        orchestrator.start_agent(agent["id"])
        orchestrator.start_agent(agent["id"])

        assert db.count_tasks(agent["id"]) == 1

    def test_start_without_possible_task(self, db, orchestrator):
        agent = _agent(db, "list_builder", status="idle")

        assert orchestrator.start_agent(agent["id"])["status"] == "working"
        assert db.rows("agent_tasks") == []

    @pytest.mark.asyncio
    async def test_stop_pauses_agent(self, db, orchestrator, persona):
        agent = _agent(db, "optimizer", persona_id=persona["id"])

        assert orchestrator.stop_agent(agent["id"])["status"] == "paused"
        assert (await orchestrator.run_agent_loop(agent["id"])).action == "skipped"

    def test_missing_agent(self, orchestrator):
        with pytest.raises(RecordNotFoundError):
            orchestrator.start_agent("nope")
        with pytest.raises(RecordNotFoundError):
            orchestrator.stop_agent("nope")


class TestRunAllAgents:

    @pytest.mark.asyncio
    async def test_ticks_working_agents_and_isolates_errors(self, db, orchestrator, persona):
        healthy = _agent(db, "optimizer", persona_id=persona["id"])
        broken = _agent(db, "orchestrator")
        paused = _agent(db, "researcher", status="paused", persona_id=persona["id"])

        results = {r.agent_id: r for r in await orchestrator.run_all_agents()}

        assert set(results) == {healthy["id"], broken["id"]}
        assert results[healthy["id"]].action == "generated"
        assert results[broken["id"]].action == "error"
        assert results[broken["id"]].error == "Unknown agent type: orchestrator"

        stored = db.get_agent(broken["id"])
        assert stored["status"] == "error"
        assert stored["current_task"] is None
        assert db.get_agent(paused["id"])["status"] == "paused"

    @pytest.mark.asyncio
    async def test_errored_agent_is_not_ticked_again(self, db, orchestrator):
        _agent(db, "orchestrator")

        await orchestrator.run_all_agents()

        assert await orchestrator.run_all_agents() == []

    @pytest.mark.asyncio
    async def test_no_agents(self, orchestrator):
        assert await orchestrator.run_all_agents() == []
