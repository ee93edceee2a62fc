"""
Tests for the agent control surface: CRUD, paging and reporting.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from afilli.agents.orchestrator import AgentOrchestrator
from afilli.agents.service import AgentService
from afilli.exceptions import AgentConfigurationError, RecordNotFoundError
from afilli.testing.memory_db import InMemoryDB
from afilli.testing.mock_collaborators import build_mock_collaborators


@pytest.fixture
def db():
    return InMemoryDB()


@pytest.fixture
def service(db):
    return AgentService(db, AgentOrchestrator(db, build_mock_collaborators()))


@pytest.fixture
def persona(db):
    return db.create_persona({"name": "Home Cook"})


class TestCreateAndUpdate:

    def test_create_agent(self, db, service, persona):
        agent = service.create_agent({
            "name": "Scout",
            "type": "researcher",
            "personaId": persona["id"],
            "config": {"note": "kept"},
        })

        assert agent["status"] == "idle"
        assert agent["type"] == "researcher"
        assert agent["persona_id"] == persona["id"]
        assert agent["config"] == {"note": "kept"}
        assert db.rows("agent_tasks") == []

    def test_unknown_type_rejected(self, service):
        with pytest.raises(ValidationError):
            service.create_agent({"name": "X", "type": "teleporter"})

    def test_blank_name_rejected(self, service):
        with pytest.raises(ValidationError):
            service.create_agent({"name": "", "type": "researcher"})

    @pytest.mark.parametrize("agent_type, config", [
        ("deal_finder", {"minCpsScore": "lots"}),
        ("list_builder", {"maxLeadsPerRun": 0}),
        ("marketing_agent", {"maxCampaignsToLaunch": -1}),
    ])
    def test_invalid_config_rejected(self, service, agent_type, config):
        with pytest.raises(AgentConfigurationError):
            service.create_agent({"name": "X", "type": agent_type, "config": config})

    def test_orchestrator_type_can_be_created(self, service):
        agent = service.create_agent({"name": "Boss", "type": "orchestrator"})
        assert agent["type"] == "orchestrator"

    def test_update_agent(self, service, persona):
        agent = service.create_agent({"name": "Scout", "type": "deal_finder"})

        updated = service.update_agent(agent["id"], {
            "name": "Deals",
            "personaId": persona["id"],
            "config": {"minCpsScore": 65},
        })

        assert updated["name"] == "Deals"
        assert updated["persona_id"] == persona["id"]
        assert updated["config"] == {"minCpsScore": 65}
        assert updated["type"] == "deal_finder"

    def test_update_rejects_bad_config(self, service):
        agent = service.create_agent({"name": "Deals", "type": "deal_finder"})
        with pytest.raises(AgentConfigurationError):
            service.update_agent(agent["id"], {"config": {"minCpsScore": "high"}})

    def test_empty_update_is_noop(self, service):
        agent = service.create_agent({"name": "Deals", "type": "deal_finder"})
        assert service.update_agent(agent["id"], {}) == agent

    def test_update_missing_agent(self, service):
        with pytest.raises(RecordNotFoundError):
            service.update_agent("nope", {"name": "x"})


class TestReads:

    def test_list_agents_filters(self, service):
        a = service.create_agent({"name": "A", "type": "researcher"})
        service.create_agent({"name": "B", "type": "deal_finder"})
        service.start_agent(a["id"])

        assert [x["id"] for x in service.list_agents(status="working")] == [a["id"]]
        assert [x["name"] for x in service.list_agents(agent_type="deal_finder")] == ["B"]
        assert len(service.list_agents()) == 2

    def test_list_agents_rejects_unknown_status(self, service):
        with pytest.raises(ValueError):
            service.list_agents(status="sleeping")

    def test_get_agent_includes_persona_and_recent_tasks(self, db, service, persona):
        agent = service.create_agent({"name": "A", "type": "optimizer", "personaId": persona["id"]})
        for _ in range(12):
            db.create_task({"agent_id": agent["id"], "type": "seo_optimization"})

        detail = service.get_agent(agent["id"])

        assert detail["persona"]["name"] == "Home Cook"
        assert len(detail["tasks"]) == 10

    def test_get_agent_without_persona(self, service):
        agent = service.create_agent({"name": "A", "type": "deal_finder"})
        assert service.get_agent(agent["id"])["persona"] is None

    def test_get_missing_agent(self, service):
        with pytest.raises(RecordNotFoundError):
            service.get_agent("nope")


class TestListTasks:

    @pytest.fixture
    def agent(self, db, service):
        agent = service.create_agent({"name": "A", "type": "deal_finder"})
        for i in range(25):
            db.create_task({
                "agent_id": agent["id"],
                "type": "offer_sync",
                "status": "completed" if i % 5 == 0 else "pending",
            })
        return agent

    def test_pages(self, service, agent):
        page = service.list_tasks(agent["id"], limit=10, offset=10)
        assert len(page["tasks"]) == 10
        assert page["total"] == 25
        assert page["has_more"] is True

        last = service.list_tasks(agent["id"], limit=10, offset=20)
        assert len(last["tasks"]) == 5
        assert last["has_more"] is False

    def test_status_filter(self, service, agent):
        page = service.list_tasks(agent["id"], status="completed")
        assert page["total"] == 5
        assert all(t["status"] == "completed" for t in page["tasks"])

    @pytest.mark.parametrize("kwargs", [
        {"limit": 0},
        {"limit": 101},
        {"offset": -1},
        {"status": "exploded"},
    ])
    def test_rejects_bad_arguments(self, service, agent, kwargs):
        with pytest.raises(ValueError):
            service.list_tasks(agent["id"], **kwargs)


class TestMetrics:

    def test_agent_metrics(self, db, service):
        agent = service.create_agent({"name": "A", "type": "deal_finder"})
        for status in ("completed", "completed", "failed", "pending"):
            db.create_task({"agent_id": agent["id"], "type": "offer_sync", "status": status})
        db.update_agent(agent["id"], {"metrics": {"offers_synced": 7}})

        metrics = service.get_metrics(agent["id"])

        assert metrics["total_tasks"] == 4
        assert metrics["completed_tasks"] == 2
        assert metrics["failed_tasks"] == 1
        assert metrics["pending_tasks"] == 1
        assert metrics["success_rate"] == 50.0
        assert metrics["agent_metrics"] == {"offers_synced": 7}
        assert metrics["last_run_at"] is None

    def test_metrics_without_tasks(self, service):
        agent = service.create_agent({"name": "A", "type": "deal_finder"})
        assert service.get_metrics(agent["id"])["success_rate"] == 0

    def test_fleet_stats(self, db, service):
        a = service.create_agent({"name": "A", "type": "deal_finder"})
        b = service.create_agent({"name": "B", "type": "deal_finder"})
        service.create_agent({"name": "C", "type": "optimizer"})
        service.start_agent(a["id"])
        db.create_task({"agent_id": b["id"], "type": "offer_sync", "status": "completed"})

        stats = service.get_stats()

        assert stats["total_agents"] == 3
        assert stats["by_status"] == [
            {"status": "idle", "count": 2},
            {"status": "working", "count": 1},
        ]
        assert stats["by_type"] == [
            {"type": "deal_finder", "count": 2},
            {"type": "optimizer", "count": 1},
        ]
        assert stats["total_tasks"] == 2
        assert stats["completed_tasks"] == 1
        assert stats["success_rate"] == 50.0
