"""
Tests for the in-memory record store used by tests and --mock runs.

The store must filter and order the way the Supabase queries do, since
the task generator and executors rely on those semantics.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from afilli.testing.memory_db import InMemoryDB


def _ago(**kwargs) -> str:
    return (datetime.now(timezone.utc) - timedelta(**kwargs)).isoformat()


@pytest.fixture
def db():
    return InMemoryDB()


class TestAgentsAndTasks:

    def test_create_agent_defaults(self, db):
        agent = db.create_agent({"name": "Scout", "type": "researcher"})
        assert agent["status"] == "idle"
        assert agent["metrics"] == {}
        assert agent["current_task"] is None
        assert agent["task_phase"] is None

    def test_returned_rows_are_copies(self, db):
        agent = db.create_agent({"name": "Scout", "type": "researcher"})
        agent["metrics"]["x"] = 1
        assert db.get_agent(agent["id"])["metrics"] == {}

    def test_oldest_pending_task(self, db):
        agent = db.create_agent({"name": "A", "type": "researcher"})
        first = db.create_task({"agent_id": agent["id"], "type": "web_search"})
        db.create_task({"agent_id": agent["id"], "type": "lead_discovery"})
        assert db.get_oldest_pending_task(agent["id"])["id"] == first["id"]

    def test_latest_task_by_type_and_status(self, db):
        db.seed("agent_tasks", agent_id="a", type="offer_sync", status="completed", created_at=_ago(hours=10))
        newest = db.seed("agent_tasks", agent_id="a", type="offer_sync", status="completed", created_at=_ago(hours=1))
        db.seed("agent_tasks", agent_id="a", type="offer_sync", status="failed", created_at=_ago(minutes=5))

        latest = db.get_latest_task("a", task_type="offer_sync", status="completed")
        assert latest["id"] == newest["id"]

    def test_list_tasks_pages_newest_first(self, db):
        ids = [db.create_task({"agent_id": "a", "type": "web_search"})["id"] for _ in range(5)]
        page = db.list_tasks("a", limit=2, offset=1)
        assert [t["id"] for t in page] == [ids[3], ids[2]]

    def test_count_tasks_fleet_wide(self, db):
        db.create_task({"agent_id": "a", "type": "web_search"})
        db.create_task({"agent_id": "b", "type": "web_search", "status": "completed"})
        assert db.count_tasks() == 2
        assert db.count_tasks(status="completed") == 1
        assert db.count_tasks("a") == 1


class TestLeads:

    def test_count_leads_since(self, db):
        db.seed("customer_leads", persona_id="p", created_at=_ago(hours=30))
        db.seed("customer_leads", persona_id="p", created_at=_ago(hours=2))
        db.seed("customer_leads", persona_id="other", created_at=_ago(hours=2))
        assert db.count_leads("p", created_since=_ago(hours=24)) == 1

    def test_missing_any(self, db):
        db.seed("customer_leads", persona_id="p", email="a@x.example.com", company="X")
        db.seed("customer_leads", persona_id="p", email=None, company="Y")
        db.seed("customer_leads", persona_id="p", email="b@x.example.com", company=None)
        assert db.count_leads("p", missing_any=("email", "company")) == 2

    def test_list_leads_with_email_and_status(self, db):
        db.seed("customer_leads", persona_id="p", email=None, outreach_status="discovered")
        match = db.seed("customer_leads", persona_id="p", email="a@x.example.com", outreach_status="discovered")
        db.seed("customer_leads", persona_id="p", email="b@x.example.com", outreach_status="contacted")

        leads = db.list_leads("p", status="discovered", has_email=True)
        assert [l["id"] for l in leads] == [match["id"]]

    def test_no_persona_means_every_persona(self, db):
        db.seed("customer_leads", persona_id="p", email="a@x.example.com")
        db.seed("customer_leads", persona_id="other", email="b@x.example.com")
        db.seed("customer_leads", persona_id=None, email=None)

        assert db.count_leads(None) == 3
        assert len(db.list_leads(None, has_email=True)) == 2

    def test_create_leads_defaults(self, db):
        [lead] = db.create_leads([{"persona_id": "p"}])
        assert lead["outreach_status"] == "discovered"
        assert lead["outreach_attempts"] == 0


class TestOffers:

    def test_filters_and_order(self, db):
        low = db.seed("offers", name="low", cps=40, categories=["a"])
        high = db.seed("offers", name="high", cps=90, categories=["b"])
        mid = db.seed("offers", name="mid", cps=70, categories=["a", "c"])

        assert [o["id"] for o in db.list_offers(min_cps=50)] == [high["id"], mid["id"]]
        assert [o["id"] for o in db.list_offers(categories_any=["a"])] == [mid["id"], low["id"]]
        assert [o["id"] for o in db.list_offers(exclude_ids=[high["id"]], limit=1)] == [mid["id"]]

    def test_empty_id_list_matches_nothing(self, db):
        db.seed("offers", name="x", cps=50)
        assert db.list_offers(ids=[]) == []

    def test_upsert_by_source_and_source_id(self, db):
        first = db.upsert_offer({"source": "cj", "source_id": "1", "name": "Old", "cps": 50})
        second = db.upsert_offer({"source": "cj", "source_id": "1", "name": "New", "cps": 60})
        assert first["id"] == second["id"]
        assert len(db.rows("offers")) == 1
        assert db.rows("offers")[0]["name"] == "New"


class TestCampaignsAndEvents:

    def test_count_draft_campaigns_for_persona(self, db):
        db.create_campaign({"name": "A", "persona_id": "p"})
        db.create_campaign({"name": "B", "persona_id": "p", "status": "active"})
        db.create_campaign({"name": "C", "persona_id": "q"})
        assert db.count_campaigns(status="draft", persona_id="p") == 1

    def test_results_since(self, db):
        db.seed("results", campaign_id="c", ts=_ago(days=20), metrics={"clicks": 1})
        db.seed("results", campaign_id="c", ts=_ago(days=2), metrics={"clicks": 2})
        rows = db.list_results("c", _ago(days=14))
        assert [r["metrics"]["clicks"] for r in rows] == [2]

    def test_events_newest_first(self, db):
        db.seed("events", session_id="s", type="view", ts=_ago(days=1))
        db.seed("events", session_id="s", type="click", ts=_ago(hours=1))
        db.seed("events", session_id="s", type="old", ts=_ago(days=9))
        assert [e["type"] for e in db.list_events(_ago(days=7))] == ["click", "view"]

    def test_creatives_ordered_by_variant(self, db):
        db.create_creative({"campaign_id": "c", "channel": "email", "variant": "b"})
        db.create_creative({"campaign_id": "c", "channel": "email", "variant": "a"})
        assert [c["variant"] for c in db.list_creatives("c", channel="email")] == ["a", "b"]
