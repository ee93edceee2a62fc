"""
Tests for the Outreach executor: copy generation, sending, lead updates.
"""

from __future__ import annotations

import pytest

from afilli.agents.implementations.outreach import (
    DEFAULT_SUBJECT,
    OutreachExecutor,
    split_subject,
)
from afilli.exceptions import PreconditionError, RecordNotFoundError
from afilli.testing.memory_db import InMemoryDB
from afilli.testing.mock_collaborators import MockEmailEngine, build_mock_collaborators


@pytest.fixture
def db():
    return InMemoryDB()


@pytest.fixture
def collaborators():
    return build_mock_collaborators()


@pytest.fixture
def agent(db):
    persona = db.create_persona({"name": "Freelancer", "description": "Solo worker"})
    return db.create_agent({
        "name": "Mailer",
        "type": "outreach",
        "status": "working",
        "persona_id": persona["id"],
    })


@pytest.fixture
def offer(db):
    return db.seed(
        "offers", name="Ledgerly", merchant="Ledgerly", cps=80,
        description="Bookkeeping for freelancers",
    )


def _lead(db, agent, **fields):
    [lead] = db.create_leads([{"persona_id": agent["persona_id"], **fields}])
    return lead


def _task(db, agent, lead_id):
    return db.create_task({
        "agent_id": agent["id"],
        "type": "outreach_generation",
        "input": {"leadId": lead_id},
    })


class TestSplitSubject:

    def test_extracts_subject_line(self):
        subject, body = split_subject("Subject: Hello there\n\n<p>Body</p>")
        assert subject == "Hello there"
        assert body == "<p>Body</p>"

    def test_default_subject(self):
        subject, body = split_subject("<p>No subject here</p>")
        assert subject == DEFAULT_SUBJECT
        assert body == "<p>No subject here</p>"


class TestOutreachGeneration:

    @pytest.mark.asyncio
    async def test_sends_and_marks_contacted(self, db, collaborators, agent, offer):
        lead = _lead(
            db, agent, email="ann@shop.example.com", name="Ann",
            interests=["invoicing"], recommended_offers=[offer["id"]],
        )
        task = _task(db, agent, lead["id"])

        output = await OutreachExecutor(db, collaborators).execute(agent["id"], task["id"])

        assert output["email_sent"] is True
        assert output["email_id"] == "mock-email-1"
        assert output["email_error"] is None
        assert output["subject"] == "A tool that fits how you work"
        assert output["channel"] == "email"
        assert output["offers_included"] == [offer["id"]]

        stored = db.get_lead(lead["id"])
        assert stored["outreach_status"] == "contacted"
        assert stored["outreach_attempts"] == 1
        assert stored["last_contacted_at"]

        assert collaborators.email.sent == [{
            "to": "ann@shop.example.com",
            "subject": "A tool that fits how you work",
            "lead_id": lead["id"],
        }]
        assert "Ledgerly" in collaborators.generator.prompts[0]
        assert db.get_agent(agent["id"])["metrics"]["outreach_generated"] == 1

    @pytest.mark.asyncio
    async def test_soft_send_failure_completes_task(self, db, collaborators, agent):
        collaborators.email = MockEmailEngine(fail_for=("bob@shop.example.com",))
        lead = _lead(db, agent, email="bob@shop.example.com")
        task = _task(db, agent, lead["id"])

        output = await OutreachExecutor(db, collaborators).execute(agent["id"], task["id"])

        assert output["email_sent"] is False
        assert output["email_error"] == "Mock delivery failure"
        assert db.get_task(task["id"])["status"] == "completed"
        stored = db.get_lead(lead["id"])
        assert stored["outreach_status"] == "discovered"
        assert stored["outreach_attempts"] == 0

    @pytest.mark.asyncio
    async def test_lead_without_email_fails_task(self, db, collaborators, agent):
        lead = _lead(db, agent, email=None)
        task = _task(db, agent, lead["id"])

        with pytest.raises(PreconditionError):
            await OutreachExecutor(db, collaborators).execute(agent["id"], task["id"])

        assert db.get_task(task["id"])["error"] == "Lead has no email address"
        stored = db.get_lead(lead["id"])
        assert stored["outreach_status"] == "discovered"
        assert collaborators.email.sent == []

    @pytest.mark.asyncio
    async def test_missing_lead_fails_task(self, db, collaborators, agent):
        task = _task(db, agent, "no-such-lead")

        with pytest.raises(RecordNotFoundError):
            await OutreachExecutor(db, collaborators).execute(agent["id"], task["id"])
        assert db.get_task(task["id"])["status"] == "failed"

    @pytest.mark.asyncio
    async def test_no_recommended_offers(self, db, collaborators, agent, offer):
        lead = _lead(db, agent, email="cy@shop.example.com")
        task = _task(db, agent, lead["id"])

        output = await OutreachExecutor(db, collaborators).execute(agent["id"], task["id"])

        assert output["offers_included"] == []
