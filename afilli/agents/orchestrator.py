"""
Agent loop: one tick of work for one agent.

A tick either executes the agent's oldest pending task or, when the
queue is empty, asks the TaskGenerator for the next one. It never does
both, so a freshly generated task runs on the following tick.

    run_agent_loop(agent_id)
        agent missing          -> RecordNotFoundError
        status != working      -> no-op
        pending task           -> current_task = label, execute, clear label
        no pending task        -> generate next task

Task failures are logged here and never escape a tick; the executor has
already marked the task failed. Anything else (a record store outage,
an unknown agent type in the generator) propagates to the caller, which
is where run_all_agents puts the agent into `error`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from afilli.agents.base import Collaborators
from afilli.agents.registry import get_executor_class
from afilli.agents.task_generator import TaskGenerator
from afilli.agents.types import AgentStatus, TaskStatus, task_label
from afilli.exceptions import RecordNotFoundError
from afilli.observability.logging_config import bind_run_context

logger = logging.getLogger(__name__)


@dataclass
class LoopResult:
    """Outcome of one agent-loop tick."""

    agent_id: str
    action: str  # skipped | idle | generated | executed | failed | error
    task_id: Optional[str] = None
    task_type: Optional[str] = None
    error: Optional[str] = None


class AgentOrchestrator:
    """Runs agent-loop ticks against one record store and one set of collaborators."""

    def __init__(self, db: Any, collaborators: Optional[Collaborators] = None):
        self.db = db
        self.collaborators = collaborators or Collaborators()
        self.generator = TaskGenerator(db)

    def _require_agent(self, agent_id: str) -> dict[str, Any]:
        agent = self.db.get_agent(agent_id)
        if agent is None:
            raise RecordNotFoundError("Agent not found", table="agents", record_id=agent_id)
        return agent

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def run_agent_loop(self, agent_id: str) -> LoopResult:
        agent = self._require_agent(agent_id)

        if agent.get("status") != AgentStatus.WORKING.value:
            logger.info(
                "agent_loop_skipped",
                extra={"agent_id": agent_id, "status": agent.get("status")},
            )
            return LoopResult(agent_id, "skipped")

        task = self.db.get_oldest_pending_task(agent_id)
        if task is None:
            created = self.generator.create_next_task(
                agent_id, agent["type"], agent.get("persona_id")
            )
            if created is None:
                return LoopResult(agent_id, "idle")
            return LoopResult(agent_id, "generated", created["id"], created["type"])

        self.db.update_agent(agent_id, {"current_task": task_label(task["type"])})
        try:
            executor = get_executor_class(agent["type"])(self.db, self.collaborators)
            await executor.execute(agent_id, task["id"])
        except Exception as e:
            with bind_run_context(agent_id=agent_id, task_id=task["id"]):
                logger.error(
                    "agent_task_error",
                    extra={"task_type": task["type"], "error": str(e)[:200]},
                )
            result = LoopResult(agent_id, "failed", task["id"], task["type"], str(e))
        else:
            result = LoopResult(agent_id, "executed", task["id"], task["type"])
        finally:
            self.db.update_agent(agent_id, {"current_task": None})
        return result

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start_agent(self, agent_id: str) -> dict[str, Any]:
        """Set the agent working and seed a task if its queue is empty."""
        agent = self._require_agent(agent_id)
        updated = self.db.update_agent(agent_id, {"status": AgentStatus.WORKING.value})
        if self.db.count_tasks(agent_id, status=TaskStatus.PENDING.value) == 0:
            self.generator.create_next_task(agent_id, agent["type"], agent.get("persona_id"))
        logger.info("agent_started", extra={"agent_id": agent_id, "agent_type": agent["type"]})
        return updated

    def stop_agent(self, agent_id: str) -> dict[str, Any]:
        """Pause the agent. A task already executing runs to completion."""
        self._require_agent(agent_id)
        updated = self.db.update_agent(agent_id, {"status": AgentStatus.PAUSED.value})
        logger.info("agent_stopped", extra={"agent_id": agent_id})
        return updated

    async def run_all_agents(self) -> list[LoopResult]:
        """One scheduler pass: every working agent gets one tick, in turn."""
        agents = self.db.list_agents(status=AgentStatus.WORKING.value)
        results = []
        for agent in agents:
            try:
                results.append(await self.run_agent_loop(agent["id"]))
            except Exception as e:
                logger.error(
                    "agent_loop_failed",
                    extra={"agent_id": agent["id"], "error": str(e)[:200]},
                )
                self.db.update_agent(agent["id"], {
                    "status": AgentStatus.ERROR.value,
                    "current_task": None,
                })
                results.append(LoopResult(agent["id"], "error", error=str(e)))
        if agents:
            logger.info("scheduler_pass_completed", extra={"agents": len(agents)})
        return results
