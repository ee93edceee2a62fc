"""
Control surface for the agent fleet.

AgentService is what the CLI (and any future API layer) calls: CRUD on
agents, start/stop, a manual loop tick, task listing and metrics. It
validates requests with the pydantic contracts and delegates lifecycle
work to AgentOrchestrator.

Usage:
    service = AgentService(db, orchestrator)
    agent = service.create_agent({"name": "Scout", "type": "researcher", "personaId": pid})
    service.start_agent(agent["id"])
    page = service.list_tasks(agent["id"], limit=10)
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Union

from pydantic import ValidationError

from afilli.agents.contracts import AgentCreate, AgentUpdate
from afilli.agents.orchestrator import AgentOrchestrator, LoopResult
from afilli.agents.registry import EXECUTORS, load_executors
from afilli.agents.types import AgentStatus, TaskStatus
from afilli.exceptions import AgentConfigurationError, RecordNotFoundError

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
RECENT_TASKS = 10


class AgentService:
    """Agent CRUD, lifecycle and reporting over one record store."""

    def __init__(self, db: Any, orchestrator: Optional[AgentOrchestrator] = None):
        self.db = db
        self.orchestrator = orchestrator or AgentOrchestrator(db)

    def _require_agent(self, agent_id: str) -> dict[str, Any]:
        agent = self.db.get_agent(agent_id)
        if agent is None:
            raise RecordNotFoundError("Agent not found", table="agents", record_id=agent_id)
        return agent

    def _check_config(self, agent_type: str, config: dict[str, Any]) -> None:
        load_executors()
        executor_cls = EXECUTORS.get(agent_type)
        if executor_cls is None:
            return
        try:
            executor_cls.config_model.model_validate(config)
        except ValidationError as e:
            raise AgentConfigurationError(
                f"Invalid config for {agent_type} agent: {e}"
            ) from e

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_agent(self, request: Union[AgentCreate, dict[str, Any]]) -> dict[str, Any]:
        req = AgentCreate.model_validate(request)
        self._check_config(req.type.value, req.config)
        agent = self.db.create_agent({
            "name": req.name,
            "type": req.type.value,
            "persona_id": req.persona_id,
            "config": req.config,
            "status": AgentStatus.IDLE.value,
        })
        logger.info(
            "agent_created",
            extra={"agent_id": agent["id"], "agent_type": agent["type"]},
        )
        return agent

    def list_agents(
        self, status: Optional[str] = None, agent_type: Optional[str] = None
    ) -> list[dict[str, Any]]:
        if status is not None:
            status = AgentStatus(status).value
        return self.db.list_agents(status=status, agent_type=agent_type)

    def get_agent(self, agent_id: str) -> dict[str, Any]:
        """The agent with its persona and its ten newest tasks."""
        agent = self._require_agent(agent_id)
        persona = None
        if agent.get("persona_id"):
            persona = self.db.get_persona(agent["persona_id"])
        return {
            **agent,
            "persona": persona,
            "tasks": self.db.list_tasks(agent_id, limit=RECENT_TASKS),
        }

    def update_agent(
        self, agent_id: str, request: Union[AgentUpdate, dict[str, Any]]
    ) -> dict[str, Any]:
        agent = self._require_agent(agent_id)
        req = AgentUpdate.model_validate(request)
        updates = req.model_dump(exclude_unset=True)
        if "config" in updates:
            self._check_config(agent["type"], updates["config"] or {})
        if not updates:
            return agent
        return self.db.update_agent(agent_id, updates)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_agent(self, agent_id: str) -> dict[str, Any]:
        return self.orchestrator.start_agent(agent_id)

    def stop_agent(self, agent_id: str) -> dict[str, Any]:
        return self.orchestrator.stop_agent(agent_id)

    async def run_agent_loop(self, agent_id: str) -> LoopResult:
        return await self.orchestrator.run_agent_loop(agent_id)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def list_tasks(
        self,
        agent_id: str,
        status: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> dict[str, Any]:
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValueError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if offset < 0:
            raise ValueError("offset must be >= 0")
        if status is not None:
            status = TaskStatus(status).value

        total = self.db.count_tasks(agent_id, status=status)
        return {
            "tasks": self.db.list_tasks(agent_id, status=status, limit=limit, offset=offset),
            "total": total,
            "has_more": offset + limit < total,
        }

    def get_metrics(self, agent_id: str) -> dict[str, Any]:
        agent = self._require_agent(agent_id)
        total = self.db.count_tasks(agent_id)
        completed = self.db.count_tasks(agent_id, status=TaskStatus.COMPLETED.value)
        return {
            "total_tasks": total,
            "completed_tasks": completed,
            "failed_tasks": self.db.count_tasks(agent_id, status=TaskStatus.FAILED.value),
            "pending_tasks": self.db.count_tasks(agent_id, status=TaskStatus.PENDING.value),
            "success_rate": completed / total * 100 if total else 0,
            "agent_metrics": agent.get("metrics") or {},
            "last_run_at": agent.get("last_run_at"),
        }

    def get_stats(self) -> dict[str, Any]:
        by_status = self.db.count_agents_by("status")
        by_type = self.db.count_agents_by("type")
        total_tasks = self.db.count_tasks()
        completed = self.db.count_tasks(status=TaskStatus.COMPLETED.value)
        return {
            "total_agents": sum(by_status.values()),
            "by_status": [{"status": k, "count": v} for k, v in sorted(by_status.items())],
            "by_type": [{"type": k, "count": v} for k, v in sorted(by_type.items())],
            "total_tasks": total_tasks,
            "completed_tasks": completed,
            "success_rate": completed / total_tasks * 100 if total_tasks else 0,
        }
