"""
Base task executor for the Afilli agent fleet.

Each archetype subclasses TaskExecutor, registers itself with
@register_executor and marks one coroutine per task type with
@task_handler. The base class owns the task lifecycle:

    load agent (+ persona) and task      missing -> RecordNotFoundError
    task -> running, started_at
    dispatch on task type                unknown -> UnknownTaskTypeError
    success -> completed + output, agent metrics merged, last_run_at
    any error -> failed + error text, then re-raised

Handlers receive a TaskContext and return the task's output dict. They
never touch agent status or current_task; the agent loop owns those.

Usage:
    @register_executor(AgentType.DEAL_FINDER)
    class DealFinderExecutor(TaskExecutor):
        config_model = DealFinderConfig

        @task_handler(TaskType.OFFER_SYNC)
        async def offer_sync(self, ctx: TaskContext) -> dict[str, Any]:
            ...
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, ClassVar, Optional, Type

from pydantic import ValidationError

from afilli.agents.contracts import AgentConfig
from afilli.agents.types import TaskStatus, TaskType
from afilli.exceptions import (
    AgentConfigurationError,
    PreconditionError,
    RecordNotFoundError,
    UnknownTaskTypeError,
)
from afilli.integrations.supabase_client import utcnow_iso
from afilli.observability.logging_config import bind_run_context

logger = logging.getLogger(__name__)

Handler = Callable[["TaskExecutor", "TaskContext"], Awaitable[dict[str, Any]]]


@dataclass
class Collaborators:
    """External services an executor may call. Unused ones may be None."""

    generator: Any = None
    scraper: Any = None
    email: Any = None
    awin: Any = None
    cj: Any = None
    clickbank: Any = None
    clay: Any = None


@dataclass
class TaskContext:
    """Everything a handler needs for one task."""

    agent: dict[str, Any]
    task: dict[str, Any]
    config: AgentConfig
    persona: Optional[dict[str, Any]] = None
    input: dict[str, Any] = field(default_factory=dict)

    @property
    def agent_id(self) -> str:
        return self.agent["id"]

    def require_persona(self) -> dict[str, Any]:
        if self.persona is None:
            raise PreconditionError("Agent has no persona assigned")
        return self.persona


def task_handler(task_type: TaskType) -> Callable[[Handler], Handler]:
    """Mark an executor coroutine as the handler for a task type."""

    def decorator(fn: Handler) -> Handler:
        fn._handles_task_type = task_type  # type: ignore[attr-defined]
        return fn

    return decorator


class TaskExecutor:
    """
    Runs tasks for one archetype.

    Subclass attributes:
        agent_type: set by @register_executor.
        requires_persona: load the agent's persona before the task starts
            and raise RecordNotFoundError (task untouched) when it is missing.
        config_model: pydantic model for agent.config.
    """

    agent_type: ClassVar[str] = ""
    requires_persona: ClassVar[bool] = False
    config_model: ClassVar[Type[AgentConfig]] = AgentConfig
    _handlers: ClassVar[dict[str, Handler]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        handlers: dict[str, Handler] = {}
        for base in reversed(cls.__mro__):
            for attr in vars(base).values():
                task_type = getattr(attr, "_handles_task_type", None)
                if task_type is not None:
                    handlers[task_type.value] = attr
        cls._handlers = handlers

    def __init__(self, db: Any, collaborators: Optional[Collaborators] = None):
        self.db = db
        self.services = collaborators or Collaborators()

    @classmethod
    def task_types(cls) -> list[str]:
        return sorted(cls._handlers)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _load(self, agent_id: str, task_id: str) -> tuple[dict, Optional[dict], dict]:
        agent = self.db.get_agent(agent_id)
        persona = None
        if agent and agent.get("persona_id"):
            persona = self.db.get_persona(agent["persona_id"])
        if agent is None or (self.requires_persona and persona is None):
            raise RecordNotFoundError(
                "Agent or persona not found", table="agents", record_id=agent_id
            )

        task = self.db.get_task(task_id)
        if task is None:
            raise RecordNotFoundError(
                "Task not found", table="agent_tasks", record_id=task_id
            )
        return agent, persona, task

    def _parse_config(self, agent: dict[str, Any]) -> AgentConfig:
        try:
            return self.config_model.model_validate(agent.get("config") or {})
        except ValidationError as e:
            raise AgentConfigurationError(
                f"Invalid config for {self.agent_type} agent: {e}",
                agent_id=agent["id"],
            ) from e

    async def execute(self, agent_id: str, task_id: str) -> dict[str, Any]:
        """Run one task to completion or failure. Returns the task output."""
        agent, persona, task = self._load(agent_id, task_id)
        task_type = task["type"]

        self.db.update_task(task_id, {
            "status": TaskStatus.RUNNING.value,
            "started_at": utcnow_iso(),
        })

        start = time.monotonic()
        with bind_run_context(agent_id=agent_id, task_id=task_id):
            logger.info(
                "task_started",
                extra={"agent_type": self.agent_type, "task_type": task_type},
            )
            try:
                handler = self._handlers.get(task_type)
                if handler is None:
                    raise UnknownTaskTypeError(task_type, agent_type=self.agent_type)
                ctx = TaskContext(
                    agent=agent,
                    task=task,
                    config=self._parse_config(agent),
                    persona=persona,
                    input=task.get("input") or {},
                )
                output = await handler(self, ctx)
            except Exception as e:
                self.db.update_task(task_id, {
                    "status": TaskStatus.FAILED.value,
                    "error": str(e),
                    "completed_at": utcnow_iso(),
                })
                logger.error(
                    "task_failed",
                    extra={
                        "agent_type": self.agent_type,
                        "task_type": task_type,
                        "duration_ms": int((time.monotonic() - start) * 1000),
                        "error": str(e)[:200],
                    },
                )
                raise

            self.db.update_task(task_id, {
                "status": TaskStatus.COMPLETED.value,
                "output": output,
                "completed_at": utcnow_iso(),
            })
            metrics = dict(agent.get("metrics") or {})
            metrics["tasks_completed"] = metrics.get("tasks_completed", 0) + 1
            self.update_metrics(metrics, task_type, output)
            self.db.update_agent(agent_id, {
                "metrics": metrics,
                "last_run_at": utcnow_iso(),
            })
            logger.info(
                "task_completed",
                extra={
                    "agent_type": self.agent_type,
                    "task_type": task_type,
                    "duration_ms": int((time.monotonic() - start) * 1000),
                },
            )
        return output

    def update_metrics(
        self, metrics: dict[str, Any], task_type: str, output: dict[str, Any]
    ) -> None:
        """Fold archetype counters from a completed task into metrics, in place."""


def bump(metrics: dict[str, Any], key: str, amount: float = 1) -> None:
    metrics[key] = metrics.get(key, 0) + amount
