"""
Executor registry: agent type -> TaskExecutor subclass.

New archetype = an implementation module with a
@register_executor("<type>") class, listed in IMPLEMENTATION_MODULES.

Usage:
    from afilli.agents.registry import get_executor_class

    executor_cls = get_executor_class(agent["type"])
    await executor_cls(db, collaborators).execute(agent_id, task_id)
"""

from __future__ import annotations

import importlib
import logging
from typing import Type

from afilli.agents.base import TaskExecutor
from afilli.exceptions import UnknownAgentTypeError

logger = logging.getLogger(__name__)

# Global map: agent_type string -> implementation class
EXECUTORS: dict[str, Type[TaskExecutor]] = {}

IMPLEMENTATION_MODULES = (
    "afilli.agents.implementations.researcher",
    "afilli.agents.implementations.outreach",
    "afilli.agents.implementations.optimizer",
    "afilli.agents.implementations.deal_finder",
    "afilli.agents.implementations.persona_writer",
    "afilli.agents.implementations.list_builder",
    "afilli.agents.implementations.marketing_agent",
)


def register_executor(agent_type: str):
    """
    Decorator to register an executor implementation.

    Usage:
        @register_executor(AgentType.OUTREACH)
        class OutreachExecutor(TaskExecutor):
            ...
    """
    key = getattr(agent_type, "value", agent_type)

    def decorator(cls: Type[TaskExecutor]) -> Type[TaskExecutor]:
        if key in EXECUTORS:
            logger.warning(f"Overwriting existing executor registration: {key}")
        EXECUTORS[key] = cls
        cls.agent_type = key
        return cls

    return decorator


def load_executors() -> None:
    """Import every implementation module so their decorators run."""
    for module in IMPLEMENTATION_MODULES:
        importlib.import_module(module)


def get_registered_types() -> list[str]:
    load_executors()
    return sorted(EXECUTORS.keys())


def get_executor_class(agent_type: str) -> Type[TaskExecutor]:
    load_executors()
    key = getattr(agent_type, "value", agent_type)
    try:
        return EXECUTORS[key]
    except KeyError:
        raise UnknownAgentTypeError(key) from None
