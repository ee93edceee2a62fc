"""
Exception hierarchy for the Afilli agent fleet.

Errors fall into a few categories:
- Configuration errors (caught at startup or agent creation)
- Precondition errors (missing records, raised before any side effect)
- Task execution errors (raised inside a task handler)
- Dispatch errors (unknown task or agent type)
- Dependency failures (LLM, scraper, email, affiliate networks, Clay)

Usage:
    from afilli.exceptions import DependencyError

    try:
        response = await client.get(url)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise DependencyError(
            "AWIN request failed",
            service="awin",
            status_code=e.response.status_code,
        ) from e
"""

from __future__ import annotations

from typing import Optional


class AfilliError(Exception):
    """
    Base exception for all Afilli errors.

    Catch `AfilliError` to handle any platform-specific failure.
    """

    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(message)
        self.details = details or {}


# ── Configuration Errors ──────────────────────────────────────────


class AgentConfigurationError(AfilliError):
    """
    Raised when an agent's stored config or the YAML settings are invalid.
    """

    def __init__(
        self,
        message: str,
        *,
        agent_id: Optional[str] = None,
        config_path: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.agent_id = agent_id
        self.config_path = config_path


# ── Precondition Errors ───────────────────────────────────────────


class PreconditionError(AfilliError):
    """
    Raised when a task cannot run because something it needs is absent
    (a lead without an email, a list builder without a persona, no
    offers above the campaign threshold).
    """


class RecordNotFoundError(PreconditionError):
    """Raised when a referenced record does not exist in the store."""

    def __init__(
        self,
        message: str,
        *,
        table: Optional[str] = None,
        record_id: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.table = table
        self.record_id = record_id


# ── Task Execution Errors ─────────────────────────────────────────


class TaskExecutionError(AfilliError):
    """
    Raised when a task handler fails for a reason other than a
    collaborator outage, e.g. an LLM reply that does not validate.
    """

    def __init__(
        self,
        message: str,
        *,
        agent_id: Optional[str] = None,
        task_id: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.agent_id = agent_id
        self.task_id = task_id


class UnknownTaskTypeError(AfilliError):
    """Raised when an executor has no handler for a task's type."""

    def __init__(
        self,
        task_type: str,
        *,
        agent_type: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(f"Unknown task type: {task_type}", details=details)
        self.task_type = task_type
        self.agent_type = agent_type


class UnknownAgentTypeError(AfilliError):
    """Raised when no executor or task rule exists for an agent type."""

    def __init__(self, agent_type: str, *, details: Optional[dict] = None):
        super().__init__(f"Unknown agent type: {agent_type}", details=details)
        self.agent_type = agent_type


# ── Dependency Errors ─────────────────────────────────────────────


class DependencyError(AfilliError):
    """
    Raised when an external dependency (LLM, web, email provider,
    affiliate network, enrichment API) is unavailable, unconfigured,
    or returns an unexpected response.
    """

    def __init__(
        self,
        message: str,
        *,
        service: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.service = service
        self.status_code = status_code
