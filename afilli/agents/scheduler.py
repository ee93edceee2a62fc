"""
Periodic driver for the agent fleet.

AgentScheduler runs AgentOrchestrator.run_all_agents() once immediately
and then once per interval on the running event loop. Passes never
overlap: the next sleep starts after the previous pass finishes, so a
slow pass delays the schedule instead of stacking up.

Usage:
    scheduler = AgentScheduler(orchestrator, interval_seconds=60)
    scheduler.start()
    ...
    await scheduler.stop()
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from afilli.agents.orchestrator import AgentOrchestrator

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 60.0


class AgentScheduler:
    """Owns the background task that ticks every working agent."""

    def __init__(
        self,
        orchestrator: AgentOrchestrator,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        run_immediately: bool = True,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.orchestrator = orchestrator
        self.interval_seconds = interval_seconds
        self.run_immediately = run_immediately
        self.passes_completed = 0
        self._task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the background loop. Calling it again while running is a no-op."""
        if self.is_running:
            logger.info("scheduler_already_running")
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(
            "scheduler_started",
            extra={"interval_seconds": self.interval_seconds},
        )

    async def stop(self) -> None:
        """
        Stop the background loop. Safe to call when not running.

        Only the wait between passes is interrupted. A pass already in
        progress runs to the end so every started task reaches a final
        status before this returns.
        """
        task, self._task = self._task, None
        if task is None:
            return
        self._stopping.set()
        await asyncio.shield(task)
        logger.info("scheduler_stopped", extra={"passes": self.passes_completed})

    async def run_once(self) -> None:
        """Run a single pass. Errors are logged; the schedule keeps going."""
        try:
            await self.orchestrator.run_all_agents()
        except Exception as e:
            logger.error("scheduler_pass_failed", extra={"error": str(e)[:200]})
        self.passes_completed += 1

    async def _run(self) -> None:
        if self.run_immediately and not self._stopping.is_set():
            await self.run_once()
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), self.interval_seconds)
            except asyncio.TimeoutError:
                await self.run_once()
