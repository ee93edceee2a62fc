"""
Afilli - Main Entry Point

CLI for managing the affiliate agent fleet: create and inspect agents,
start/stop them, tick one agent by hand, or run the scheduler.

Every command accepts --mock to use the in-memory store and offline
collaborators instead of Supabase, Anthropic and the affiliate APIs.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from afilli.agents.types import AgentType
from afilli.config.loader import load_config
from afilli.exceptions import AfilliError
from afilli.observability.logging_config import configure_logging
from afilli.runtime import Runtime, build_runtime, seed_demo_fleet

load_dotenv()

app = typer.Typer(
    name="afilli",
    help="Afilli - autonomous affiliate marketing agents",
)
console = Console()
logger = logging.getLogger("afilli")

MOCK_HELP = "Use the in-memory store and offline collaborators"


def _runtime(mock: bool) -> Runtime:
    """Load config and wire components, with a friendly error on failure."""
    configure_logging()
    try:
        return build_runtime(load_config(), mock=mock)
    except (AfilliError, EnvironmentError, FileNotFoundError) as e:
        console.print(Panel(
            f"[red]{e}[/]\n\n"
            f"Set SUPABASE_URL and SUPABASE_SERVICE_KEY in your .env file,\n"
            f"or pass [bold]--mock[/] to try the fleet offline.",
            title="⚠ Configuration Error",
            border_style="red",
        ))
        raise typer.Exit(code=1)


def _fail(e: Exception) -> None:
    console.print(f"[red]Error:[/] {e}")
    raise typer.Exit(code=1)


# =========================================================================
# Commands
# =========================================================================


@app.command()
def agents(
    status: Optional[str] = typer.Option(None, help="Filter by status"),
    agent_type: Optional[str] = typer.Option(None, "--type", help="Filter by archetype"),
    mock: bool = typer.Option(False, help=MOCK_HELP),
):
    """List agents."""
    rt = _runtime(mock)
    if mock:
        seed_demo_fleet(rt)
    try:
        rows = rt.service.list_agents(status=status, agent_type=agent_type)
    except (AfilliError, ValueError) as e:
        _fail(e)

    if not rows:
        console.print("[yellow]No agents found.[/]")
        return

    table = Table(title="Afilli - Agents")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Type", style="green")
    table.add_column("Status", style="yellow")
    table.add_column("Current Task")
    table.add_column("Last Run", style="dim")
    for a in rows:
        table.add_row(
            a["id"][:8],
            a.get("name", ""),
            a.get("type", ""),
            a.get("status", ""),
            a.get("current_task") or "-",
            a.get("last_run_at") or "-",
        )
    console.print(table)


@app.command(name="create-agent")
def create_agent(
    name: str = typer.Argument(..., help="Display name"),
    agent_type: AgentType = typer.Option(..., "--type", help="Agent archetype"),
    persona_id: Optional[str] = typer.Option(None, help="Persona to work for"),
    config: str = typer.Option("{}", help="Agent tunables as JSON"),
    mock: bool = typer.Option(False, help=MOCK_HELP),
):
    """Create an idle agent."""
    rt = _runtime(mock)
    try:
        agent = rt.service.create_agent({
            "name": name,
            "type": agent_type,
            "persona_id": persona_id,
            "config": json.loads(config),
        })
    except (AfilliError, ValueError) as e:
        _fail(e)
    console.print(f"[green]Created agent[/] [bold]{agent['id']}[/] ({agent['type']})")


@app.command()
def start(
    agent_id: str = typer.Argument(..., help="Agent ID"),
    mock: bool = typer.Option(False, help=MOCK_HELP),
):
    """Set an agent working and seed its first task."""
    rt = _runtime(mock)
    try:
        agent = rt.service.start_agent(agent_id)
    except AfilliError as e:
        _fail(e)
    console.print(f"[green]Agent {agent['id'][:8]} is {agent['status']}[/]")


@app.command()
def stop(
    agent_id: str = typer.Argument(..., help="Agent ID"),
    mock: bool = typer.Option(False, help=MOCK_HELP),
):
    """Pause an agent."""
    rt = _runtime(mock)
    try:
        agent = rt.service.stop_agent(agent_id)
    except AfilliError as e:
        _fail(e)
    console.print(f"[yellow]Agent {agent['id'][:8]} is {agent['status']}[/]")


@app.command(name="run-loop")
def run_loop(
    agent_id: str = typer.Argument(..., help="Agent ID"),
    mock: bool = typer.Option(False, help=MOCK_HELP),
):
    """Run one agent-loop tick for an agent."""
    rt = _runtime(mock)
    try:
        result = asyncio.run(rt.service.run_agent_loop(agent_id))
    except AfilliError as e:
        _fail(e)
    style = "red" if result.action == "failed" else "green"
    console.print(
        f"[{style}]{result.action}[/] {result.task_type or ''} "
        f"{result.error or ''}".rstrip()
    )


@app.command()
def tasks(
    agent_id: str = typer.Argument(..., help="Agent ID"),
    status: Optional[str] = typer.Option(None, help="Filter by task status"),
    limit: int = typer.Option(20, min=1, max=100, help="Page size"),
    offset: int = typer.Option(0, min=0, help="Rows to skip"),
    mock: bool = typer.Option(False, help=MOCK_HELP),
):
    """List an agent's tasks, newest first."""
    rt = _runtime(mock)
    try:
        page = rt.service.list_tasks(agent_id, status=status, limit=limit, offset=offset)
    except (AfilliError, ValueError) as e:
        _fail(e)

    table = Table(title=f"Tasks ({page['total']} total)")
    table.add_column("ID", style="dim")
    table.add_column("Type", style="cyan")
    table.add_column("Status", style="yellow")
    table.add_column("Created", style="dim")
    table.add_column("Error", style="red")
    for t in page["tasks"]:
        table.add_row(
            t["id"][:8],
            t["type"],
            t["status"],
            t.get("created_at") or "",
            (t.get("error") or "")[:60],
        )
    console.print(table)
    if page["has_more"]:
        console.print(f"[dim]More tasks available: --offset {offset + limit}[/]")


@app.command()
def metrics(
    agent_id: str = typer.Argument(..., help="Agent ID"),
    mock: bool = typer.Option(False, help=MOCK_HELP),
):
    """Show task totals and archetype counters for one agent."""
    rt = _runtime(mock)
    try:
        m = rt.service.get_metrics(agent_id)
    except AfilliError as e:
        _fail(e)

    table = Table(title="Agent Metrics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white", justify="right")
    table.add_row("Total tasks", str(m["total_tasks"]))
    table.add_row("Completed", str(m["completed_tasks"]))
    table.add_row("Failed", str(m["failed_tasks"]))
    table.add_row("Pending", str(m["pending_tasks"]))
    table.add_row("Success rate", f"{m['success_rate']:.1f}%")
    for key, value in sorted(m["agent_metrics"].items()):
        table.add_row(key, str(value))
    table.add_row("Last run", m["last_run_at"] or "-")
    console.print(table)


@app.command()
def stats(
    mock: bool = typer.Option(False, help=MOCK_HELP),
):
    """Fleet-wide agent and task totals."""
    rt = _runtime(mock)
    if mock:
        seed_demo_fleet(rt)
    s = rt.service.get_stats()

    table = Table(title=f"Afilli - Fleet ({s['total_agents']} agents)")
    table.add_column("Group", style="cyan")
    table.add_column("Value", style="white")
    table.add_column("Count", justify="right")
    for row in s["by_status"]:
        table.add_row("status", row["status"], str(row["count"]))
    for row in s["by_type"]:
        table.add_row("type", row["type"], str(row["count"]))
    console.print(table)
    console.print(
        f"Tasks: {s['total_tasks']} total, {s['completed_tasks']} completed "
        f"({s['success_rate']:.1f}% success)"
    )


@app.command(name="run-scheduler")
def run_scheduler(
    interval: Optional[float] = typer.Option(None, help="Seconds between passes"),
    passes: int = typer.Option(0, min=0, help="Stop after N passes (0 = run forever)"),
    mock: bool = typer.Option(False, help=MOCK_HELP),
):
    """Run the scheduler: every working agent gets one tick per pass."""
    from afilli.agents.scheduler import AgentScheduler

    rt = _runtime(mock)
    settings = load_config().scheduler
    if mock:
        seeded = seed_demo_fleet(rt)
        console.print(f"[cyan]Mock mode: seeded {len(seeded)} working agents.[/]")

    scheduler = AgentScheduler(
        rt.orchestrator,
        interval_seconds=interval or settings.interval_seconds,
        run_immediately=settings.run_immediately,
    )

    async def _run():
        scheduler.start()
        try:
            while scheduler.is_running:
                if passes and scheduler.passes_completed >= passes:
                    break
                await asyncio.sleep(0.1)
        finally:
            await scheduler.stop()

    console.print(Panel(
        f"Interval: [bold]{scheduler.interval_seconds}s[/]\n"
        f"Passes: [bold]{passes or 'unlimited'}[/]",
        title="Afilli Scheduler",
        border_style="cyan",
    ))
    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("[yellow]Scheduler stopped.[/]")
        return
    console.print(f"[green]Completed {scheduler.passes_completed} passes.[/]")


if __name__ == "__main__":
    app()
