"""
Observability for the Afilli agent fleet.

Structured logging with per-agent / per-task context that follows the
scheduler across asyncio tasks.
"""
