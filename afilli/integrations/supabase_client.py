"""
Supabase client wrapper for Afilli.

Typed operations for every table the agent fleet touches. Rows are
plain dicts; timestamps are ISO-8601 UTC strings. The in-memory
replacement used by tests and `--mock` runs lives in
afilli.testing.memory_db and implements the same methods.
"""

from __future__ import annotations

import os
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from dateutil import parser as dt_parser
from supabase import create_client, Client


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_ts(value: str) -> datetime:
    """Parse a stored timestamp of any fractional precision. Naive values are UTC."""
    dt = dt_parser.isoparse(value)
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


class AfilliDB:
    """
    Database client for the agent fleet.

    Uses the Supabase service role key. Credentials come from the
    environment variables named in `DatabaseConfig`.
    """

    def __init__(
        self,
        url_env: str = "SUPABASE_URL",
        key_env: str = "SUPABASE_SERVICE_KEY",
    ):
        url = os.environ.get(url_env)
        key = os.environ.get(key_env)
        if not url or not key:
            raise EnvironmentError(f"{url_env} and {key_env} must be set")
        self.client: Client = create_client(url, key)

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    def create_agent(self, data: dict[str, Any]) -> dict:
        now = utcnow_iso()
        row = {
            "status": "idle",
            "config": {},
            "metrics": {},
            "current_task": None,
            "task_phase": None,
            "last_run_at": None,
            **data,
            "created_at": now,
            "updated_at": now,
        }
        result = self.client.table("agents").insert(row).execute()
        return result.data[0] if result.data else {}

    def get_agent(self, agent_id: str) -> Optional[dict]:
        result = (
            self.client.table("agents")
            .select("*")
            .eq("id", agent_id)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    def list_agents(
        self,
        status: Optional[str] = None,
        agent_type: Optional[str] = None,
    ) -> list[dict]:
        """List agents, newest first."""
        query = (
            self.client.table("agents")
            .select("*")
            .order("created_at", desc=True)
        )
        if status:
            query = query.eq("status", status)
        if agent_type:
            query = query.eq("type", agent_type)
        return query.execute().data

    def update_agent(self, agent_id: str, updates: dict[str, Any]) -> dict:
        updates = {**updates, "updated_at": utcnow_iso()}
        result = (
            self.client.table("agents")
            .update(updates)
            .eq("id", agent_id)
            .execute()
        )
        return result.data[0] if result.data else {}

    def count_agents_by(self, column: str) -> dict[str, int]:
        """Agent counts grouped by a column (status or type)."""
        rows = self.client.table("agents").select(column).execute().data
        return dict(Counter(row.get(column) for row in rows))

    # ------------------------------------------------------------------
    # Agent Tasks
    # ------------------------------------------------------------------

    def create_task(self, data: dict[str, Any]) -> dict:
        row = {
            "status": "pending",
            "input": {},
            "output": None,
            "error": None,
            "started_at": None,
            "completed_at": None,
            **data,
            "created_at": utcnow_iso(),
        }
        result = self.client.table("agent_tasks").insert(row).execute()
        return result.data[0] if result.data else {}

    def get_task(self, task_id: str) -> Optional[dict]:
        result = (
            self.client.table("agent_tasks")
            .select("*")
            .eq("id", task_id)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    def update_task(self, task_id: str, updates: dict[str, Any]) -> dict:
        result = (
            self.client.table("agent_tasks")
            .update(updates)
            .eq("id", task_id)
            .execute()
        )
        return result.data[0] if result.data else {}

    def get_oldest_pending_task(self, agent_id: str) -> Optional[dict]:
        result = (
            self.client.table("agent_tasks")
            .select("*")
            .eq("agent_id", agent_id)
            .eq("status", "pending")
            .order("created_at")
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    def get_latest_task(
        self,
        agent_id: str,
        task_type: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Optional[dict]:
        query = (
            self.client.table("agent_tasks")
            .select("*")
            .eq("agent_id", agent_id)
            .order("created_at", desc=True)
            .limit(1)
        )
        if task_type:
            query = query.eq("type", task_type)
        if status:
            query = query.eq("status", status)
        result = query.execute()
        return result.data[0] if result.data else None

    def count_tasks(
        self, agent_id: Optional[str] = None, status: Optional[str] = None
    ) -> int:
        """Count tasks for one agent, or for the whole fleet when agent_id is None."""
        query = self.client.table("agent_tasks").select("id", count="exact")
        if agent_id:
            query = query.eq("agent_id", agent_id)
        if status:
            query = query.eq("status", status)
        return query.execute().count or 0

    def list_tasks(
        self,
        agent_id: str,
        status: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[dict]:
        """List an agent's tasks, newest first."""
        query = (
            self.client.table("agent_tasks")
            .select("*")
            .eq("agent_id", agent_id)
            .order("created_at", desc=True)
            .range(offset, offset + limit - 1)
        )
        if status:
            query = query.eq("status", status)
        return query.execute().data

    # ------------------------------------------------------------------
    # Personas
    # ------------------------------------------------------------------

    def get_persona(self, persona_id: str) -> Optional[dict]:
        result = (
            self.client.table("personas")
            .select("*")
            .eq("id", persona_id)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    def get_persona_by_name(self, name: str) -> Optional[dict]:
        result = (
            self.client.table("personas")
            .select("*")
            .eq("name", name)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    def count_personas(self) -> int:
        result = (
            self.client.table("personas")
            .select("id", count="exact")
            .execute()
        )
        return result.count or 0

    def create_persona(self, data: dict[str, Any]) -> dict:
        now = utcnow_iso()
        row = {**data, "created_at": now, "updated_at": now}
        result = self.client.table("personas").insert(row).execute()
        return result.data[0] if result.data else {}

    def update_persona(self, persona_id: str, updates: dict[str, Any]) -> dict:
        updates = {**updates, "updated_at": utcnow_iso()}
        result = (
            self.client.table("personas")
            .update(updates)
            .eq("id", persona_id)
            .execute()
        )
        return result.data[0] if result.data else {}

    # ------------------------------------------------------------------
    # Customer Leads
    # ------------------------------------------------------------------

    def get_lead(self, lead_id: str) -> Optional[dict]:
        result = (
            self.client.table("customer_leads")
            .select("*")
            .eq("id", lead_id)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    def create_leads(self, rows: Sequence[dict[str, Any]]) -> list[dict]:
        """Bulk insert leads. Returns the stored rows."""
        if not rows:
            return []
        now = utcnow_iso()
        payload = [
            {
                "outreach_status": "discovered",
                "outreach_attempts": 0,
                **row,
                "created_at": now,
                "updated_at": now,
            }
            for row in rows
        ]
        return self.client.table("customer_leads").insert(payload).execute().data

    def update_lead(self, lead_id: str, updates: dict[str, Any]) -> dict:
        updates = {**updates, "updated_at": utcnow_iso()}
        result = (
            self.client.table("customer_leads")
            .update(updates)
            .eq("id", lead_id)
            .execute()
        )
        return result.data[0] if result.data else {}

    def _leads_query(
        self,
        query: Any,
        persona_id: Optional[str],
        status: Optional[str] = None,
        has_email: bool = False,
        missing_any: Sequence[str] = (),
        created_since: Optional[str] = None,
    ) -> Any:
        if persona_id:
            query = query.eq("persona_id", persona_id)
        if status:
            query = query.eq("outreach_status", status)
        if has_email:
            query = query.not_.is_("email", "null")
        if missing_any:
            query = query.or_(",".join(f"{f}.is.null" for f in missing_any))
        if created_since:
            query = query.gte("created_at", created_since)
        return query

    def count_leads(
        self,
        persona_id: Optional[str],
        created_since: Optional[str] = None,
        missing_any: Sequence[str] = (),
    ) -> int:
        """Count leads, optionally recent or missing contact fields. No persona counts all."""
        query = self.client.table("customer_leads").select("id", count="exact")
        query = self._leads_query(
            query,
            persona_id,
            missing_any=missing_any,
            created_since=created_since,
        )
        return query.execute().count or 0

    def list_leads(
        self,
        persona_id: Optional[str],
        status: Optional[str] = None,
        has_email: bool = False,
        missing_any: Sequence[str] = (),
        limit: Optional[int] = None,
    ) -> list[dict]:
        """List leads newest first, for one persona or for all when persona_id is None."""
        query = (
            self.client.table("customer_leads")
            .select("*")
            .order("created_at", desc=True)
        )
        query = self._leads_query(
            query,
            persona_id,
            status=status,
            has_email=has_email,
            missing_any=missing_any,
        )
        if limit:
            query = query.limit(limit)
        return query.execute().data

    # ------------------------------------------------------------------
    # Offers
    # ------------------------------------------------------------------

    def list_offers(
        self,
        min_cps: Optional[float] = None,
        ids: Optional[Sequence[str]] = None,
        exclude_ids: Sequence[str] = (),
        categories_any: Sequence[str] = (),
        order_by: str = "cps",
        descending: bool = True,
        limit: Optional[int] = None,
    ) -> list[dict]:
        query = (
            self.client.table("offers")
            .select("*")
            .order(order_by, desc=descending)
        )
        if min_cps is not None:
            query = query.gte("cps", min_cps)
        if ids is not None:
            if not ids:
                return []
            query = query.in_("id", list(ids))
        if exclude_ids:
            query = query.not_.in_("id", list(exclude_ids))
        if categories_any:
            query = query.overlaps("categories", list(categories_any))
        if limit:
            query = query.limit(limit)
        return query.execute().data

    def update_offer(self, offer_id: str, updates: dict[str, Any]) -> dict:
        updates = {**updates, "updated_at": utcnow_iso()}
        result = (
            self.client.table("offers")
            .update(updates)
            .eq("id", offer_id)
            .execute()
        )
        return result.data[0] if result.data else {}

    def upsert_offer(self, data: dict[str, Any]) -> dict:
        """Insert or update an offer by (source, source_id)."""
        data = {**data, "updated_at": utcnow_iso()}
        result = (
            self.client.table("offers")
            .upsert(data, on_conflict="source,source_id")
            .execute()
        )
        return result.data[0] if result.data else {}

    # ------------------------------------------------------------------
    # Campaigns & Creatives
    # ------------------------------------------------------------------

    def list_campaigns(
        self,
        status: Optional[str] = None,
        persona_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        """List campaigns, oldest first."""
        query = self.client.table("campaigns").select("*").order("created_at")
        if status:
            query = query.eq("status", status)
        if persona_id:
            query = query.eq("persona_id", persona_id)
        if limit:
            query = query.limit(limit)
        return query.execute().data

    def count_campaigns(
        self,
        status: Optional[str] = None,
        persona_id: Optional[str] = None,
    ) -> int:
        query = self.client.table("campaigns").select("id", count="exact")
        if status:
            query = query.eq("status", status)
        if persona_id:
            query = query.eq("persona_id", persona_id)
        return query.execute().count or 0

    def create_campaign(self, data: dict[str, Any]) -> dict:
        now = utcnow_iso()
        row = {"status": "draft", **data, "created_at": now, "updated_at": now}
        result = self.client.table("campaigns").insert(row).execute()
        return result.data[0] if result.data else {}

    def update_campaign(self, campaign_id: str, updates: dict[str, Any]) -> dict:
        updates = {**updates, "updated_at": utcnow_iso()}
        result = (
            self.client.table("campaigns")
            .update(updates)
            .eq("id", campaign_id)
            .execute()
        )
        return result.data[0] if result.data else {}

    def create_creative(self, data: dict[str, Any]) -> dict:
        row = {**data, "created_at": utcnow_iso()}
        result = self.client.table("creatives").insert(row).execute()
        return result.data[0] if result.data else {}

    def list_creatives(
        self, campaign_id: str, channel: Optional[str] = None
    ) -> list[dict]:
        query = (
            self.client.table("creatives")
            .select("*")
            .eq("campaign_id", campaign_id)
            .order("variant")
        )
        if channel:
            query = query.eq("channel", channel)
        return query.execute().data

    # ------------------------------------------------------------------
    # Results & Events
    # ------------------------------------------------------------------

    def list_results(self, campaign_id: str, since: str) -> list[dict]:
        return (
            self.client.table("results")
            .select("*")
            .eq("campaign_id", campaign_id)
            .gte("ts", since)
            .execute()
        ).data

    def list_events(self, since: str, limit: int = 500) -> list[dict]:
        """Site events since a timestamp, newest first."""
        return (
            self.client.table("events")
            .select("*")
            .gte("ts", since)
            .order("ts", desc=True)
            .limit(limit)
            .execute()
        ).data

    # ------------------------------------------------------------------
    # Sent Emails
    # ------------------------------------------------------------------

    def create_sent_email(self, data: dict[str, Any]) -> dict:
        row = {"status": "pending", **data, "created_at": utcnow_iso()}
        result = self.client.table("sent_emails").insert(row).execute()
        return result.data[0] if result.data else {}

    def update_sent_email(self, email_id: str, updates: dict[str, Any]) -> dict:
        result = (
            self.client.table("sent_emails")
            .update(updates)
            .eq("id", email_id)
            .execute()
        )
        return result.data[0] if result.data else {}
