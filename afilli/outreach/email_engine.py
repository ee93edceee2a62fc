"""
Email sending engine for Afilli.

Dispatches HTML email through SendGrid or Mailgun and records every
attempt in the sent_emails table (pending -> sent | failed).

send_email() never raises for delivery problems: callers get
{"success": False, "error": ...} so a bounced or unconfigured send
does not fail the surrounding task.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from bs4 import BeautifulSoup

from afilli.config.loader import resolve_secret
from afilli.config.schema import EmailConfig
from afilli.integrations.supabase_client import utcnow_iso

logger = logging.getLogger(__name__)

SENDGRID_BASE_URL = "https://api.sendgrid.com/v3"


def html_to_text(body_html: str) -> str:
    return BeautifulSoup(body_html, "html.parser").get_text("\n", strip=True)


class EmailEngine:
    """
    Email sending engine with provider abstraction.

    Supports SendGrid and Mailgun with open/click tracking.
    """

    def __init__(self, db: Any, config: Optional[EmailConfig] = None):
        self.db = db
        self.config = config or EmailConfig()
        self.provider = self.config.provider
        self.api_key = resolve_secret(self.config.api_key_env) or ""

        if self.provider == "mailgun":
            domain = resolve_secret(self.config.mailgun_domain_env) or ""
            self.base_url = f"https://api.mailgun.net/v3/{domain}"
        else:
            self.base_url = SENDGRID_BASE_URL

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def send_email(
        self,
        to_email: str,
        subject: str,
        body_html: str,
        lead_id: Optional[str] = None,
        to_name: str = "",
    ) -> dict[str, Any]:
        """
        Send one email and record it.

        Returns:
            {"success": True, "email_id": ...} or
            {"success": False, "error": ..., "email_id": ... (if recorded)}
        """
        if not self.configured:
            logger.warning("email_not_configured", extra={"lead_id": lead_id})
            return {"success": False, "error": "Email service not configured"}

        record = self.db.create_sent_email({
            "lead_id": lead_id,
            "to_email": to_email,
            "subject": subject,
            "body": body_html,
            "provider": self.provider,
            "status": "pending",
        })
        email_id = record.get("id")

        try:
            if self.provider == "mailgun":
                result = await self._send_mailgun(to_email, to_name, subject, body_html, email_id)
            else:
                result = await self._send_sendgrid(to_email, to_name, subject, body_html, email_id)
        except httpx.HTTPError as e:
            result = {"status": "failed", "message_id": "", "error": str(e)}

        if result["status"] == "sent":
            self.db.update_sent_email(email_id, {
                "status": "sent",
                "sent_at": utcnow_iso(),
                "provider_message_id": result.get("message_id"),
            })
            logger.info(
                "email_sent",
                extra={"lead_id": lead_id, "email_id": email_id, "provider": self.provider},
            )
            return {"success": True, "email_id": email_id}

        self.db.update_sent_email(email_id, {
            "status": "failed",
            "error_message": result.get("error", "unknown error"),
        })
        logger.error(
            "email_send_failed",
            extra={"lead_id": lead_id, "email_id": email_id, "error": result.get("error")},
        )
        return {
            "success": False,
            "email_id": email_id,
            "error": result.get("error", "unknown error"),
        }

    async def _send_sendgrid(
        self,
        to_email: str,
        to_name: str,
        subject: str,
        body_html: str,
        tracking_id: Optional[str],
    ) -> dict[str, Any]:
        recipient = {"email": to_email}
        if to_name:
            recipient["name"] = to_name
        payload: dict[str, Any] = {
            "personalizations": [{"to": [recipient], "subject": subject}],
            "from": {"email": self.config.from_email, "name": self.config.from_name},
            "content": [
                {"type": "text/plain", "value": html_to_text(body_html)},
                {"type": "text/html", "value": body_html},
            ],
            "tracking_settings": {
                "click_tracking": {"enable": self.config.track_clicks},
                "open_tracking": {"enable": self.config.track_opens},
            },
        }
        if tracking_id:
            payload["personalizations"][0]["custom_args"] = {"email_id": tracking_id}

        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.post(
                f"{self.base_url}/mail/send",
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
            )

        if response.status_code in (200, 201, 202):
            return {
                "status": "sent",
                "message_id": response.headers.get("X-Message-Id", ""),
            }
        return {
            "status": "failed",
            "message_id": "",
            "error": f"SendGrid error {response.status_code}: {response.text[:200]}",
        }

    async def _send_mailgun(
        self,
        to_email: str,
        to_name: str,
        subject: str,
        body_html: str,
        tracking_id: Optional[str],
    ) -> dict[str, Any]:
        data = {
            "from": f"{self.config.from_name} <{self.config.from_email}>",
            "to": f"{to_name} <{to_email}>" if to_name else to_email,
            "subject": subject,
            "text": html_to_text(body_html),
            "html": body_html,
            "o:tracking": "yes",
            "o:tracking-clicks": "yes" if self.config.track_clicks else "no",
            "o:tracking-opens": "yes" if self.config.track_opens else "no",
        }
        if tracking_id:
            data["v:email_id"] = tracking_id

        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.post(
                f"{self.base_url}/messages",
                auth=("api", self.api_key),
                data=data,
            )

        if response.status_code == 200:
            try:
                message_id = response.json().get("id", "")
            except ValueError:
                message_id = ""
            return {"status": "sent", "message_id": message_id}
        return {
            "status": "failed",
            "message_id": "",
            "error": f"Mailgun error {response.status_code}: {response.text[:200]}",
        }
