"""
Email Service (SendGrid)

Sends the password recovery and new-account welcome emails. Falls back gracefully if email is not
configured: the send is logged and reported as failed, never raised.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)

PASSWORD_RECOVERY_SUBJECT = "Password recovery"
WELCOME_SUBJECT = "Welcome to Travel App - Set Your Password"

TEMPLATES = {
    "password_reset": (
        "Hello {username},\n\n"
        "Someone asked to reset the password for your Trip Planner account.\n"
        "Use the link below within 24 hours to choose a new password:\n\n"
        "{resetLink}\n\n"
        "If you did not ask for this, you can ignore this email.\n"
    ),
    "welcome": (
        "Hello {username},\n\n"
        "An administrator created a Trip Planner account for you with the {role} role.\n"
        "Use the link below within 24 hours to set your password:\n\n"
        "{resetLink}\n"
    ),
}


@dataclass
class SendResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class EmailService:
    """Transactional email over the SendGrid v3 HTTP API."""

    BASE_URL = "https://api.sendgrid.com/v3"

    def __init__(self):
        self.api_key = settings.SENDGRID_API_KEY
        self.from_email = settings.SENDGRID_FROM_EMAIL
        self.from_name = settings.SENDGRID_FROM_NAME
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=30.0,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
            )
        return self._http_client

    async def close(self):
        """Explicit cleanup method."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def send(
        self,
        to_email: str,
        subject: str,
        template: str,
        context: Dict[str, Any],
    ) -> SendResult:
        """Render a plain-text template and send it to one recipient."""
        if not self.api_key:
            logger.warning(f"SendGrid API key not configured, '{template}' email not sent")
            return SendResult(success=False, error="Email not configured")

        body = TEMPLATES[template].format(**context)
        payload = {
            "personalizations": [{"to": [{"email": to_email}]}],
            "from": {"email": self.from_email, "name": self.from_name},
            "subject": subject,
            "content": [{"type": "text/plain", "value": body}],
        }

        http = await self._get_http_client()
        try:
            resp = await http.post(f"{self.BASE_URL}/mail/send", json=payload)
        except httpx.HTTPError as e:
            logger.error(f"SendGrid request failed for '{template}' email: {e}")
            return SendResult(success=False, error=str(e))

        if resp.status_code in (200, 202):
            return SendResult(success=True, message_id=resp.headers.get("X-Message-Id"))

        logger.error(f"SendGrid rejected '{template}' email: {resp.status_code} - {resp.text}")
        return SendResult(success=False, error=resp.text)

    async def send_password_reset(self, to_email: str, username: str, token: str) -> SendResult:
        reset_link = build_reset_link(token)
        return await self.send(
            to_email,
            PASSWORD_RECOVERY_SUBJECT,
            "password_reset",
            {"username": username, "resetLink": reset_link},
        )

    async def send_welcome(self, to_email: str, username: str, token: str, role: str) -> SendResult:
        """Account created by an admin: the reset link doubles as the set-password link."""
        return await self.send(
            to_email,
            WELCOME_SUBJECT,
            "welcome",
            {"username": username, "resetLink": build_reset_link(token), "role": role},
        )


def build_reset_link(token: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/reset-password/{token}"


# Singleton service instance
_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """Get or create singleton email service (FastAPI dependency)."""
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service


async def close_email_service() -> None:
    if _email_service is not None:
        await _email_service.close()
