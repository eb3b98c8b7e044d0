"""
Email Dispatcher — delivers notification emails via SendGrid.

The notification service picks the template kind and payload; this
dispatcher renders the template and handles delivery.

Configuration (environment variables, see mindtrack.settings):
  SENDGRID_API_KEY     — SendGrid API key (unset: stub mode, nothing is sent)
  SENDGRID_FROM_EMAIL  — Sender email (e.g., "noreply@mindtrack.app")
  SENDGRID_FROM_NAME   — Sender display name (default: "MindTrack Clinic")
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Email, Mail, To

from mindtrack.notifications import templates
from mindtrack.notifications.dispatchers.base import EmailSender

logger = logging.getLogger("notifications.email")


class SendGridEmailDispatcher(EmailSender):
    """Renders a registered template and sends it through the SendGrid API."""

    def __init__(
        self,
        api_key: str = "",
        from_email: str = "noreply@mindtrack.app",
        from_name: str = "MindTrack Clinic",
    ) -> None:
        self._api_key = api_key
        self._from_email = from_email
        self._from_name = from_name
        self._client: SendGridAPIClient | None = None

    @property
    def stub_mode(self) -> bool:
        return not self._api_key

    def _get_client(self) -> SendGridAPIClient | None:
        """Lazy-initialize the SendGrid client."""
        if self._client is None:
            if not self._api_key:
                logger.warning(
                    "SENDGRID_API_KEY not set — email dispatcher in stub mode"
                )
                return None
            try:
                self._client = SendGridAPIClient(self._api_key)
                logger.info("SendGrid client initialized")
            except Exception as exc:
                logger.error("Failed to initialize SendGrid client: %s", exc)
        return self._client

    async def send(
        self, template_kind: str, recipient: str, payload: dict[str, Any]
    ) -> bool:
        if not recipient:
            logger.warning("Email dispatch: no recipient address")
            return False

        try:
            rendered = templates.render(template_kind, payload)
        except Exception as exc:
            logger.error("Failed to render %s email: %s", template_kind, exc)
            return False

        client = self._get_client()
        if client is None:
            logger.info("Email stub: %s → %s", rendered.subject, recipient)
            return True

        message = Mail(
            from_email=Email(self._from_email, self._from_name),
            to_emails=To(recipient),
            subject=rendered.subject,
            plain_text_content=rendered.text,
            html_content=rendered.html,
        )

        try:
            sg_response = await asyncio.to_thread(client.send, message)
        except Exception as exc:
            logger.error("Email send error: %s", exc)
            return False

        status_code = sg_response.status_code
        if 200 <= status_code < 300:
            logger.info(
                "Email sent: %s → %s (status=%d)",
                rendered.subject, recipient, status_code,
            )
            return True

        logger.error(
            "Email send failed: status=%d body=%s", status_code, sg_response.body
        )
        return False
