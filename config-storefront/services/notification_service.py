"""
Notification service for delivering purchase emails over SMTP.

Sends a plain-text body with an HTML alternative. A send only counts as
delivered once the SMTP server has accepted the message for the recipient;
anything else raises NotificationFailed.
"""

from __future__ import annotations

import html
import logging
import smtplib
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Any, Callable, Optional

from domain.errors import NotificationFailed
from domain.purchase import EmailContent

logger = logging.getLogger(__name__)

# Implicit TLS port; every other port upgrades with STARTTLS when offered.
SMTPS_PORT = 465


def _render_html(content: EmailContent) -> str:
    body = html.escape(content.body).replace("\n", "<br>")
    parts = [f"<h2>{html.escape(content.subject)}</h2>", f"<p>{body}</p>"]
    if content.price_usd is not None:
        parts.append(f"<p>Price: ${content.price_usd} USD</p>")
    return "\n".join(parts)


class SmtpNotificationSender:
    """Delivers EmailContent to a single buyer address."""

    def __init__(
        self,
        host: Optional[str],
        port: int,
        *,
        username: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
        timeout: float = 10.0,
        smtp_factory: Optional[Callable[..., Any]] = None,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._sender = sender or username
        self._timeout = timeout
        self._smtp_factory = smtp_factory

        if not self.is_configured:
            logger.warning("Email sending is not fully configured. Missing SMTP environment variables.")

    @property
    def is_configured(self) -> bool:
        return bool(self._host and self._sender)

    def build_message(self, to: str, content: EmailContent) -> EmailMessage:
        """Build the MIME message for `content` addressed to `to`."""

        message = EmailMessage()
        message["From"] = self._sender or ""
        message["To"] = to
        message["Subject"] = content.subject
        message["Message-ID"] = make_msgid()
        message.set_content(content.body)
        message.add_alternative(_render_html(content), subtype="html")
        return message

    def _connect(self) -> Any:
        if self._smtp_factory is not None:
            return self._smtp_factory(self._host, self._port, timeout=self._timeout)
        if self._port == SMTPS_PORT:
            return smtplib.SMTP_SSL(self._host, self._port, timeout=self._timeout)
        return smtplib.SMTP(self._host, self._port, timeout=self._timeout)

    def send(self, to: str, content: EmailContent) -> str:
        """
        Send `content` to `to` and return the Message-ID.

        Raises:
            NotificationFailed: SMTP not configured, unreachable, or recipient refused
        """

        if not self.is_configured:
            raise NotificationFailed("Email host not configured; cannot send email")

        message = self.build_message(to, content)

        try:
            with self._connect() as smtp:
                if self._port != SMTPS_PORT:
                    smtp.ehlo()
                    if smtp.has_extn("starttls"):
                        smtp.starttls()
                        smtp.ehlo()
                if self._username and self._password:
                    smtp.login(self._username, self._password)
                refused = smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationFailed(f"Error sending email to {to}: {e}") from e

        if refused and to in refused:
            raise NotificationFailed(f"SMTP server refused recipient {to}: {refused[to]}")

        message_id = str(message["Message-ID"])
        logger.info("Message sent: %s (%s)", message_id, content.subject)
        return message_id


__all__ = ["SmtpNotificationSender"]
