"""Email notification adapter."""

import asyncio
import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Callable, Optional

from repo_monitor.adapters.digest import DigestFormatter
from repo_monitor.config import SmtpConfig
from repo_monitor.core import DeliveryFailure, Event, Notifier

logger = logging.getLogger(__name__)


class EmailNotifier(Notifier):
    """Send one multipart digest email per recipient over SMTP."""

    def __init__(
        self,
        sender: str,
        recipients: list[str],
        smtp: SmtpConfig,
        formatter: Optional[DigestFormatter] = None,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
        timeout: float = 30.0,
    ) -> None:
        self.sender = sender
        self.recipients = list(dict.fromkeys(recipients))
        self.smtp = smtp
        self.formatter = formatter or DigestFormatter()
        self.smtp_factory = smtp_factory
        self.timeout = timeout

    def build_message(self, events: list[Event], recipient: str) -> EmailMessage:
        """Build a text + HTML message for one recipient."""
        message = EmailMessage()
        message["Subject"] = self.formatter.subject(events)
        message["From"] = self.sender
        message["To"] = recipient
        message.set_content(self.formatter.text(events), charset="utf-8")
        message.add_alternative(self.formatter.html(events), subtype="html", charset="utf-8")
        return message

    async def send(self, events: list[Event]) -> None:
        """Email every recipient, continuing past individual failures.

        Raises:
            DeliveryFailure: If any recipient could not be reached
        """
        if not events:
            return

        failed = 0
        for index, recipient in enumerate(self.recipients, 1):
            message = self.build_message(events, recipient)
            try:
                await asyncio.to_thread(self._deliver, message)
            except Exception as e:
                failed += 1
                # Addresses are personal data, log only the position
                logger.warning("Email to recipient #%d failed: %s", index, type(e).__name__)

        if failed:
            raise DeliveryFailure(failed, f"Failed to deliver to {failed} recipient(s)")

        logger.info("Digest emailed to %d recipient(s)", len(self.recipients))

    def _deliver(self, message: EmailMessage) -> None:
        with self.smtp_factory(self.smtp.host, self.smtp.port, timeout=self.timeout) as client:
            client.ehlo()
            if client.has_extn("starttls"):
                client.starttls(context=ssl.create_default_context())
                client.ehlo()
            if self.smtp.username:
                client.login(self.smtp.username, self.smtp.password or "")
            client.send_message(message)
