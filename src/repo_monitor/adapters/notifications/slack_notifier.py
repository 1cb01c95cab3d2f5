"""Slack notification adapter."""

import logging
from typing import Optional

import httpx

from repo_monitor.adapters.digest import DigestFormatter
from repo_monitor.core import DeliveryFailure, Event, Notifier

logger = logging.getLogger(__name__)


class SlackNotifier(Notifier):
    """Send digests to Slack via incoming webhooks."""

    def __init__(
        self,
        webhook_urls: list[str],
        formatter: Optional[DigestFormatter] = None,
        timeout: float = 30.0,
    ) -> None:
        """Initialize Slack notifier.

        Args:
            webhook_urls: Slack webhook URLs; every one receives the digest
            formatter: Digest formatter (UTC times if omitted)
            timeout: Per-request timeout in seconds
        """
        self.webhook_urls = [url for url in dict.fromkeys(webhook_urls) if url]
        self.formatter = formatter or DigestFormatter()
        self.timeout = timeout

    def build_payload(self, events: list[Event]) -> dict:
        subject = self.formatter.subject(events)
        message = f"📡 *{subject}*\n\n{self.formatter.mrkdwn(events)}"
        return {
            "text": message,
            "mrkdwn": True,
        }

    async def send(self, events: list[Event]) -> None:
        """Post the digest to every webhook.

        Raises:
            DeliveryFailure: If any webhook rejected the message
        """
        if not events or not self.webhook_urls:
            return

        payload = self.build_payload(events)
        failed = 0

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for index, webhook_url in enumerate(self.webhook_urls, 1):
                try:
                    response = await client.post(webhook_url, json=payload)
                    response.raise_for_status()
                except (httpx.HTTPError, httpx.InvalidURL) as e:
                    failed += 1
                    # Webhook URLs are secrets, log only the position
                    logger.warning("Slack webhook #%d failed: %s", index, type(e).__name__)

        if failed:
            raise DeliveryFailure(failed, f"Failed to deliver to {failed} Slack webhook(s)")

        logger.info("Digest sent to Slack")
