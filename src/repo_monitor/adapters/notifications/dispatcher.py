"""Fan one digest out to every configured channel."""

import logging

from repo_monitor.core import DeliveryFailure, Event, Notifier

logger = logging.getLogger(__name__)


class NotificationDispatcher(Notifier):
    """Deliver through every notifier, then report all failures at once."""

    def __init__(self, notifiers: list[Notifier]) -> None:
        self.notifiers = notifiers

    async def send(self, events: list[Event]) -> None:
        failed = 0

        for notifier in self.notifiers:
            try:
                await notifier.send(events)
            except DeliveryFailure as e:
                logger.warning("%s: %s", type(notifier).__name__, e)
                failed += e.failed_count
            except Exception as e:
                # The message may name a target, log only the type
                logger.warning("%s failed: %s", type(notifier).__name__, type(e).__name__)
                failed += 1

        if failed:
            raise DeliveryFailure(failed)
