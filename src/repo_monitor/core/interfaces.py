"""Core interfaces for adapters."""

from abc import ABC, abstractmethod
from typing import Optional

from repo_monitor.core.entities import Event, Page, WatchedItem


class PageSource(ABC):
    """Interface for paged, newest-first access to upstream activity."""

    @abstractmethod
    async def fetch_page(
        self, item: WatchedItem, cursor: Optional[str], page_size: int
    ) -> Page:
        """Fetch one page of events for ``item`` starting after ``cursor``."""
        pass


class Notifier(ABC):
    """Interface for delivering a digest of events."""

    @abstractmethod
    async def send(self, events: list[Event]) -> None:
        """Send events to every target.

        Raises:
            DeliveryFailure: If at least one target could not be reached
        """
        pass
