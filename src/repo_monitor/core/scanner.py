"""Incremental page-by-page scan of watched items."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional

from repo_monitor.core.entities import Event, ProgressRecord, RateLimit, WatchedItem
from repo_monitor.core.interfaces import PageSource
from repo_monitor.core.mutations import (
    AdvanceWatermark,
    AppendNotifiedId,
    Mutation,
    SetResumeCursor,
)
from repo_monitor.core.progress_store import ProgressStore

logger = logging.getLogger(__name__)

LOOKBACK_WINDOW = timedelta(minutes=30)
PAGE_SIZE = 25
RATE_LIMIT_THRESHOLD = 100
RATE_LIMIT_REASON = "rate limit"


@dataclass
class ScanResult:
    """Events found by a scan and the progress changes it proposes."""

    events: list[Event] = field(default_factory=list)
    mutations: list[Mutation] = field(default_factory=list)
    rate_limit: Optional[RateLimit] = None
    incomplete: bool = False

    def merge(self, other: "ScanResult") -> None:
        self.events.extend(other.events)
        self.mutations.extend(other.mutations)
        if other.rate_limit is not None:
            self.rate_limit = other.rate_limit


class Scanner:
    """Walk each watched item's activity newest-first until already-surveyed ground.

    The store is only read. Progress changes are returned as mutations so the
    caller can decide whether to commit them.
    """

    def __init__(
        self,
        store: ProgressStore,
        source: PageSource,
        lookback: timedelta = LOOKBACK_WINDOW,
        page_size: int = PAGE_SIZE,
        rate_limit_threshold: int = RATE_LIMIT_THRESHOLD,
    ) -> None:
        self.store = store
        self.source = source
        self.lookback = lookback
        self.page_size = page_size
        self.rate_limit_threshold = rate_limit_threshold

    async def scan(self, watch_list: Iterable[WatchedItem]) -> ScanResult:
        """Scan items in watch-list order, stopping early when the rate budget runs low."""
        result = ScanResult()

        for item in watch_list:
            item_result = await self.scan_item(item)
            result.merge(item_result)
            logger.debug("%s: %d new event(s)", item, len(item_result.events))

            if self._is_rate_limited(result.rate_limit):
                logger.warning(
                    "Rate limit low (%d remaining), deferring remaining items to next run",
                    result.rate_limit.remaining,
                )
                result.incomplete = True
                break

        return result

    async def scan_item(self, item: WatchedItem) -> ScanResult:
        """Scan a single watched item."""
        record = self.store.get(item)
        threshold = self.threshold_for(record)
        cursor = record.resume_cursor

        result = ScanResult()
        surfaced: set[str] = set()
        new_watermark: Optional[datetime] = None

        while True:
            page = await self.source.fetch_page(item, cursor, self.page_size)
            if page.rate_limit is not None:
                result.rate_limit = page.rate_limit

            if not page.events:
                break

            for event in page.events:
                if event.time is None:
                    continue

                if new_watermark is None or event.time > new_watermark:
                    new_watermark = event.time

                # Pages are newest first, so everything after this is older too
                if event.time < threshold:
                    break

                if record.is_notified(event.id) or event.id in surfaced:
                    continue

                surfaced.add(event.id)
                result.events.append(event)
                result.mutations.append(AppendNotifiedId(item.repo, item.kind, event.id))

            oldest = page.events[-1].time
            if oldest is not None and oldest < threshold:
                break
            if not page.has_more or not page.next_cursor:
                break

            if self._is_rate_limited(result.rate_limit):
                logger.warning("%s: rate limit low, saving resume cursor", item)
                result.mutations.append(
                    SetResumeCursor(item.repo, item.kind, page.next_cursor, RATE_LIMIT_REASON)
                )
                result.incomplete = True
                return result

            cursor = page.next_cursor

        if new_watermark is not None:
            result.mutations.append(AdvanceWatermark(item.repo, item.kind, new_watermark))

        return result

    def threshold_for(self, record: ProgressRecord) -> datetime:
        """Oldest event time still eligible for notification."""
        return max(record.watermark_time - self.lookback, record.baseline_time)

    def _is_rate_limited(self, rate_limit: Optional[RateLimit]) -> bool:
        return rate_limit is not None and rate_limit.remaining < self.rate_limit_threshold
