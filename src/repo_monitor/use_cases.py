"""Business logic use cases."""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from repo_monitor.core import (
    DeliveryFailure,
    Notifier,
    ProgressStore,
    RateLimit,
    RunStatus,
    Scanner,
    WatchedItem,
)
from repo_monitor.core.entities import utc_now

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Summary of one monitoring run."""

    status: RunStatus
    events_count: int = 0
    rate_limit: Optional[RateLimit] = None
    incomplete: bool = False
    delivery_error: Optional[DeliveryFailure] = None


class RunService:
    """Run one poll: reconcile, scan, deliver, then commit progress.

    Scan progress is committed only when delivery succeeds, so undelivered
    events are found again on the next run. Reconciliation and run bookkeeping
    are always persisted, even when the run fails.
    """

    def __init__(
        self,
        store: ProgressStore,
        scanner: Scanner,
        notifier: Notifier,
        watch_list: Sequence[WatchedItem],
        persist_state: bool = True,
    ) -> None:
        self.store = store
        self.scanner = scanner
        self.notifier = notifier
        self.watch_list = list(watch_list)
        self.persist_state = persist_state

    async def run(self) -> RunResult:
        """Execute a single run and persist the store afterwards."""
        logger.info("Starting run for %d watched item(s)", len(self.watch_list))

        started_at = utc_now()
        self.store.start_run(started_at)
        error: Optional[Exception] = None

        try:
            self.store.reconcile(self.watch_list, baseline_time=started_at)
            result = await self._scan_and_deliver()
            self.store.finish_run(result.status, result.rate_limit)
        except Exception as e:
            error = e
            self.store.finish_run(RunStatus.ERROR)
            logger.error("Run failed: %s", e)
            raise
        finally:
            self._save_state(error)

        self._log_result(result)
        return result

    async def _scan_and_deliver(self) -> RunResult:
        scan = await self.scanner.scan(self.watch_list)
        status = RunStatus.INCOMPLETE if scan.incomplete else RunStatus.SUCCESS

        if scan.events:
            logger.info("Found %d new event(s)", len(scan.events))
            try:
                await self.notifier.send(scan.events)
            except DeliveryFailure as e:
                logger.warning("Delivery partially failed: %s", e)
                logger.warning(
                    "Progress was not committed; events will be retried next run"
                )
                return RunResult(
                    status=RunStatus.PARTIAL_FAILURE,
                    events_count=len(scan.events),
                    rate_limit=scan.rate_limit,
                    incomplete=scan.incomplete,
                    delivery_error=e,
                )
            logger.info("Delivered digest")
        else:
            logger.info("No new events found")

        applied = self.store.commit_all(scan.mutations)
        logger.debug("Committed %d progress change(s)", applied)

        return RunResult(
            status=status,
            events_count=len(scan.events),
            rate_limit=scan.rate_limit,
            incomplete=scan.incomplete,
        )

    def _save_state(self, original_error: Optional[Exception]) -> None:
        if not self.persist_state:
            return

        try:
            self.store.save()
        except Exception as e:
            logger.error("Failed to save state: %s", e)
            # Keep the original error
            if original_error is None:
                raise

    def _log_result(self, result: RunResult) -> None:
        if result.status == RunStatus.SUCCESS:
            logger.info("Run completed successfully. Events: %d", result.events_count)
        elif result.status == RunStatus.INCOMPLETE:
            logger.warning("Run completed but incomplete due to rate limiting")
        elif result.status == RunStatus.PARTIAL_FAILURE:
            logger.warning("Run completed with partial delivery failure")

        if result.rate_limit is not None:
            logger.info("Rate limit remaining: %d", result.rate_limit.remaining)
