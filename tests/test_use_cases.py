"""Tests for use cases."""

import json
from pathlib import Path
from typing import Optional
from unittest.mock import AsyncMock, Mock

import pytest

from repo_monitor.core import (
    DeliveryFailure,
    Event,
    EventKind,
    Page,
    ProgressStore,
    RateLimit,
    RunStatus,
    Scanner,
    StateError,
    TransportError,
    WatchedItem,
)
from repo_monitor.core.entities import parse_timestamp
from repo_monitor.use_cases import RunService

BASELINE = parse_timestamp("2024-01-01T00:00:00Z")

RELEASES = WatchedItem("owner/repo", EventKind.RELEASE)
ISSUES = WatchedItem("owner/repo", EventKind.ISSUE_CREATED)


def make_event(event_id: str, time: str) -> Event:
    return Event(
        kind=EventKind.RELEASE,
        repo="owner/repo",
        id=event_id,
        title=f"v{event_id}",
        url=f"https://github.com/owner/repo/releases/{event_id}",
        time=parse_timestamp(time),
    )


def make_source(*pages: Page) -> Mock:
    source = Mock()
    source.fetch_page = AsyncMock(side_effect=list(pages))
    return source


def single_page(*events: Event, next_cursor: Optional[str] = None, remaining: int = 4999) -> Page:
    return Page(
        events=list(events),
        has_more=next_cursor is not None,
        next_cursor=next_cursor,
        rate_limit=RateLimit(remaining=remaining, cost=1),
    )


def make_store(path: Path, *items: WatchedItem) -> ProgressStore:
    """Store whose records were created well before the test events."""
    store = ProgressStore(path)
    store.reconcile(list(items) or [RELEASES], baseline_time=BASELINE)
    return store


def make_service(store: ProgressStore, source, notifier, watch_list=None, **kwargs) -> RunService:
    return RunService(
        store=store,
        scanner=Scanner(store, source),
        notifier=notifier,
        watch_list=watch_list or [RELEASES],
        **kwargs,
    )


def saved_state(path: Path) -> dict:
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.mark.asyncio
async def test_run_delivers_and_commits(tmp_path: Path) -> None:
    """Test that a successful run delivers events and commits progress."""
    path = tmp_path / "state.json"
    store = make_store(path)
    event = make_event("R1", "2024-01-15T12:00:00Z")
    notifier = AsyncMock()

    service = make_service(store, make_source(single_page(event)), notifier)
    result = await service.run()

    assert result.status == RunStatus.SUCCESS
    assert result.events_count == 1
    assert result.rate_limit.remaining == 4999
    notifier.send.assert_awaited_once_with([event])

    record = store.get(RELEASES)
    assert record.is_notified("R1")
    assert record.watermark_time == event.time
    assert record.last_success_at is not None

    data = saved_state(path)
    assert data["last_run"]["status"] == "success"
    assert data["repos"]["owner/repo"]["events"]["release"]["recently_notified_ids"] == ["R1"]


@pytest.mark.asyncio
async def test_delivery_failure_does_not_commit(tmp_path: Path) -> None:
    """Test that events are rediscovered after a failed delivery."""
    path = tmp_path / "state.json"
    store = make_store(path)
    event = make_event("R1", "2024-01-15T12:00:00Z")
    notifier = AsyncMock()
    notifier.send.side_effect = DeliveryFailure(1)

    service = make_service(store, make_source(single_page(event), single_page(event)), notifier)
    result = await service.run()

    assert result.status == RunStatus.PARTIAL_FAILURE
    assert result.delivery_error.failed_count == 1
    record = store.get(RELEASES)
    assert not record.is_notified("R1")
    assert record.watermark_time == BASELINE
    assert saved_state(path)["last_run"]["status"] == "partial_failure"

    # Next run finds the same event again
    notifier.send.side_effect = None
    result = await service.run()

    assert result.status == RunStatus.SUCCESS
    assert notifier.send.await_count == 2
    assert notifier.send.await_args.args[0] == [event]
    assert store.get(RELEASES).is_notified("R1")


@pytest.mark.asyncio
async def test_run_without_events_skips_delivery(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    store = make_store(path)
    notifier = AsyncMock()

    service = make_service(store, make_source(single_page()), notifier)
    result = await service.run()

    assert result.status == RunStatus.SUCCESS
    assert result.events_count == 0
    notifier.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_scan_error_marks_run_and_saves(tmp_path: Path) -> None:
    """Test that a failing scan is recorded, persisted, and re-raised."""
    path = tmp_path / "state.json"
    store = ProgressStore(path)
    source = Mock()
    source.fetch_page = AsyncMock(side_effect=TransportError("GraphQL errors: boom"))

    service = make_service(store, source, AsyncMock(), watch_list=[RELEASES, ISSUES])

    with pytest.raises(TransportError, match="boom"):
        await service.run()

    data = saved_state(path)
    assert data["last_run"]["status"] == "error"
    assert data["last_run"]["finished_at"] is not None
    # Reconciliation survives the failed run
    assert set(data["repos"]["owner/repo"]["events"]) == {"release", "issue_created"}


@pytest.mark.asyncio
async def test_save_failure_does_not_mask_run_error(tmp_path: Path) -> None:
    store = make_store(tmp_path / "state.json")
    store.save = Mock(side_effect=StateError("disk full"))
    source = Mock()
    source.fetch_page = AsyncMock(side_effect=TransportError("timeout"))

    service = make_service(store, source, AsyncMock())

    with pytest.raises(TransportError):
        await service.run()
    store.save.assert_called_once()


@pytest.mark.asyncio
async def test_save_failure_after_success_is_raised(tmp_path: Path) -> None:
    store = make_store(tmp_path / "state.json")
    store.save = Mock(side_effect=StateError("disk full"))

    service = make_service(store, make_source(single_page()), AsyncMock())

    with pytest.raises(StateError, match="disk full"):
        await service.run()


@pytest.mark.asyncio
async def test_run_without_persisting_state(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    store = make_store(path)
    event = make_event("R1", "2024-01-15T12:00:00Z")

    service = make_service(store, make_source(single_page(event)), AsyncMock(), persist_state=False)
    result = await service.run()

    assert result.status == RunStatus.SUCCESS
    assert not path.exists()


@pytest.mark.asyncio
async def test_rate_limited_run_is_incomplete(tmp_path: Path) -> None:
    """Test that a rate-limited scan still delivers and saves a resume cursor."""
    path = tmp_path / "state.json"
    store = make_store(path)
    event = make_event("R2", "2024-01-15T12:00:00Z")
    notifier = AsyncMock()

    page = single_page(event, next_cursor="cursor-1", remaining=10)
    service = make_service(store, make_source(page), notifier)
    result = await service.run()

    assert result.status == RunStatus.INCOMPLETE
    assert result.incomplete is True
    notifier.send.assert_awaited_once_with([event])

    record = store.get(RELEASES)
    assert record.resume_cursor == "cursor-1"
    assert record.incomplete is True
    assert record.reason == "rate limit"
    assert record.watermark_time == BASELINE
    assert record.is_notified("R2")
    assert saved_state(path)["last_run"]["status"] == "incomplete"


@pytest.mark.asyncio
async def test_run_prunes_unwatched_records(tmp_path: Path) -> None:
    store = make_store(tmp_path / "state.json", RELEASES, ISSUES)

    service = make_service(store, make_source(single_page()), AsyncMock(), watch_list=[RELEASES])
    await service.run()

    assert list(store.repos["owner/repo"].events) == [EventKind.RELEASE]
