"""Tests for core entities."""

from collections import deque
from datetime import datetime, timezone

import pytest

from repo_monitor.core import Event, EventKind, ProgressRecord, RateLimit, RunRecord, RunStatus, WatchedItem
from repo_monitor.core.entities import RECENT_IDS_LIMIT, format_timestamp, parse_timestamp


def test_event_creation() -> None:
    """Test creating a valid event."""
    event = Event(
        kind=EventKind.RELEASE,
        repo="owner/repo",
        id="RE_1",
        title="v1.0.0",
        url="https://github.com/owner/repo/releases/tag/v1.0.0",
        time=datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc),
        extra={"tag_name": "v1.0.0"},
    )

    assert event.kind == EventKind.RELEASE
    assert event.author is None
    assert event.extra["tag_name"] == "v1.0.0"


def test_event_validation() -> None:
    """Test event validation."""
    with pytest.raises(ValueError, match="Event id cannot be empty"):
        Event(
            kind=EventKind.ISSUE_CREATED,
            repo="owner/repo",
            id="",
            title="Bug",
            url="https://github.com/owner/repo/issues/1",
            time=None,
        )


def test_event_kind_labels() -> None:
    assert EventKind.RELEASE.label == "Release"
    assert EventKind.PULL_REQUEST_CREATED.label == "PR Created"
    assert EventKind.PULL_REQUEST_MERGED.label == "PR Merged"
    assert EventKind.ISSUE_CREATED.label == "Issue Created"


def test_watched_item_owner_and_name() -> None:
    item = WatchedItem("octo/cat", EventKind.RELEASE)

    assert item.owner == "octo"
    assert item.name == "cat"
    assert str(item) == "octo/cat:release"


def test_timestamp_round_trip_is_utc_z() -> None:
    parsed = parse_timestamp("2024-01-15T21:00:00+09:00")

    assert parsed == datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
    assert format_timestamp(parsed) == "2024-01-15T12:00:00Z"
    assert parse_timestamp(None) is None
    assert format_timestamp(None) is None


def test_progress_record_trims_oldest_ids() -> None:
    """Recently notified ids keep only the newest entries."""
    record = ProgressRecord.starting_at(datetime(2024, 1, 1, tzinfo=timezone.utc))

    for i in range(RECENT_IDS_LIMIT + 5):
        record.recently_notified_ids.append(f"ID_{i}")

    assert len(record.recently_notified_ids) == RECENT_IDS_LIMIT
    assert record.recently_notified_ids[0] == "ID_5"
    assert record.is_notified(f"ID_{RECENT_IDS_LIMIT + 4}")
    assert not record.is_notified("ID_0")


def test_progress_record_from_dict_with_oversized_ids() -> None:
    record = ProgressRecord.from_dict(
        {
            "baseline_time": "2024-01-01T00:00:00Z",
            "watermark_time": "2024-01-02T00:00:00Z",
            "recently_notified_ids": [f"ID_{i}" for i in range(150)],
        }
    )

    assert isinstance(record.recently_notified_ids, deque)
    assert len(record.recently_notified_ids) == RECENT_IDS_LIMIT
    assert record.recently_notified_ids[0] == "ID_50"
    assert record.resume_cursor is None
    assert record.incomplete is False


def test_progress_record_watermark_never_below_baseline() -> None:
    record = ProgressRecord.from_dict(
        {
            "baseline_time": "2024-01-15T00:00:00Z",
            "watermark_time": "2024-01-01T00:00:00Z",
        }
    )

    assert record.watermark_time == record.baseline_time


def test_progress_record_to_dict() -> None:
    record = ProgressRecord.starting_at(datetime(2024, 1, 1, tzinfo=timezone.utc))
    record.recently_notified_ids.append("RE_1")

    assert record.to_dict() == {
        "baseline_time": "2024-01-01T00:00:00Z",
        "watermark_time": "2024-01-01T00:00:00Z",
        "resume_cursor": None,
        "recently_notified_ids": ["RE_1"],
        "last_success_at": None,
        "incomplete": False,
        "reason": None,
    }


def test_rate_limit_from_graphql() -> None:
    rate_limit = RateLimit.from_dict({"cost": 1, "remaining": 4999, "resetAt": "2024-01-15T13:00:00Z"})

    assert rate_limit == RateLimit(remaining=4999, cost=1, reset_at="2024-01-15T13:00:00Z")
    assert RateLimit.from_dict(None) is None
    assert RateLimit.from_dict({}) is None


def test_run_record_round_trip() -> None:
    record = RunRecord.from_dict(
        {
            "started_at": "2024-01-02T00:00:00Z",
            "finished_at": "2024-01-02T00:01:00Z",
            "status": "success",
            "rate_limit": {"cost": 1, "remaining": 4000, "reset_at": None},
        }
    )

    assert record.status == RunStatus.SUCCESS
    assert record.rate_limit.remaining == 4000
    assert record.to_dict()["finished_at"] == "2024-01-02T00:01:00Z"
    assert RunRecord.from_dict(None).to_dict() == {}


def test_progress_record_rejects_non_list_ids() -> None:
    with pytest.raises(ValueError, match="must be a list"):
        ProgressRecord.from_dict(
            {"baseline_time": "2024-01-01T00:00:00Z", "recently_notified_ids": "abc"}
        )
