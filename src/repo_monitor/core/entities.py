"""Core domain entities."""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

RECENT_IDS_LIMIT = 100

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def utc_now() -> datetime:
    """Current UTC time truncated to whole seconds."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp into an aware UTC datetime."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Format a datetime as a sortable UTC timestamp (``2024-01-15T12:00:00Z``)."""
    if value is None:
        return None
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


class EventKind(str, Enum):
    """Kind of repository activity that can be watched."""

    RELEASE = "release"
    PULL_REQUEST_CREATED = "pull_request_created"
    PULL_REQUEST_MERGED = "pull_request_merged"
    ISSUE_CREATED = "issue_created"

    @property
    def label(self) -> str:
        """Human readable heading used in digests."""
        return _KIND_LABELS[self]


_KIND_LABELS = {
    EventKind.RELEASE: "Release",
    EventKind.PULL_REQUEST_CREATED: "PR Created",
    EventKind.PULL_REQUEST_MERGED: "PR Merged",
    EventKind.ISSUE_CREATED: "Issue Created",
}


class RunStatus(str, Enum):
    """Outcome of a single monitoring run."""

    RUNNING = "running"
    SUCCESS = "success"
    INCOMPLETE = "incomplete"
    PARTIAL_FAILURE = "partial_failure"
    ERROR = "error"


@dataclass(frozen=True)
class WatchedItem:
    """A (repository, event kind) pair under observation."""

    repo: str
    kind: EventKind

    @property
    def owner(self) -> str:
        return self.repo.split("/", 1)[0]

    @property
    def name(self) -> str:
        return self.repo.split("/", 1)[1]

    def __str__(self) -> str:
        return f"{self.repo}:{self.kind.value}"


@dataclass
class Event:
    """A piece of upstream activity returned by a page source."""

    kind: EventKind
    repo: str
    id: str
    title: str
    url: str
    time: Optional[datetime]
    author: Optional[str] = None
    extra: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Event id cannot be empty")


@dataclass(frozen=True)
class RateLimit:
    """Snapshot of the upstream API rate budget."""

    remaining: int
    cost: int = 0
    reset_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> Optional["RateLimit"]:
        if not data or data.get("remaining") is None:
            return None
        return cls(
            remaining=int(data["remaining"]),
            cost=int(data.get("cost") or 0),
            reset_at=data.get("reset_at") or data.get("resetAt"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"cost": self.cost, "remaining": self.remaining, "reset_at": self.reset_at}


@dataclass
class Page:
    """One page of events, newest first."""

    events: list[Event]
    has_more: bool
    next_cursor: Optional[str]
    rate_limit: Optional[RateLimit] = None


@dataclass
class ProgressRecord:
    """Scan progress for one watched item."""

    baseline_time: datetime
    watermark_time: datetime
    resume_cursor: Optional[str] = None
    recently_notified_ids: deque = field(
        default_factory=lambda: deque(maxlen=RECENT_IDS_LIMIT)
    )
    last_success_at: Optional[datetime] = None
    incomplete: bool = False
    reason: Optional[str] = None

    def __post_init__(self) -> None:
        # deque(maxlen=...) keeps the newest entries when given too many
        if not isinstance(self.recently_notified_ids, deque) or (
            self.recently_notified_ids.maxlen != RECENT_IDS_LIMIT
        ):
            self.recently_notified_ids = deque(
                self.recently_notified_ids, maxlen=RECENT_IDS_LIMIT
            )
        if self.watermark_time < self.baseline_time:
            self.watermark_time = self.baseline_time

    @classmethod
    def starting_at(cls, baseline_time: datetime) -> "ProgressRecord":
        """Fresh record for an item first watched at ``baseline_time``."""
        return cls(baseline_time=baseline_time, watermark_time=baseline_time)

    def is_notified(self, event_id: str) -> bool:
        return event_id in self.recently_notified_ids

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProgressRecord":
        baseline_time = parse_timestamp(data.get("baseline_time"))
        watermark_time = parse_timestamp(data.get("watermark_time"))
        if baseline_time is None:
            raise ValueError("baseline_time is required")
        notified_ids = data.get("recently_notified_ids") or []
        if not isinstance(notified_ids, list):
            raise ValueError("recently_notified_ids must be a list")
        return cls(
            baseline_time=baseline_time,
            watermark_time=watermark_time or baseline_time,
            resume_cursor=data.get("resume_cursor"),
            recently_notified_ids=deque(notified_ids, maxlen=RECENT_IDS_LIMIT),
            last_success_at=parse_timestamp(data.get("last_success_at")),
            incomplete=bool(data.get("incomplete", False)),
            reason=data.get("reason"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "baseline_time": format_timestamp(self.baseline_time),
            "watermark_time": format_timestamp(self.watermark_time),
            "resume_cursor": self.resume_cursor,
            "recently_notified_ids": list(self.recently_notified_ids),
            "last_success_at": format_timestamp(self.last_success_at),
            "incomplete": self.incomplete,
            "reason": self.reason,
        }


@dataclass
class RunRecord:
    """Bookkeeping for the most recent run."""

    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    status: Optional[RunStatus] = None
    rate_limit: Optional[RateLimit] = None

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "RunRecord":
        if not data:
            return cls()
        status = data.get("status")
        return cls(
            started_at=parse_timestamp(data.get("started_at")),
            finished_at=parse_timestamp(data.get("finished_at")),
            status=RunStatus(status) if status else None,
            rate_limit=RateLimit.from_dict(data.get("rate_limit")),
        )

    def to_dict(self) -> dict[str, Any]:
        if self.started_at is None:
            return {}
        return {
            "started_at": format_timestamp(self.started_at),
            "finished_at": format_timestamp(self.finished_at),
            "status": self.status.value if self.status else None,
            "rate_limit": self.rate_limit.to_dict() if self.rate_limit else None,
        }
