"""Proposed progress mutations.

The scanner never writes to the progress store. It returns a list of these
values and the run service applies them once delivery has succeeded.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Union

from repo_monitor.core.entities import EventKind, WatchedItem


@dataclass(frozen=True)
class AdvanceWatermark:
    """Mark an item as fully surveyed up to ``watermark_time``."""

    repo: str
    kind: EventKind
    watermark_time: datetime


@dataclass(frozen=True)
class SetResumeCursor:
    """Record where an interrupted scan should continue."""

    repo: str
    kind: EventKind
    cursor: str
    reason: str


@dataclass(frozen=True)
class AppendNotifiedId:
    """Remember that an event has been surfaced."""

    repo: str
    kind: EventKind
    event_id: str


Mutation = Union[AdvanceWatermark, SetResumeCursor, AppendNotifiedId]


def item_of(mutation: Mutation) -> WatchedItem:
    """Watched item a mutation applies to."""
    return WatchedItem(mutation.repo, mutation.kind)
