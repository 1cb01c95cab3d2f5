"""Durable per-repo, per-event-kind scan progress."""

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Optional

from repo_monitor.core.entities import (
    EventKind,
    ProgressRecord,
    RateLimit,
    RunRecord,
    RunStatus,
    WatchedItem,
    utc_now,
)
from repo_monitor.core.errors import RecordNotFoundError, StateError
from repo_monitor.core.mutations import (
    AdvanceWatermark,
    AppendNotifiedId,
    Mutation,
    SetResumeCursor,
    item_of,
)

logger = logging.getLogger(__name__)

DEFAULT_STATE_PATH = Path(".repo-monitor/state.json")


@dataclass
class RepoProgress:
    """Progress records for every watched kind of one repository."""

    url: str
    events: dict[EventKind, ProgressRecord] = field(default_factory=dict)

    @classmethod
    def for_repo(cls, repo: str) -> "RepoProgress":
        return cls(url=f"https://github.com/{repo}")


class ProgressStore:
    """Track scan progress in a single JSON state file.

    Records are created and pruned by :meth:`reconcile`, changed only through
    :meth:`commit`, and written back with :meth:`save`.
    """

    def __init__(self, state_path: Path = DEFAULT_STATE_PATH) -> None:
        self.state_path = Path(state_path)
        self.repos: dict[str, RepoProgress] = {}
        self.last_run = RunRecord()

    @classmethod
    def load(cls, state_path: Path = DEFAULT_STATE_PATH) -> "ProgressStore":
        """Load state from disk, or start empty if the file does not exist."""
        store = cls(state_path)
        store._ensure_path_is_safe()
        if store.state_path.exists():
            store._read()
        return store

    def save(self) -> None:
        """Atomically write the whole store to disk."""
        self.state_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_path_is_safe()

        content = json.dumps(self.to_dict(), indent=2, ensure_ascii=False) + "\n"
        self._atomic_write(content)

    def to_dict(self) -> dict[str, Any]:
        return {
            "last_run": self.last_run.to_dict(),
            "repos": {
                repo: {
                    "url": progress.url,
                    "events": {
                        kind.value: record.to_dict()
                        for kind, record in progress.events.items()
                    },
                }
                for repo, progress in self.repos.items()
            },
        }

    # Run bookkeeping

    def start_run(self, started_at: Optional[datetime] = None) -> None:
        self.last_run = RunRecord(
            started_at=started_at or utc_now(),
            status=RunStatus.RUNNING,
        )

    def finish_run(
        self,
        status: RunStatus,
        rate_limit: Optional[RateLimit] = None,
        finished_at: Optional[datetime] = None,
    ) -> None:
        if self.last_run.started_at is None:
            self.last_run.started_at = finished_at or utc_now()
        self.last_run.finished_at = finished_at or utc_now()
        self.last_run.status = status
        self.last_run.rate_limit = rate_limit

    # Records

    def reconcile(
        self, watch_list: Iterable[WatchedItem], baseline_time: datetime
    ) -> tuple[list[WatchedItem], list[WatchedItem]]:
        """Make the stored records match the current watch-list.

        Every watched item without a record gets one starting at
        ``baseline_time``; records for items no longer watched are removed.

        Returns:
            Tuple of (added_items, removed_items)
        """
        wanted: dict[str, list[EventKind]] = {}
        for item in watch_list:
            kinds = wanted.setdefault(item.repo, [])
            if item.kind not in kinds:
                kinds.append(item.kind)

        added: list[WatchedItem] = []
        removed: list[WatchedItem] = []

        for repo in list(self.repos):
            if repo not in wanted:
                removed.extend(WatchedItem(repo, kind) for kind in self.repos[repo].events)
                del self.repos[repo]

        for repo, kinds in wanted.items():
            progress = self.repos.setdefault(repo, RepoProgress.for_repo(repo))

            for kind in list(progress.events):
                if kind not in kinds:
                    removed.append(WatchedItem(repo, kind))
                    del progress.events[kind]

            for kind in kinds:
                if kind not in progress.events:
                    progress.events[kind] = ProgressRecord.starting_at(baseline_time)
                    added.append(WatchedItem(repo, kind))

        if added or removed:
            logger.info(
                "Reconciled watch-list: %d added, %d removed", len(added), len(removed)
            )
        return added, removed

    def get(self, item: WatchedItem) -> ProgressRecord:
        """Return the record for ``item``.

        Raises:
            RecordNotFoundError: If reconciliation has not created it
        """
        progress = self.repos.get(item.repo)
        if progress is None:
            raise RecordNotFoundError(f"Unknown repo: {item.repo}")
        record = progress.events.get(item.kind)
        if record is None:
            raise RecordNotFoundError(
                f"Unknown event type '{item.kind.value}' for repo {item.repo}"
            )
        return record

    def commit(self, mutation: Mutation) -> None:
        """Apply one proposed mutation."""
        record = self.get(item_of(mutation))

        if isinstance(mutation, AdvanceWatermark):
            # Never move backwards, never below the baseline
            record.watermark_time = max(
                record.watermark_time, mutation.watermark_time, record.baseline_time
            )
            record.last_success_at = utc_now()
            record.resume_cursor = None
            record.incomplete = False
            record.reason = None
        elif isinstance(mutation, SetResumeCursor):
            record.resume_cursor = mutation.cursor
            record.incomplete = True
            record.reason = mutation.reason
        elif isinstance(mutation, AppendNotifiedId):
            record.recently_notified_ids.append(mutation.event_id)
        else:
            raise TypeError(f"Unsupported mutation: {mutation!r}")

    def commit_all(self, mutations: Iterable[Mutation]) -> int:
        """Apply mutations in order and return how many were applied."""
        count = 0
        for mutation in mutations:
            self.commit(mutation)
            count += 1
        return count

    # File handling

    def _read(self) -> None:
        try:
            data = json.loads(self.state_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise StateError(f"Invalid state file {self.state_path}: {e}") from e
        except OSError as e:
            raise StateError(f"Cannot read state file {self.state_path}: {e}") from e

        if not isinstance(data, dict):
            raise StateError(f"Invalid state file {self.state_path}: expected an object")

        try:
            self.last_run = RunRecord.from_dict(data.get("last_run"))
            for repo, repo_data in (data.get("repos") or {}).items():
                progress = RepoProgress(
                    url=repo_data.get("url") or f"https://github.com/{repo}"
                )
                for kind, record_data in (repo_data.get("events") or {}).items():
                    progress.events[EventKind(kind)] = ProgressRecord.from_dict(record_data)
                self.repos[repo] = progress
        except (AttributeError, TypeError, ValueError) as e:
            raise StateError(f"Invalid state file {self.state_path}: {e}") from e

    def _ensure_path_is_safe(self) -> None:
        """Refuse to read or write through a symbolic link."""
        if self.state_path.is_symlink():
            raise StateError(f"State path must not be a symlink: {self.state_path}")

    def _atomic_write(self, content: str) -> None:
        tmp_path = self.state_path.with_name(f".{self.state_path.name}.tmp.{os.getpid()}")
        try:
            tmp_path.write_text(content, encoding="utf-8")
            os.replace(tmp_path, self.state_path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()
