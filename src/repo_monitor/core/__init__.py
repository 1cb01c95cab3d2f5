"""Core domain layer."""

from repo_monitor.core.entities import (
    Event,
    EventKind,
    Page,
    ProgressRecord,
    RateLimit,
    RunRecord,
    RunStatus,
    WatchedItem,
)
from repo_monitor.core.errors import (
    ConfigError,
    DeliveryFailure,
    MonitorError,
    RecordNotFoundError,
    StateError,
    TransportError,
)
from repo_monitor.core.interfaces import Notifier, PageSource
from repo_monitor.core.mutations import (
    AdvanceWatermark,
    AppendNotifiedId,
    Mutation,
    SetResumeCursor,
)
from repo_monitor.core.progress_store import ProgressStore
from repo_monitor.core.scanner import ScanResult, Scanner

__all__ = [
    "Event",
    "EventKind",
    "Page",
    "ProgressRecord",
    "RateLimit",
    "RunRecord",
    "RunStatus",
    "WatchedItem",
    "MonitorError",
    "ConfigError",
    "StateError",
    "RecordNotFoundError",
    "TransportError",
    "DeliveryFailure",
    "PageSource",
    "Notifier",
    "Mutation",
    "AdvanceWatermark",
    "SetResumeCursor",
    "AppendNotifiedId",
    "ProgressStore",
    "Scanner",
    "ScanResult",
]
