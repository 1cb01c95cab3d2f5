"""Exception hierarchy for repo monitor."""

from pathlib import Path
from typing import Optional


class MonitorError(Exception):
    """Base error for all repo monitor failures."""


class ConfigError(MonitorError):
    """Configuration loading or validation error."""

    def __init__(
        self,
        message: str,
        path: Optional[Path] = None,
        details: Optional[str] = None,
    ) -> None:
        self.path = path
        self.details = details
        super().__init__(message)


class StateError(MonitorError):
    """Persisted progress state is unreadable or inconsistent."""


class RecordNotFoundError(StateError):
    """No progress record exists for a watched item."""


class TransportError(MonitorError):
    """Upstream API request failed."""


class DeliveryFailure(MonitorError):
    """One or more notification targets could not be reached.

    Only the number of failed targets is carried, never the targets
    themselves, so the message is safe to log.
    """

    def __init__(self, failed_count: int, message: Optional[str] = None) -> None:
        self.failed_count = failed_count
        super().__init__(message or f"Failed to deliver to {failed_count} target(s)")
