"""Configuration management."""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from repo_monitor.core import ConfigError, EventKind, WatchedItem
from repo_monitor.core.progress_store import DEFAULT_STATE_PATH

DEFAULT_CONFIG_PATH = Path(".repo-monitor/config.yml")
DEFAULT_TIMEZONE = "UTC"
DEFAULT_SMTP_PORT = 587

VALID_EVENTS = [kind.value for kind in EventKind]
REPO_NAME_PATTERN = re.compile(r"\A[^/\s]+/[^/\s]+\Z")


@dataclass
class RepoConfig:
    """Watched event kinds of one repository."""
    events: list[EventKind] = field(default_factory=list)


@dataclass
class EmailConfig:
    """Email digest addressing."""
    sender: str = ""
    recipients: list[str] = field(default_factory=list)


@dataclass
class SlackConfig:
    """Slack digest settings."""
    enabled: bool = False
    webhook_url: Optional[str] = None


@dataclass
class SmtpConfig:
    """SMTP connection settings (from environment only)."""
    host: str
    port: int = DEFAULT_SMTP_PORT
    username: Optional[str] = None
    password: Optional[str] = None


@dataclass
class Settings:
    """Application settings."""

    # API keys (from environment only)
    github_token: Optional[str] = None

    timezone: str = DEFAULT_TIMEZONE
    state_path: Path = DEFAULT_STATE_PATH
    email: Optional[EmailConfig] = None
    slack: SlackConfig = field(default_factory=SlackConfig)
    repos: dict[str, RepoConfig] = field(default_factory=dict)

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def watch_list(self) -> list[WatchedItem]:
        """Watched items in configuration order."""
        return [
            WatchedItem(repo, kind)
            for repo, repo_config in self.repos.items()
            for kind in repo_config.events
        ]


def load_config(config_path: Path = DEFAULT_CONFIG_PATH) -> dict[str, Any]:
    """Load raw configuration from a YAML file."""
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}", path=config_path)

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}", path=config_path, details=str(e)) from e
    except OSError as e:
        raise ConfigError(f"Cannot read {config_path}", path=config_path, details=str(e)) from e

    if data is None:
        raise ConfigError("Config file is empty or invalid", path=config_path)
    if not isinstance(data, dict):
        raise ConfigError("Config file must be a mapping (YAML hash)", path=config_path)
    return data


def get_settings(config_path: Path = DEFAULT_CONFIG_PATH) -> Settings:
    """Get application settings from YAML config and environment."""
    config = load_config(config_path)

    settings = Settings(
        github_token=os.getenv("GITHUB_TOKEN"),
        timezone=str(config.get("timezone") or DEFAULT_TIMEZONE).strip(),
        repos=_parse_repos(config.get("repos") or {}),
    )

    if config.get("state_path"):
        settings.state_path = Path(str(config["state_path"]))

    if config.get("email") is not None:
        settings.email = _parse_email(config["email"])

    slack = config.get("slack")
    if slack is not None:
        if not isinstance(slack, dict):
            raise ConfigError("'slack' must be a mapping (YAML hash)")
        settings.slack = SlackConfig(
            enabled=bool(slack.get("enabled", True)),
            webhook_url=os.getenv("SLACK_WEBHOOK_URL") or None,
        )

    validate_settings(settings)
    return settings


def get_smtp_config() -> SmtpConfig:
    """Read SMTP settings from ``REPO_MONITOR_SMTP_*`` environment variables."""
    host = (os.getenv("REPO_MONITOR_SMTP_HOST") or "").strip()
    if not host:
        raise ConfigError("REPO_MONITOR_SMTP_HOST environment variable is required")

    # An unset CI secret shows up as an empty string
    port_value = (os.getenv("REPO_MONITOR_SMTP_PORT") or "").strip()
    if port_value:
        try:
            port = int(port_value)
        except ValueError:
            port = 0
        if not 1 <= port <= 65535:
            raise ConfigError("REPO_MONITOR_SMTP_PORT must be a valid TCP port (1-65535)")
    else:
        port = DEFAULT_SMTP_PORT

    username = os.getenv("REPO_MONITOR_SMTP_USERNAME") or None
    password = os.getenv("REPO_MONITOR_SMTP_PASSWORD") or None
    if username and not password:
        raise ConfigError(
            "REPO_MONITOR_SMTP_PASSWORD is required when REPO_MONITOR_SMTP_USERNAME is set"
        )

    return SmtpConfig(host=host, port=port, username=username, password=password)


def validate_settings(settings: Settings) -> None:
    """Check settings for problems that would only surface mid-run."""
    try:
        ZoneInfo(settings.timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"Invalid timezone: {settings.timezone}") from e

    if not settings.repos:
        raise ConfigError("'repos' must have at least one repository")

    if settings.email is None and not settings.slack.enabled:
        raise ConfigError("At least one delivery channel ('email' or 'slack') must be configured")

    if settings.email is not None:
        if not settings.email.sender:
            raise ConfigError("'from' is required")
        _validate_header_value(settings.email.sender, "from")

        if not settings.email.recipients:
            raise ConfigError("'to' must have at least one recipient")
        for recipient in settings.email.recipients:
            _validate_header_value(recipient, "to")


def _parse_repos(repos: Any) -> dict[str, RepoConfig]:
    if not isinstance(repos, dict):
        raise ConfigError("'repos' must be a mapping (YAML hash)")

    parsed: dict[str, RepoConfig] = {}
    for name, repo_config in repos.items():
        name = str(name).strip()
        if not REPO_NAME_PATTERN.match(name):
            raise ConfigError(f"Invalid repo format '{name}': must be 'owner/repo'")
        if not isinstance(repo_config, dict):
            raise ConfigError(f"Repo '{name}' config must be a mapping (YAML hash)")

        events = _string_list(repo_config.get("events"))
        if not events:
            raise ConfigError(f"Repo '{name}' must have at least one event")

        invalid = [event for event in events if event not in VALID_EVENTS]
        if invalid:
            raise ConfigError(
                f"Repo '{name}' has invalid events: {', '.join(invalid)}. "
                f"Valid events are: {', '.join(VALID_EVENTS)}"
            )

        kinds: list[EventKind] = []
        for event in events:
            if EventKind(event) not in kinds:
                kinds.append(EventKind(event))
        parsed[name] = RepoConfig(events=kinds)

    return parsed


def _parse_email(email: Any) -> EmailConfig:
    if not isinstance(email, dict):
        raise ConfigError("'email' must be a mapping (YAML hash)")

    recipients: list[str] = []
    for recipient in _string_list(email.get("to")):
        if recipient not in recipients:
            recipients.append(recipient)

    return EmailConfig(
        sender=str(email.get("from") or "").strip(),
        recipients=recipients,
    )


def _string_list(value: Any) -> list[str]:
    """Normalize a scalar or list into stripped, non-empty strings."""
    if value is None:
        return []
    if not isinstance(value, list):
        value = [value]
    return [str(v).strip() for v in value if v is not None and str(v).strip()]


def _validate_header_value(value: str, field_name: str) -> None:
    # CR/LF would allow email header injection
    if "\r" in value or "\n" in value:
        raise ConfigError(f"'{field_name}' must not contain newlines")
