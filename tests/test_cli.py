"""Tests for the CLI wiring."""

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
import typer
from typer.testing import CliRunner

from repo_monitor.adapters.notifications import EmailNotifier, NotificationDispatcher, SlackNotifier
from repo_monitor.cli import async_run, build_notifier, main
from repo_monitor.config import EmailConfig, Settings, SlackConfig
from repo_monitor.core import ConfigError, EventKind, Page, RateLimit, RunStatus

CONFIG = """
state_path: {state_path}
email:
  from: monitor@example.com
  to: dev@example.com
repos:
  octo/cat:
    events: [release, issue_created]
"""


@pytest.fixture
def config_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_test")
    monkeypatch.setenv("REPO_MONITOR_SMTP_HOST", "smtp.example.com")
    monkeypatch.delenv("REPO_MONITOR_SMTP_PORT", raising=False)
    monkeypatch.delenv("REPO_MONITOR_SMTP_USERNAME", raising=False)
    monkeypatch.delenv("SLACK_WEBHOOK_URL", raising=False)

    path = tmp_path / "config.yml"
    path.write_text(CONFIG.format(state_path=tmp_path / "state.json"), encoding="utf-8")
    return path


def test_build_notifier_all_channels(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REPO_MONITOR_SMTP_HOST", "smtp.example.com")
    settings = Settings(
        email=EmailConfig(sender="monitor@example.com", recipients=["dev@example.com"]),
        slack=SlackConfig(enabled=True, webhook_url="https://hooks.slack.com/services/test"),
    )

    notifier = build_notifier(settings)

    assert isinstance(notifier, NotificationDispatcher)
    assert [type(n) for n in notifier.notifiers] == [EmailNotifier, SlackNotifier]


def test_build_notifier_slack_requires_webhook() -> None:
    settings = Settings(slack=SlackConfig(enabled=True, webhook_url=None))

    with pytest.raises(ConfigError, match="SLACK_WEBHOOK_URL"):
        build_notifier(settings)


@pytest.mark.asyncio
async def test_first_run_records_baseline(config_path: Path, tmp_path: Path) -> None:
    """Test that a first run discovers nothing and saves fresh records."""
    empty = Page(events=[], has_more=False, next_cursor=None, rate_limit=RateLimit(remaining=4990))

    with patch("repo_monitor.cli.GitHubSource") as mock_source:
        mock_source.return_value.fetch_page = AsyncMock(return_value=empty)

        result = await async_run(config_path, None, no_save=False)

    assert result.status == RunStatus.SUCCESS
    assert result.events_count == 0
    assert mock_source.return_value.fetch_page.await_count == 2

    state = json.loads((tmp_path / "state.json").read_text(encoding="utf-8"))
    events = state["repos"]["octo/cat"]["events"]
    assert set(events) == {EventKind.RELEASE.value, EventKind.ISSUE_CREATED.value}
    assert events["release"]["baseline_time"] == state["last_run"]["started_at"]
    assert state["last_run"]["status"] == "success"


@pytest.mark.asyncio
async def test_no_save_leaves_state_untouched(config_path: Path, tmp_path: Path) -> None:
    empty = Page(events=[], has_more=False, next_cursor=None)

    with patch("repo_monitor.cli.GitHubSource") as mock_source:
        mock_source.return_value.fetch_page = AsyncMock(return_value=empty)

        await async_run(config_path, None, no_save=True)

    assert not (tmp_path / "state.json").exists()


def test_main_reports_config_error(tmp_path: Path) -> None:
    cli = typer.Typer()
    cli.command()(main)

    result = CliRunner().invoke(cli, ["--config", str(tmp_path / "missing.yml")])

    assert result.exit_code == 1
    assert "Config file not found" in result.output
