"""CLI entry point for repo monitor."""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape

from repo_monitor.adapters.digest import DigestFormatter
from repo_monitor.adapters.notifications import (
    EmailNotifier,
    NotificationDispatcher,
    SlackNotifier,
)
from repo_monitor.adapters.sources import GitHubClient, GitHubSource
from repo_monitor.config import DEFAULT_CONFIG_PATH, Settings, get_settings, get_smtp_config
from repo_monitor.core import ConfigError, MonitorError, Notifier, ProgressStore, RunStatus, Scanner
from repo_monitor.logging import setup_logging
from repo_monitor.use_cases import RunResult, RunService

console = Console()

STATUS_STYLES = {
    RunStatus.SUCCESS: ("✓", "green"),
    RunStatus.INCOMPLETE: ("⚠️ ", "yellow"),
    RunStatus.PARTIAL_FAILURE: ("⚠️ ", "yellow"),
}


def main(
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to config YAML"),
    state: Optional[Path] = typer.Option(None, "--state", help="State file (overrides config)"),
    no_save: bool = typer.Option(False, "--no-save", help="Do not write the state file"),
    log_level: str = typer.Option("INFO", "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Also log JSON lines here"),
) -> None:
    """Poll watched GitHub repositories and send a digest of new activity."""
    setup_logging(level=log_level, log_file=log_file)

    try:
        result = asyncio.run(async_run(config, state, no_save))
    except MonitorError as e:
        console.print(f"[red]✗ {escape(str(e))}[/red]")
        if isinstance(e, ConfigError) and e.details:
            console.print(f"  [dim]{escape(e.details)}[/dim]")
        raise typer.Exit(code=1)

    print_summary(result)


def app() -> None:
    """CLI entry point."""
    typer.run(main)


async def async_run(config_path: Path, state_path: Optional[Path], no_save: bool) -> RunResult:
    """Async implementation of a single run."""
    settings = get_settings(config_path)
    if state_path is not None:
        settings.state_path = state_path

    notifier = build_notifier(settings)
    client = GitHubClient(token=settings.github_token)

    store = ProgressStore.load(settings.state_path)
    scanner = Scanner(store, GitHubSource(client))

    service = RunService(
        store=store,
        scanner=scanner,
        notifier=notifier,
        watch_list=settings.watch_list(),
        persist_state=not no_save,
    )
    return await service.run()


def build_notifier(settings: Settings) -> Notifier:
    """Create notifiers for every configured delivery channel."""
    formatter = DigestFormatter(settings.tzinfo)
    notifiers: list[Notifier] = []

    if settings.email is not None:
        notifiers.append(
            EmailNotifier(
                sender=settings.email.sender,
                recipients=settings.email.recipients,
                smtp=get_smtp_config(),
                formatter=formatter,
            )
        )

    if settings.slack.enabled:
        if not settings.slack.webhook_url:
            raise ConfigError("SLACK_WEBHOOK_URL environment variable is required when slack is enabled")
        notifiers.append(SlackNotifier([settings.slack.webhook_url], formatter=formatter))

    return NotificationDispatcher(notifiers)


def print_summary(result: RunResult) -> None:
    icon, style = STATUS_STYLES.get(result.status, ("•", "default"))
    console.print(
        f"[{style}]{icon} {result.status.value}[/{style}] "
        f"(events: {result.events_count})"
    )
    if result.rate_limit is not None:
        console.print(f"  [dim]rate limit remaining: {result.rate_limit.remaining}[/dim]")


if __name__ == "__main__":
    app()
