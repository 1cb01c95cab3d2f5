"""Render event digests as plain text, HTML and Slack mrkdwn."""

import html
from datetime import datetime, timezone, tzinfo
from typing import Optional
from urllib.parse import urlparse

from repo_monitor.core import Event, EventKind

SUBJECT_PREFIX = "[repo-monitor]"
SAFE_URL_SCHEMES = ("http", "https")

EXTRA_LABELS = {
    "tag_name": "Tag",
    "merged_by": "Merged by",
}


def group_events(events: list[Event]) -> list[tuple[str, list[tuple[EventKind, list[Event]]]]]:
    """Group events by repo (alphabetical), then kind (first seen), newest first."""
    by_repo: dict[str, dict[EventKind, list[Event]]] = {}
    for event in events:
        by_repo.setdefault(event.repo, {}).setdefault(event.kind, []).append(event)

    grouped = []
    for repo in sorted(by_repo):
        kinds = []
        for kind, kind_events in by_repo[repo].items():
            kind_events = sorted(kind_events, key=_sort_key, reverse=True)
            kinds.append((kind, kind_events))
        grouped.append((repo, kinds))
    return grouped


def is_safe_url(url: str) -> bool:
    """Only plain web links are rendered as anchors."""
    try:
        return urlparse(url).scheme.lower() in SAFE_URL_SCHEMES
    except ValueError:
        return False


class DigestFormatter:
    """Format a batch of events for delivery."""

    def __init__(self, tz: tzinfo = timezone.utc) -> None:
        self.tz = tz

    def subject(self, events: list[Event]) -> str:
        repos = sorted({event.repo for event in events})
        noun = "event" if len(events) == 1 else "events"
        if len(repos) == 1:
            return f"{SUBJECT_PREFIX} {len(events)} new {noun} in {repos[0]}"
        return f"{SUBJECT_PREFIX} {len(events)} new {noun} in {len(repos)} repositories"

    def format_time(self, value: Optional[datetime]) -> str:
        if value is None:
            return ""
        return value.astimezone(self.tz).strftime("%Y-%m-%d %H:%M %Z")

    def text(self, events: list[Event]) -> str:
        lines: list[str] = []

        for repo, kinds in group_events(events):
            lines.append(repo)
            lines.append(f"https://github.com/{repo}")
            lines.append("")
            for kind, kind_events in kinds:
                lines.append(f"  {kind.label}")
                for index, event in enumerate(kind_events):
                    if index > 0:
                        lines.append("")
                    lines.extend(f"    {line}" for line in self._detail_lines(event))
                lines.append("")

        return "\n".join(lines).rstrip("\n") + "\n"

    def html(self, events: list[Event]) -> str:
        parts = ['<html><body style="font-family: sans-serif;">']

        for repo, kinds in group_events(events):
            parts.append(
                f'<p style="font-weight: bold; font-size: 16px; margin: 16px 0 4px;">'
                f"{self._link(f'https://github.com/{repo}', repo)}</p>"
            )
            for kind, kind_events in kinds:
                parts.append(f'<h3 style="margin: 8px 0 4px;">{html.escape(kind.label)}</h3>')
                for index, event in enumerate(kind_events):
                    if index > 0:
                        parts.append('<div style="height: 8px;"></div>')
                    parts.append(self._html_event(event))

        parts.append("</body></html>")
        return "\n".join(parts)

    def mrkdwn(self, events: list[Event]) -> str:
        """Slack mrkdwn rendering."""
        lines: list[str] = []

        for repo, kinds in group_events(events):
            lines.append(f"*{_slack_escape(repo)}*")
            for kind, kind_events in kinds:
                lines.append(f"_{kind.label}_")
                for event in kind_events:
                    title = _slack_escape(event.title)
                    link = f"<{event.url}|{title}>" if is_safe_url(event.url) else title
                    details = [self.format_time(event.time)]
                    details.extend(f"{label}: {_slack_escape(value)}" for label, value in self._details(event))
                    lines.append(f"• {link} ({', '.join(d for d in details if d)})")
            lines.append("")

        return "\n".join(lines).rstrip("\n")

    def _details(self, event: Event) -> list[tuple[str, str]]:
        details: list[tuple[str, str]] = []
        if "tag_name" in event.extra:
            details.append((EXTRA_LABELS["tag_name"], event.extra["tag_name"]))
        if event.author:
            details.append(("Author", event.author))
        if "merged_by" in event.extra:
            details.append((EXTRA_LABELS["merged_by"], event.extra["merged_by"]))
        return details

    def _detail_lines(self, event: Event) -> list[str]:
        lines = [event.title, event.url]
        if event.time is not None:
            lines.append(self.format_time(event.time))
        lines.extend(f"{label}: {value}" for label, value in self._details(event))
        return lines

    def _html_event(self, event: Event) -> str:
        rows = [f"<div>{self._link(event.url, event.title)}</div>"]
        if event.time is not None:
            rows.append(f'<div style="color: #666;">{html.escape(self.format_time(event.time))}</div>')
        for label, value in self._details(event):
            rows.append(f"<div>{html.escape(label)}: {html.escape(value)}</div>")
        return "\n".join(rows)

    def _link(self, url: str, text: str) -> str:
        if is_safe_url(url):
            return f'<a href="{html.escape(url, quote=True)}">{html.escape(text)}</a>'
        return f"{html.escape(text)} ({html.escape(url)})"


def _sort_key(event: Event) -> datetime:
    return event.time or datetime.min.replace(tzinfo=timezone.utc)


def _slack_escape(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
