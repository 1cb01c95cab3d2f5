"""GitHub source for paging through repository activity."""

from typing import Any, Optional

from repo_monitor.adapters.sources.github_client import GitHubClient, connection_name
from repo_monitor.core import Event, EventKind, Page, PageSource, RateLimit, TransportError, WatchedItem
from repo_monitor.core.entities import parse_timestamp

# Node field holding the moment the activity happened
TIME_FIELDS = {
    EventKind.RELEASE: "publishedAt",
    EventKind.PULL_REQUEST_MERGED: "mergedAt",
    EventKind.PULL_REQUEST_CREATED: "createdAt",
    EventKind.ISSUE_CREATED: "createdAt",
}


class GitHubSource(PageSource):
    """Page through releases, pull requests and issues of watched repositories."""

    def __init__(self, client: GitHubClient) -> None:
        self.client = client

    async def fetch_page(
        self, item: WatchedItem, cursor: Optional[str], page_size: int
    ) -> Page:
        """Fetch one page of events, newest first."""
        data = await self.client.fetch_events(
            item.kind, item.owner, item.name, first=page_size, after=cursor
        )

        repository = data.get("repository")
        if repository is None:
            raise TransportError(f"Repository not found: {item.repo}")

        collection = repository.get(connection_name(item.kind)) or {}
        page_info = collection.get("pageInfo") or {}
        nodes = collection.get("nodes") or []

        try:
            events = [self._create_event(node, item) for node in nodes if node]
        except (KeyError, TypeError, ValueError) as e:
            raise TransportError(f"Malformed {item.kind.value} node for {item.repo}: {e}") from e

        return Page(
            events=events,
            has_more=bool(page_info.get("hasNextPage")),
            next_cursor=page_info.get("endCursor"),
            rate_limit=RateLimit.from_dict(data.get("rateLimit")),
        )

    def _create_event(self, node: dict[str, Any], item: WatchedItem) -> Event:
        """Create event from a GraphQL node."""
        extra: dict[str, str] = {}

        if item.kind == EventKind.RELEASE:
            tag_name = node.get("tagName")
            if tag_name:
                extra["tag_name"] = tag_name
        elif item.kind == EventKind.PULL_REQUEST_MERGED:
            merged_by = _login(node.get("mergedBy"))
            if merged_by:
                extra["merged_by"] = merged_by

        title = node.get("title") or node.get("name") or node.get("tagName") or node["id"]

        return Event(
            kind=item.kind,
            repo=item.repo,
            id=node["id"],
            title=title,
            url=node.get("url") or f"https://github.com/{item.repo}",
            time=parse_timestamp(node.get(TIME_FIELDS[item.kind])),
            author=_login(node.get("author")),
            extra=extra,
        )


def _login(actor: Optional[dict[str, Any]]) -> Optional[str]:
    if not actor:
        return None
    return actor.get("login")
