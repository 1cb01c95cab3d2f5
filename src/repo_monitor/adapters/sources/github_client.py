"""GitHub GraphQL API client."""

import asyncio
import logging
from typing import Any, Optional

import httpx

from repo_monitor import __version__
from repo_monitor.core import EventKind, TransportError

logger = logging.getLogger(__name__)

GITHUB_GRAPHQL_ENDPOINT = "https://api.github.com/graphql"

_CONNECTION_QUERY = """
query($owner: String!, $repo: String!, $first: Int!, $after: String) {
  repository(owner: $owner, name: $repo) {
    %(connection)s(first: $first, after: $after, %(arguments)s) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        %(fields)s
      }
    }
  }
  rateLimit {
    cost
    remaining
    resetAt
  }
}
"""

# connection name, ordering/filter arguments, selected node fields
_KIND_QUERIES: dict[EventKind, tuple[str, str, str]] = {
    EventKind.RELEASE: (
        "releases",
        "orderBy: {field: CREATED_AT, direction: DESC}",
        "id name tagName url publishedAt author { login }",
    ),
    EventKind.PULL_REQUEST_MERGED: (
        "pullRequests",
        "states: MERGED, orderBy: {field: UPDATED_AT, direction: DESC}",
        "id title url mergedAt author { login } mergedBy { login }",
    ),
    EventKind.PULL_REQUEST_CREATED: (
        "pullRequests",
        "states: OPEN, orderBy: {field: CREATED_AT, direction: DESC}",
        "id title url createdAt author { login }",
    ),
    EventKind.ISSUE_CREATED: (
        "issues",
        "orderBy: {field: CREATED_AT, direction: DESC}",
        "id title url createdAt author { login }",
    ),
}


def build_query(kind: EventKind) -> str:
    """GraphQL query listing one kind of activity, newest first."""
    connection, arguments, fields = _KIND_QUERIES[kind]
    return _CONNECTION_QUERY % {"connection": connection, "arguments": arguments, "fields": fields}


def connection_name(kind: EventKind) -> str:
    return _KIND_QUERIES[kind][0]


class GitHubClient:
    """Minimal GitHub GraphQL client with connection-level retries."""

    def __init__(
        self,
        token: Optional[str],
        endpoint: str = GITHUB_GRAPHQL_ENDPOINT,
        max_retries: int = 3,
        initial_retry_delay: float = 0.5,
        backoff_factor: float = 2.0,
        timeout: float = 30.0,
    ) -> None:
        if not token:
            raise TransportError("GITHUB_TOKEN is required")

        self.token = token
        self.endpoint = endpoint
        self.max_retries = max_retries
        self.initial_retry_delay = initial_retry_delay
        self.backoff_factor = backoff_factor
        self.timeout = timeout

    async def fetch_events(
        self,
        kind: EventKind,
        owner: str,
        repo: str,
        first: int = 10,
        after: Optional[str] = None,
    ) -> dict[str, Any]:
        """Fetch one page of ``kind`` activity for ``owner/repo``."""
        variables = {"owner": owner, "repo": repo, "first": first, "after": after}
        return await self.execute(build_query(kind), variables)

    async def execute(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """Run a GraphQL query and return its ``data`` member.

        Raises:
            TransportError: On HTTP failure, GraphQL errors, or exhausted retries
        """
        response = await self._post({"query": query, "variables": variables})

        if response.status_code != 200:
            raise TransportError(
                f"GraphQL request failed: {response.status_code} {response.text[:200]}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise TransportError(f"GraphQL response is not valid JSON: {e}") from e

        if payload.get("errors"):
            messages = ", ".join(str(error.get("message")) for error in payload["errors"])
            raise TransportError(f"GraphQL errors: {messages}")

        data = payload.get("data")
        if data is None:
            raise TransportError("GraphQL response has no data")
        return data

    async def _post(self, body: dict[str, Any]) -> httpx.Response:
        """POST with retry on timeouts and connection failures."""
        for attempt in range(self.max_retries):
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    return await client.post(self.endpoint, headers=self._get_headers(), json=body)
            except (httpx.TimeoutException, httpx.ConnectError) as e:
                if attempt < self.max_retries - 1:
                    retry_delay = self.initial_retry_delay * (self.backoff_factor ** attempt)
                    logger.warning("GitHub request failed (%s), retrying after %.1fs", e, retry_delay)
                    await asyncio.sleep(retry_delay)
                    continue
                raise TransportError(f"GitHub request failed after {self.max_retries} attempts: {e}") from e

        raise TransportError("GitHub request was not attempted")

    def _get_headers(self) -> dict[str, str]:
        """Get headers for GitHub API requests."""
        return {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
            "User-Agent": f"repo-monitor/{__version__}",
        }
