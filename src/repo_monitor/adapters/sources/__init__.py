"""Source adapters for fetching repository activity."""

from repo_monitor.adapters.sources.github_client import GitHubClient
from repo_monitor.adapters.sources.github_source import GitHubSource

__all__ = ["GitHubClient", "GitHubSource"]
