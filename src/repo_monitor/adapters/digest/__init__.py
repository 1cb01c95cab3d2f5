"""Digest rendering."""

from repo_monitor.adapters.digest.digest_formatter import DigestFormatter

__all__ = ["DigestFormatter"]
