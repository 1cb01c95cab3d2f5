"""Watch GitHub repositories and send deduplicated activity digests."""

__version__ = "0.1.0"
