"""Exceptions raised when a feed failure must reach the caller."""

from __future__ import annotations


class FeedError(RuntimeError):
    """An upstream feed could not be retrieved or parsed."""

    def __init__(self, feed: str, reason: str) -> None:
        super().__init__(f"{feed}: {reason}")
        self.feed = feed
        self.reason = reason
