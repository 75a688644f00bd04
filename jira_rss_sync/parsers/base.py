"""
Base classes and interfaces for feed parsers.

This module defines the contract that all feed parsers must follow.
"""

from typing import List, Protocol

from jira_rss_sync.models import FeedConfig, FeedItem


class FeedParser(Protocol):
    """
    Protocol for feed parsers.

    Classes implementing this protocol fetch the feed's URL and return its
    items in the feed's own order. Failures raise FeedFetchError rather than
    returning an empty list, so callers can tell an error from a quiet feed.
    """

    def fetch(self, feed: FeedConfig) -> List[FeedItem]:
        """Fetches and parses a feed."""
