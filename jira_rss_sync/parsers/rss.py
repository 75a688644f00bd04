"""
RSS/Atom feed parser implementation.

This module provides the RSSParser class for fetching and parsing feeds into
FeedItem dictionaries.
"""

import calendar
import datetime
import logging
import time
from typing import Any, List, Optional

import requests
import feedparser  # type: ignore

from jira_rss_sync.errors import FeedFetchError
from jira_rss_sync.models import FeedConfig, FeedItem
from jira_rss_sync.parsers.base import FeedParser

logger = logging.getLogger(__name__)

USER_AGENT = "JiraRSSSyncBot/1.0"


def _to_datetime(value: Optional[time.struct_time]) -> Optional[datetime.datetime]:
    """Converts feedparser's UTC struct_time into an aware datetime."""
    if not value:
        return None
    return datetime.datetime.fromtimestamp(calendar.timegm(value), tz=datetime.timezone.utc)


class RSSParser(FeedParser):
    """Parses RSS and Atom feeds."""

    def __init__(self, timeout: float = 10):
        self.timeout = timeout

    def _entry_body(self, entry: Any) -> str:
        """Prefers the description over the full content."""
        summary = entry.get("summary") or ""
        if summary:
            return summary
        content = entry.get("content") or []
        if content:
            return content[0].get("value", "") or ""
        return ""

    def _to_item(self, entry: Any) -> Optional[FeedItem]:
        guid = entry.get("id") or entry.get("link")
        if not guid:
            logger.warning("Dropping entry without id or link: %r", entry.get("title", ""))
            return None

        return {
            "guid": guid,
            "title": entry.get("title", ""),
            "body": self._entry_body(entry),
            "link": entry.get("link", ""),
            # FeedParserDict falls back to published when updated is absent
            "updated_at": _to_datetime(
                entry["updated_parsed"] if "updated_parsed" in entry else None
            ),
            "published_at": _to_datetime(entry.get("published_parsed")),
        }

    def fetch(self, feed: FeedConfig) -> List[FeedItem]:
        """Fetches and parses a single feed."""
        try:
            resp = requests.get(
                feed.feed_url, timeout=self.timeout, headers={"User-Agent": USER_AGENT}
            )
            resp.raise_for_status()
        except requests.RequestException as req_err:
            raise FeedFetchError(f"Network error fetching {feed.name}: {req_err}") from req_err

        parsed = feedparser.parse(resp.content)
        if parsed.bozo and not parsed.entries:
            raise FeedFetchError(
                f"Unable to parse feed {feed.name}: {parsed.get('bozo_exception')}"
            )

        items: List[FeedItem] = []
        for entry in parsed.entries:
            item = self._to_item(entry)
            if item is not None:
                items.append(item)
        return items
