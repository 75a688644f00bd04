"""
Data models for the Jira RSS sync application.
"""

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import List, NamedTuple, Optional, Tuple, TypedDict


class FeedConfig(NamedTuple):
    """One configured feed, mapped to one Jira project."""

    id: str  # Redis set key for the feed's seen GUIDs
    feed_url: str
    name: str
    jira_project_id: str
    labels: Tuple[str, ...]
    added_since: datetime


class SyncConfig(NamedTuple):
    """The loaded configuration document."""

    feeds: List[FeedConfig]
    interval: int


class FeedItem(TypedDict):
    """Type definition for a fetched feed item."""

    guid: str
    title: str
    body: str
    link: str
    updated_at: Optional[datetime]
    published_at: Optional[datetime]


class TicketDraft(TypedDict):
    """Type definition for an issue about to be created in Jira."""

    project_key: str
    title: str
    description: str
    labels: List[str]
    issue_type: str


class QueryFailurePolicy(enum.Enum):
    """What to do when the existing-issue search fails."""

    HALT = "halt"
    SKIP_FEED = "skip_feed"
    SKIP_ITEM = "skip_item"


@dataclass
class ReconcileReport:
    """Outcome of one reconciliation pass over a single feed."""

    feed_id: str
    fetched: int = 0
    seen: int = 0
    cutoff_skipped: int = 0
    existing_matched: int = 0
    created: int = 0
    failed: int = 0
    anomalies: int = 0
    store_errors: int = 0
    error: Optional[str] = None

    @property
    def aborted(self) -> bool:
        return self.error is not None
