"""
Exception types raised at the feed, store and tracker boundaries.
"""


class SyncError(Exception):
    """Base class for all jira-rss-sync errors."""


class ConfigError(SyncError):
    """Missing or invalid environment values or configuration document."""


class FeedFetchError(SyncError):
    """The feed could not be downloaded or parsed."""


class StoreError(SyncError):
    """A Redis read or write failed."""


class StoreUnavailableError(StoreError):
    """Redis did not answer the liveness probe."""


class TrackerError(SyncError):
    """A Jira request failed."""


class TrackerQueryError(TrackerError):
    """Searching Jira for an existing issue failed."""


class TrackerCreateError(TrackerError):
    """Creating a Jira issue failed."""


class HttpServerError(SyncError):
    """The health and metrics listener could not be started."""
