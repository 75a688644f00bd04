"""
Per-feed reconciliation.

For one feed, fetches its items, drops the ones whose GUID is already in the
feed's seen set, and for each remaining item applies the first matching rule:

1. no timestamp at all: skip the item and report the anomaly
2. older than the feed's added_since: mark seen, no Jira call
3. an issue with the same title already exists: mark seen
4. otherwise create the issue, and mark seen only once creation succeeded

A GUID is marked seen only after its end state is reached, so any failure
leaves the item as a candidate for the next sweep.
"""

import datetime
import logging
from typing import Callable, Optional

from jira_rss_sync.errors import (
    FeedFetchError,
    StoreError,
    TrackerCreateError,
    TrackerQueryError,
)
from jira_rss_sync.models import (
    FeedConfig,
    FeedItem,
    QueryFailurePolicy,
    ReconcileReport,
    TicketDraft,
)
from jira_rss_sync.parsers.base import FeedParser
from jira_rss_sync.parsers.text import html_to_text
from jira_rss_sync.services.db import SeenStore
from jira_rss_sync.services.jira import JiraClient
from jira_rss_sync.services.metrics import (
    ISSUE_CREATION_ERRORS,
    ISSUES_CREATED,
    MetricsRecorder,
)

logger = logging.getLogger(__name__)

ISSUE_TYPE = "Task"


class _AbortFeed(Exception):
    """Stops the current feed's pass without affecting other feeds."""


def item_time(item: FeedItem) -> Optional[datetime.datetime]:
    """The updated timestamp if present, else the published one."""
    return item["updated_at"] or item["published_at"]


def build_description(
    item: FeedItem, converter: Callable[[str], str] = html_to_text
) -> str:
    """Plain-text body followed by the item's link and GUID on their own lines."""
    body = item["body"]
    try:
        text = converter(body)
    except Exception:  # pylint: disable=broad-exception-caught
        logger.warning(
            'Unable to parse HTML to text for "%s", falling back to HTML', item["title"]
        )
        text = body
    return f"{text}\n{item['link']}\n{item['guid']}"


def build_draft(
    feed: FeedConfig, item: FeedItem, converter: Callable[[str], str] = html_to_text
) -> TicketDraft:
    return {
        "project_key": feed.jira_project_id,
        "title": item["title"],
        "description": build_description(item, converter),
        "labels": list(feed.labels),
        "issue_type": ISSUE_TYPE,
    }


class Reconciler:
    """Mirrors new feed items into Jira without creating duplicates."""

    def __init__(
        self,
        parser: FeedParser,
        store: SeenStore,
        tracker: JiraClient,
        metrics: MetricsRecorder,
        query_failure_policy: QueryFailurePolicy = QueryFailurePolicy.HALT,
        converter: Callable[[str], str] = html_to_text,
    ):
        self.parser = parser
        self.store = store
        self.tracker = tracker
        self.metrics = metrics
        self.query_failure_policy = query_failure_policy
        self.converter = converter

    def reconcile(self, feed: FeedConfig) -> ReconcileReport:
        """
        Runs one pass over a feed and returns what happened.

        Fetch and partition failures abort only this feed and leave the store
        untouched. A failed existing-issue search raises TrackerQueryError
        under the HALT policy; the other policies contain it.
        """
        report = ReconcileReport(feed_id=feed.id)

        try:
            items = self.parser.fetch(feed)
        except FeedFetchError as e:
            logger.error("Unable to parse feed %s: %s", feed.name, e)
            report.error = str(e)
            return report
        report.fetched = len(items)

        try:
            seen, candidates = self.store.partition(feed.id, items)
        except StoreError as e:
            logger.error("Unable to check seen items for feed %s: %s", feed.name, e)
            report.error = str(e)
            return report
        report.seen = len(seen)

        logger.info(
            "Checked feed: %s, New articles: %d, Old articles: %d",
            feed.name,
            len(candidates),
            len(seen),
        )

        handled = set()
        try:
            for item in candidates:
                if item["guid"] in handled:
                    # Only the first copy of a GUID is acted on in one pass.
                    logger.info(
                        'Skipping repeated item "%s" (%s) in feed %s',
                        item["title"],
                        item["guid"],
                        feed.name,
                    )
                    report.seen += 1
                    continue
                handled.add(item["guid"])
                self._reconcile_item(feed, item, report)
        except _AbortFeed as e:
            report.error = str(e)

        logger.info(
            "Feed %s done: created=%d existing=%d cutoff=%d failed=%d anomalies=%d%s",
            feed.name,
            report.created,
            report.existing_matched,
            report.cutoff_skipped,
            report.failed,
            report.anomalies,
            " (aborted)" if report.aborted else "",
        )
        return report

    def _mark_seen(self, feed: FeedConfig, item: FeedItem, report: ReconcileReport) -> None:
        try:
            self.store.mark_seen(feed.id, item["guid"])
        except StoreError as e:
            # Not retried: the next sweep re-runs the rules and converges.
            logger.error('Unable to persist "%s" in Redis: %s', item["title"], e)
            report.store_errors += 1

    def _has_existing_issue(
        self, feed: FeedConfig, item: FeedItem, report: ReconcileReport
    ) -> Optional[bool]:
        """None means the search failed and the item must be left alone."""
        try:
            return bool(self.tracker.find_existing(feed.jira_project_id, item["title"]))
        except TrackerQueryError as e:
            if self.query_failure_policy is QueryFailurePolicy.HALT:
                raise
            if self.query_failure_policy is QueryFailurePolicy.SKIP_FEED:
                logger.error("Skipping rest of feed %s this sweep: %s", feed.name, e)
                raise _AbortFeed(str(e)) from e
            logger.error('Skipping "%s" this sweep: %s', item["title"], e)
            report.failed += 1
            return None

    def _reconcile_item(
        self, feed: FeedConfig, item: FeedItem, report: ReconcileReport
    ) -> None:
        timestamp = item_time(item)
        if timestamp is None:
            logger.warning(
                'Skipping "%s" (%s): item has neither updated nor published date',
                item["title"],
                item["guid"],
            )
            report.anomalies += 1
            return

        if timestamp < feed.added_since:
            logger.info(
                "Ignoring '%s' as its date is before the specified AddedSince (Item: %s vs AddedSince: %s)",
                item["title"],
                timestamp.isoformat(),
                feed.added_since.isoformat(),
            )
            self._mark_seen(feed, item, report)
            report.cutoff_skipped += 1
            return

        existing = self._has_existing_issue(feed, item, report)
        if existing is None:
            return
        if existing:
            logger.info('Adding "%s" to Redis as it was found in Jira', item["title"])
            self._mark_seen(feed, item, report)
            report.existing_matched += 1
            return

        draft = build_draft(feed, item, self.converter)
        try:
            key = self.tracker.create_issue(draft)
        except TrackerCreateError as e:
            logger.error("Unable to create Jira issue for %s: %s", feed.name, e)
            self.metrics.increment(ISSUE_CREATION_ERRORS)
            report.failed += 1
            return

        self.metrics.increment(ISSUES_CREATED)
        report.created += 1
        logger.info("Created Jira Issue '%s' in project: %s", key, feed.jira_project_id)
        self._mark_seen(feed, item, report)
