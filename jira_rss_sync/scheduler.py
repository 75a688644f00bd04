"""
Sweep scheduling.

One loop reconciles every configured feed in order, records the last-run
gauge, sleeps for the configured interval and starts again.
"""

import datetime
import logging
import time
from typing import Callable, List, Optional

from jira_rss_sync.errors import TrackerQueryError
from jira_rss_sync.models import FeedConfig, ReconcileReport
from jira_rss_sync.reconciler import Reconciler
from jira_rss_sync.services.metrics import LAST_RUN, MetricsRecorder

logger = logging.getLogger(__name__)


class Scheduler:
    """Runs the reconciler across all feeds on a fixed interval."""

    def __init__(
        self,
        feeds: List[FeedConfig],
        reconciler: Reconciler,
        metrics: MetricsRecorder,
        interval: int,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.feeds = feeds
        self.reconciler = reconciler
        self.metrics = metrics
        self.interval = interval
        self._sleep = sleep
        self._clock = clock

    def run_once(self) -> List[ReconcileReport]:
        """Reconciles each feed in turn; one feed failing does not stop the others."""
        started = self._clock()
        logger.info(
            "Running checks at %s",
            datetime.datetime.fromtimestamp(started).strftime("%A, %d-%b-%y %H:%M:%S"),
        )

        reports = []
        for feed in self.feeds:
            try:
                reports.append(self.reconciler.reconcile(feed))
            except TrackerQueryError:
                raise
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.exception("Unexpected error reconciling feed %s", feed.name)
                reports.append(ReconcileReport(feed_id=feed.id, error=repr(e)))

        self.metrics.set_gauge(LAST_RUN, self._clock())
        logger.info(
            "Sweep finished in %.1fs: %d feeds, %d aborted, %d issues created.",
            self._clock() - started,
            len(reports),
            sum(1 for r in reports if r.aborted),
            sum(r.created for r in reports),
        )
        return reports

    def run_forever(self, max_sweeps: Optional[int] = None) -> None:
        """Sweeps then sleeps, until killed (or after max_sweeps sweeps)."""
        sweeps = 0
        while max_sweeps is None or sweeps < max_sweeps:
            self.run_once()
            sweeps += 1
            if max_sweeps is not None and sweeps >= max_sweeps:
                break
            self._sleep(self.interval)
