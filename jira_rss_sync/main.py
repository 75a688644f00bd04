"""
Jira RSS Sync
This service polls RSS/Atom feeds, deduplicates items using Redis,
and raises a Jira issue for every new item.
"""

import argparse
import logging
import sys
from typing import List, Optional

from jira_rss_sync.config import config_path, load_config, read_env
from jira_rss_sync.errors import (
    ConfigError,
    HttpServerError,
    StoreUnavailableError,
    TrackerQueryError,
)
from jira_rss_sync.parsers.rss import RSSParser
from jira_rss_sync.reconciler import Reconciler
from jira_rss_sync.scheduler import Scheduler
from jira_rss_sync.services.db import SeenStore, build_redis_client
from jira_rss_sync.services.http import create_app, serve_in_background
from jira_rss_sync.services.jira import JiraClient
from jira_rss_sync.services.metrics import PrometheusMetrics


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Mirror new feed items into Jira issues.")
    parser.add_argument(
        "--listen-address",
        default=None,
        help="The address to listen on for HTTP requests (default: $LISTEN_ADDRESS or :8080).",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single sweep and exit instead of looping forever.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main execution entry point."""
    args = parse_args(argv)

    try:
        env = read_env()
        logging.getLogger().setLevel(env.log_level)

        store = SeenStore(build_redis_client(env), address=env.redis_url)
        store.check_connection()

        config = load_config(config_path(env))
    except (ConfigError, StoreUnavailableError) as e:
        logger.critical("Startup failed: %s", e)
        return 1

    metrics = PrometheusMetrics()
    tracker = JiraClient(
        env.jira_url, env.jira_username, env.jira_token, timeout=env.http_timeout
    )
    reconciler = Reconciler(
        RSSParser(timeout=env.http_timeout),
        store,
        tracker,
        metrics,
        query_failure_policy=env.query_failure_policy,
    )
    scheduler = Scheduler(config.feeds, reconciler, metrics, config.interval)

    if not args.once:
        try:
            serve_in_background(
                create_app(store, metrics), args.listen_address or env.listen_address
            )
        except (ConfigError, HttpServerError) as e:
            logger.critical("Startup failed: %s", e)
            return 1

    try:
        scheduler.run_forever(max_sweeps=1 if args.once else None)
    except TrackerQueryError as e:
        # Creating an issue without a working duplicate check risks duplicates.
        logger.critical("Jira issue search failed, stopping: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
