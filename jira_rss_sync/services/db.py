"""
Database service for state management and deduplication.

This module provides the SeenStore class which interfaces with Redis to track
the GUIDs already reconciled for each feed. Every feed owns one Redis set,
keyed by the feed id, whose members are item GUIDs. Members are only ever
added.
"""

import logging
from typing import List, Tuple

import redis
from redis.sentinel import Sentinel

from jira_rss_sync.config import DEFAULT_REDIS_PORT, EnvValues
from jira_rss_sync.errors import ConfigError, StoreError, StoreUnavailableError
from jira_rss_sync.models import FeedItem

logger = logging.getLogger(__name__)

SENTINEL_MASTER_NAME = "mymaster"


def _split_address(address: str) -> Tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep:
        return address, DEFAULT_REDIS_PORT
    if not port.isdigit():
        raise ConfigError(f"Invalid Redis address {address!r}")
    return host, int(port)


def build_redis_client(env: EnvValues, socket_timeout: float = 10) -> redis.Redis:
    """Creates a plain, TLS or Sentinel-aware Redis client on DB 0."""
    host, port = _split_address(env.redis_url)

    if env.use_sentinel:
        sentinel = Sentinel(
            [(host, port)],
            password=env.redis_password,
            db=0,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return sentinel.master_for(SENTINEL_MASTER_NAME)

    if env.use_tls:
        logger.info("TLS config enabled")

    return redis.Redis(
        host=host,
        port=port,
        password=env.redis_password,
        db=0,
        ssl=env.use_tls,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
    )


class SeenStore:
    """Handles deduplication using Redis sets."""

    def __init__(self, client: redis.Redis, address: str = ""):
        self.client = client
        self.address = address

    def ping(self) -> bool:
        """Liveness probe; never raises."""
        try:
            return bool(self.client.ping())
        except redis.RedisError as e:
            logger.warning("Redis ping failed: %s", e)
            return False

    def check_connection(self) -> None:
        """Raises StoreUnavailableError when Redis does not answer."""
        if not self.ping():
            raise StoreUnavailableError(f"Unable to connect to Redis @ {self.address}")
        logger.info("Connected to Redis @ %s", self.address)

    def partition(
        self, feed_id: str, items: List[FeedItem]
    ) -> Tuple[List[FeedItem], List[FeedItem]]:
        """Splits items into (already seen, candidates), keeping feed order."""
        if not items:
            return [], []

        try:
            pipe = self.client.pipeline(transaction=False)
            for item in items:
                pipe.sismember(feed_id, item["guid"])
            results = pipe.execute()
        except redis.RedisError as e:
            raise StoreError(f"Unable to read seen set {feed_id}: {e}") from e

        seen: List[FeedItem] = []
        candidates: List[FeedItem] = []
        for item, found in zip(items, results):
            if found:
                seen.append(item)
            else:
                candidates.append(item)
        return seen, candidates

    def mark_seen(self, feed_id: str, guid: str) -> None:
        """Adds a GUID to the feed's seen set."""
        try:
            self.client.sadd(feed_id, guid)
        except redis.RedisError as e:
            raise StoreError(f"Unable to persist {guid} in {feed_id}: {e}") from e
