"""Unit tests for the Redis seen store."""

import unittest
from unittest.mock import MagicMock, patch

import redis

from jira_rss_sync.config import EnvValues
from jira_rss_sync.errors import ConfigError, StoreError, StoreUnavailableError
from jira_rss_sync.services.db import SeenStore, build_redis_client


def make_env(**overrides):
    values = {
        "redis_url": "redis.internal:6380",
        "redis_password": "secret",
        "conf_dir": "/etc/jira-rss-sync",
        "jira_token": "token",
        "jira_username": "bot",
        "jira_url": "https://jira.example.com",
        "use_sentinel": False,
        "use_tls": False,
    }
    values.update(overrides)
    return EnvValues(**values)


def make_item(guid):
    return {
        "guid": guid,
        "title": guid,
        "body": "",
        "link": "",
        "updated_at": None,
        "published_at": None,
    }


class TestSeenStore(unittest.TestCase):
    def setUp(self):
        self.client = MagicMock()
        self.pipe = self.client.pipeline.return_value
        self.store = SeenStore(self.client, address="redis.internal:6380")

    def test_partition_keeps_order(self):
        self.pipe.execute.return_value = [True, False, 1, 0]
        items = [make_item(g) for g in ("a", "b", "c", "d")]

        seen, candidates = self.store.partition("feed-1", items)

        self.assertEqual([i["guid"] for i in seen], ["a", "c"])
        self.assertEqual([i["guid"] for i in candidates], ["b", "d"])
        self.pipe.sismember.assert_any_call("feed-1", "a")
        self.assertEqual(self.pipe.sismember.call_count, 4)

    def test_partition_empty(self):
        self.assertEqual(self.store.partition("feed-1", []), ([], []))
        self.client.pipeline.assert_not_called()

    def test_partition_error(self):
        self.pipe.execute.side_effect = redis.ConnectionError("gone")
        with self.assertRaises(StoreError):
            self.store.partition("feed-1", [make_item("a")])

    def test_mark_seen(self):
        self.store.mark_seen("feed-1", "guid-1")
        self.client.sadd.assert_called_once_with("feed-1", "guid-1")

    def test_mark_seen_error(self):
        self.client.sadd.side_effect = redis.TimeoutError("slow")
        with self.assertRaises(StoreError):
            self.store.mark_seen("feed-1", "guid-1")

    def test_ping(self):
        self.client.ping.return_value = True
        self.assertTrue(self.store.ping())
        self.client.ping.side_effect = redis.ConnectionError("gone")
        self.assertFalse(self.store.ping())

    def test_check_connection(self):
        self.client.ping.side_effect = redis.ConnectionError("gone")
        with self.assertRaises(StoreUnavailableError):
            self.store.check_connection()


class TestBuildRedisClient(unittest.TestCase):
    @patch("jira_rss_sync.services.db.redis.Redis")
    def test_plain(self, mock_redis):
        build_redis_client(make_env())
        kwargs = mock_redis.call_args[1]
        self.assertEqual(kwargs["host"], "redis.internal")
        self.assertEqual(kwargs["port"], 6380)
        self.assertEqual(kwargs["password"], "secret")
        self.assertEqual(kwargs["db"], 0)
        self.assertFalse(kwargs["ssl"])

    @patch("jira_rss_sync.services.db.redis.Redis")
    def test_tls(self, mock_redis):
        build_redis_client(make_env(use_tls=True))
        self.assertTrue(mock_redis.call_args[1]["ssl"])

    @patch("jira_rss_sync.services.db.Sentinel")
    def test_sentinel(self, mock_sentinel):
        client = build_redis_client(make_env(use_sentinel=True))
        args, kwargs = mock_sentinel.call_args
        self.assertEqual(args[0], [("redis.internal", 6380)])
        self.assertEqual(kwargs["password"], "secret")
        mock_sentinel.return_value.master_for.assert_called_once_with("mymaster")
        self.assertIs(client, mock_sentinel.return_value.master_for.return_value)

    def test_bad_port(self):
        with self.assertRaises(ConfigError):
            build_redis_client(make_env(redis_url="redis.internal:abc"))


if __name__ == "__main__":
    unittest.main()
