"""Unit tests for the health and metrics endpoints."""

import socket
import unittest
from unittest.mock import MagicMock, patch

from jira_rss_sync.errors import ConfigError, HttpServerError
from jira_rss_sync.services.http import create_app, parse_listen_address, serve_in_background
from jira_rss_sync.services.metrics import (
    ISSUE_CREATION_ERRORS,
    ISSUES_CREATED,
    LAST_RUN,
    PrometheusMetrics,
)


class TestEndpoints(unittest.TestCase):
    def setUp(self):
        self.store = MagicMock()
        self.metrics = PrometheusMetrics()
        self.client = create_app(self.store, self.metrics).test_client()

    def test_healthz_ok(self):
        self.store.ping.return_value = True
        resp = self.client.get("/healthz")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_data(as_text=True), "All is well!")

    def test_healthz_redis_down(self):
        self.store.ping.return_value = False
        resp = self.client.get("/healthz")
        self.assertEqual(resp.status_code, 500)

    def test_metrics_exposes_counters_and_gauge(self):
        self.metrics.increment(ISSUES_CREATED)
        self.metrics.increment(ISSUES_CREATED)
        self.metrics.increment(ISSUE_CREATION_ERRORS)
        self.metrics.set_gauge(LAST_RUN, 1700000000)

        resp = self.client.get("/metrics")
        body = resp.get_data(as_text=True)

        self.assertEqual(resp.status_code, 200)
        self.assertIn("text/plain", resp.headers["Content-Type"])
        self.assertIn("jira_rss_sync_issue_creation_total 2.0", body)
        self.assertIn("jira_rss_sync_issue_creation_error_total 1.0", body)
        self.assertIn("jira_rss_sync_last_run_time 1.7e+09", body)


class TestMetrics(unittest.TestCase):
    def test_value_and_unknown_names(self):
        metrics = PrometheusMetrics()
        metrics.increment(ISSUES_CREATED)
        self.assertEqual(metrics.value(ISSUES_CREATED), 1.0)
        self.assertEqual(metrics.value(ISSUE_CREATION_ERRORS), 0.0)
        with self.assertRaises(KeyError):
            metrics.increment("nope")
        with self.assertRaises(KeyError):
            metrics.value("nope")

    def test_registries_are_independent(self):
        first, second = PrometheusMetrics(), PrometheusMetrics()
        first.increment(ISSUES_CREATED)
        self.assertEqual(second.value(ISSUES_CREATED), 0.0)


class TestServe(unittest.TestCase):
    def test_parse_listen_address(self):
        self.assertEqual(parse_listen_address(":8080"), ("0.0.0.0", 8080))
        self.assertEqual(parse_listen_address("127.0.0.1:9000"), ("127.0.0.1", 9000))
        for bad in ("8080", "localhost:", "host:http", ":70000"):
            with self.assertRaises(ConfigError):
                parse_listen_address(bad)

    def test_bad_address_is_rejected_before_binding(self):
        with patch("jira_rss_sync.services.http.make_server") as mock_make_server:
            with self.assertRaises(ConfigError):
                serve_in_background(MagicMock(), "8080")
        mock_make_server.assert_not_called()

    @patch("jira_rss_sync.services.http.threading.Thread")
    @patch("jira_rss_sync.services.http.make_server")
    def test_serve_in_background(self, mock_make_server, mock_thread):
        app = MagicMock()
        server = serve_in_background(app, ":9100")

        mock_make_server.assert_called_once_with("0.0.0.0", 9100, app, threaded=True)
        self.assertIs(server, mock_make_server.return_value)
        kwargs = mock_thread.call_args[1]
        self.assertIs(kwargs["target"], server.serve_forever)
        self.assertTrue(kwargs["daemon"])
        mock_thread.return_value.start.assert_called_once_with()

    @patch("jira_rss_sync.services.http.threading.Thread")
    def test_port_in_use_raises(self, mock_thread):
        busy = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.addCleanup(busy.close)
        busy.bind(("127.0.0.1", 0))
        busy.listen(1)
        port = busy.getsockname()[1]

        with self.assertRaises(HttpServerError):
            serve_in_background(create_app(MagicMock(), PrometheusMetrics()), f"127.0.0.1:{port}")
        mock_thread.assert_not_called()

    @patch("jira_rss_sync.services.http.make_server", side_effect=OSError("no such host"))
    def test_bind_error_raises(self, _):
        with self.assertRaises(HttpServerError):
            serve_in_background(MagicMock(), "bogus.invalid:9100")


if __name__ == "__main__":
    unittest.main()
