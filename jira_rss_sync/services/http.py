"""
Health and metrics HTTP endpoints.

Runs alongside the sync loop on a daemon thread:
- GET /healthz answers 200 while Redis responds to PING, 500 otherwise
- GET /metrics serves the Prometheus exposition of the injected registry
"""

import logging
import threading
from typing import Tuple

from flask import Flask, Response
from prometheus_client import CONTENT_TYPE_LATEST
from werkzeug.serving import BaseWSGIServer, make_server

from jira_rss_sync.errors import ConfigError, HttpServerError
from jira_rss_sync.services.db import SeenStore
from jira_rss_sync.services.metrics import PrometheusMetrics

logger = logging.getLogger(__name__)


def parse_listen_address(address: str) -> Tuple[str, int]:
    """Splits ``host:port`` (host optional, as in ``:8080``)."""
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit() or int(port) > 65535:
        raise ConfigError(f"Invalid listen address {address!r}")
    return host or "0.0.0.0", int(port)


def create_app(store: SeenStore, metrics: PrometheusMetrics) -> Flask:
    app = Flask(__name__)

    @app.route("/healthz")
    def healthz():
        if not store.ping():
            return Response(
                "Unable to connect to the redis master", status=500, mimetype="text/plain"
            )
        return Response("All is well!", status=200, mimetype="text/plain")

    @app.route("/metrics")
    def metrics_endpoint():
        return Response(metrics.render(), status=200, content_type=CONTENT_TYPE_LATEST)

    return app


def serve_in_background(app: Flask, listen_address: str) -> BaseWSGIServer:
    """
    Binds the HTTP server in the calling thread, then serves it on a daemon thread.

    Raises ConfigError for a malformed address and HttpServerError when the
    socket cannot be bound, so a dead listener stops start-up.
    """
    host, port = parse_listen_address(listen_address)
    try:
        server = make_server(host, port, app, threaded=True)
    except OSError as e:
        raise HttpServerError(f"Unable to listen on {listen_address}: {e}") from e
    except SystemExit as e:
        # werkzeug reports bind failures on stderr and calls sys.exit(1).
        raise HttpServerError(f"Unable to listen on {listen_address}") from e

    thread = threading.Thread(target=server.serve_forever, name="http", daemon=True)
    thread.start()
    logger.info("Serving /healthz and /metrics on %s:%d", host, port)
    return server
