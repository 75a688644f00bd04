"""
Configuration loading.

The feed list and sweep interval come from a YAML document in the config
directory; credentials and connection settings come from environment variables.
"""

import datetime
import logging
import os
from typing import Any, Dict, List, Mapping, NamedTuple, Optional

import yaml

from jira_rss_sync.errors import ConfigError
from jira_rss_sync.models import FeedConfig, QueryFailurePolicy, SyncConfig

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.yaml"
DEFAULT_REDIS_PORT = 6379

_REQUIRED_FEED_KEYS = ("id", "feed_url", "name", "jira_project_id", "added_since")


class EnvValues(NamedTuple):
    """Settings read from the process environment."""

    redis_url: str
    redis_password: str
    conf_dir: str
    jira_token: str
    jira_username: str
    jira_url: str
    use_sentinel: bool
    use_tls: bool
    query_failure_policy: QueryFailurePolicy = QueryFailurePolicy.HALT
    http_timeout: float = 30.0
    listen_address: str = ":8080"
    log_level: str = "INFO"


def parse_timestamp(value: Any) -> datetime.datetime:
    """Coerces a YAML timestamp, date or ISO-8601 string into an aware UTC datetime."""
    if isinstance(value, datetime.datetime):
        parsed = value
    elif isinstance(value, datetime.date):
        parsed = datetime.datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        # fromisoformat only accepts a trailing Z from 3.11 on
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.datetime.fromisoformat(text)
        except ValueError as e:
            raise ConfigError(f"Invalid timestamp {value!r}: {e}") from e
    else:
        raise ConfigError(f"Invalid timestamp {value!r}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed.astimezone(datetime.timezone.utc)


def _parse_feed(entry: Any, index: int) -> FeedConfig:
    if not isinstance(entry, dict):
        raise ConfigError(f"Feed #{index} must be a mapping")

    missing = [key for key in _REQUIRED_FEED_KEYS if entry.get(key) in (None, "")]
    if missing:
        raise ConfigError(f"Feed #{index} is missing {', '.join(missing)}")

    labels = entry.get("labels") or []
    if not isinstance(labels, list):
        raise ConfigError(f"Feed {entry['id']!r}: labels must be a list")

    return FeedConfig(
        id=str(entry["id"]),
        feed_url=str(entry["feed_url"]),
        name=str(entry["name"]),
        jira_project_id=str(entry["jira_project_id"]),
        labels=tuple(str(label) for label in labels),
        added_since=parse_timestamp(entry["added_since"]),
    )


def parse_config(data: Any) -> SyncConfig:
    """Validates a decoded configuration document."""
    if not isinstance(data, dict):
        raise ConfigError("Config document must be a mapping")

    interval = data.get("interval")
    if not isinstance(interval, int) or isinstance(interval, bool) or interval <= 0:
        raise ConfigError(f"interval must be a positive number of seconds, got {interval!r}")

    raw_feeds = data.get("feeds") or []
    if not isinstance(raw_feeds, list):
        raise ConfigError("feeds must be a list")

    feeds: List[FeedConfig] = []
    seen_ids = set()
    for index, entry in enumerate(raw_feeds):
        feed = _parse_feed(entry, index)
        if feed.id in seen_ids:
            raise ConfigError(f"Duplicate feed id {feed.id!r}")
        seen_ids.add(feed.id)
        feeds.append(feed)

    if not feeds:
        logger.warning("No feeds configured.")

    return SyncConfig(feeds=feeds, interval=interval)


def load_config(path: str) -> SyncConfig:
    """Loads configuration from a YAML file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Unable to read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Unable to parse config YAML {path}: {e}") from e

    config = parse_config(data)
    logger.info("Loaded %d feeds from %s (interval %ds).", len(config.feeds), path, config.interval)
    return config


def config_path(env: EnvValues) -> str:
    return os.path.join(env.conf_dir, CONFIG_FILENAME)


def _require(environ: Mapping[str, str], name: str) -> str:
    value = environ.get(name, "")
    if not value:
        raise ConfigError(f"Could not find {name} specified as an environment variable")
    return value


def _redis_password(environ: Mapping[str, str]) -> str:
    password: Optional[str] = environ.get("REDIS_PASSWORD")
    auth_token: Optional[str] = environ.get("REDIS_AUTH_TOKEN")
    if password is None and auth_token is None:
        raise ConfigError(
            "Could not find REDIS_PASSWORD or REDIS_AUTH_TOKEN specified as an environment variable"
        )
    if password:
        return password
    logger.info("Using Redis auth token in place of password")
    return auth_token or ""


def _redis_url(environ: Mapping[str, str]) -> str:
    url = environ.get("REDIS_URL", "")
    if url:
        return url
    endpoint = environ.get("REDIS_PRIMARY_ENDPOINT", "")
    if not endpoint:
        raise ConfigError(
            "Could not find REDIS_URL or REDIS_PRIMARY_ENDPOINT specified as an environment variable"
        )
    logger.info("Using Redis primary endpoint as URL")
    return f"{endpoint}:{DEFAULT_REDIS_PORT}"


def _query_failure_policy(environ: Mapping[str, str]) -> QueryFailurePolicy:
    raw = environ.get("QUERY_FAILURE_POLICY", QueryFailurePolicy.HALT.value)
    try:
        return QueryFailurePolicy(raw.strip().lower())
    except ValueError as e:
        choices = ", ".join(p.value for p in QueryFailurePolicy)
        raise ConfigError(f"QUERY_FAILURE_POLICY must be one of {choices}, got {raw!r}") from e


def _http_timeout(environ: Mapping[str, str]) -> float:
    raw = environ.get("HTTP_TIMEOUT", "30")
    try:
        timeout = float(raw)
    except ValueError as e:
        raise ConfigError(f"HTTP_TIMEOUT must be a number, got {raw!r}") from e
    if timeout <= 0:
        raise ConfigError(f"HTTP_TIMEOUT must be positive, got {raw!r}")
    return timeout


def _log_level(environ: Mapping[str, str]) -> str:
    level = (environ.get("LOG_LEVEL") or "INFO").strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigError(f"LOG_LEVEL must be a logging level name, got {level!r}")
    return level


def read_env(environ: Optional[Mapping[str, str]] = None) -> EnvValues:
    """Reads process settings from the environment."""
    if environ is None:
        environ = os.environ

    use_sentinel = "USE_SENTINEL" in environ
    if use_sentinel:
        logger.info("Running in sentinel aware mode")

    values: Dict[str, Any] = {
        "jira_url": _require(environ, "JIRA_URL"),
        "jira_username": _require(environ, "JIRA_USERNAME"),
        "jira_token": _require(environ, "JIRA_API_TOKEN"),
        "conf_dir": _require(environ, "CONFIG_DIR"),
        "redis_password": _redis_password(environ),
        "redis_url": _redis_url(environ),
        "use_sentinel": use_sentinel,
        "use_tls": environ.get("REDIS_SSL") == "1",
        "query_failure_policy": _query_failure_policy(environ),
        "http_timeout": _http_timeout(environ),
        "listen_address": environ.get("LISTEN_ADDRESS") or ":8080",
        "log_level": _log_level(environ),
    }
    return EnvValues(**values)
