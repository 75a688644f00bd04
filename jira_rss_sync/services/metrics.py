"""
Metrics service module.

The reconciler and scheduler record through a MetricsRecorder that is passed
in, rather than touching module-level metric objects. PrometheusMetrics backs
it with a private CollectorRegistry that the /metrics endpoint exposes.
"""

from typing import Dict, Optional, Protocol

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest

SUBSYSTEM = "jira_rss_sync"

LAST_RUN = "last_run_time"
ISSUES_CREATED = "issue_creation"
ISSUE_CREATION_ERRORS = "issue_creation_error"


class MetricsRecorder(Protocol):
    """Counters and gauges the sync loop reports to."""

    def increment(self, name: str) -> None:
        """Adds one to a counter."""

    def set_gauge(self, name: str, value: float) -> None:
        """Sets a gauge to an absolute value."""


class PrometheusMetrics(MetricsRecorder):
    """MetricsRecorder backed by prometheus_client; safe to share across threads."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else CollectorRegistry()
        self._gauges: Dict[str, Gauge] = {
            LAST_RUN: Gauge(
                LAST_RUN,
                "Last Run Time in Unix Seconds",
                subsystem=SUBSYSTEM,
                registry=self.registry,
            ),
        }
        # prometheus_client appends _total to counter names on exposition
        self._counters: Dict[str, Counter] = {
            ISSUES_CREATED: Counter(
                ISSUES_CREATED,
                "The total number of issues created in Jira since start-up",
                subsystem=SUBSYSTEM,
                registry=self.registry,
            ),
            ISSUE_CREATION_ERRORS: Counter(
                ISSUE_CREATION_ERRORS,
                "The total of failures in creating Jira issues since start-up",
                subsystem=SUBSYSTEM,
                registry=self.registry,
            ),
        }

    def increment(self, name: str) -> None:
        self._counters[name].inc()

    def set_gauge(self, name: str, value: float) -> None:
        self._gauges[name].set(value)

    def value(self, name: str) -> float:
        """Current value of a counter or gauge, mostly for tests and logs."""
        if name in self._counters:
            sample = f"{SUBSYSTEM}_{name}_total"
        elif name in self._gauges:
            sample = f"{SUBSYSTEM}_{name}"
        else:
            raise KeyError(name)
        return self.registry.get_sample_value(sample) or 0.0

    def render(self) -> bytes:
        return generate_latest(self.registry)
