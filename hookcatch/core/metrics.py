"""
In-process metrics for the capture server, exposed at GET /metrics.

Every metric hookcatch records is declared in METRICS with its type and help
text; recording an undeclared name raises KeyError.
"""

from __future__ import annotations

import time
from collections import defaultdict

PREFIX = "hookcatch_"

METRICS: dict[str, tuple[str, str]] = {
    "events_ingested_total": ("counter", "Webhook events stored"),
    "events_ingest_failed_total": ("counter", "Webhook events the store rejected"),
    "broadcast_delivered_total": ("counter", "Event deliveries handed to live listeners"),
    "broadcast_dropped_total": ("counter", "Listeners dropped for a full queue or a closed stream"),
    "listeners_active": ("gauge", "Live feed listeners currently subscribed"),
}


class MetricsCollector:
    """Counters and gauges with Prometheus text exposition."""

    def __init__(self) -> None:
        self._counters: dict[str, int] = defaultdict(int)
        self._gauges: dict[str, float] = {}
        self._start_time = time.monotonic()

    @staticmethod
    def _check(name: str, kind: str) -> None:
        declared = METRICS[name][0]
        if declared != kind:
            raise KeyError(f"{name} is a {declared}, not a {kind}")

    def inc(self, name: str, value: int = 1) -> None:
        self._check(name, "counter")
        self._counters[name] += value

    def set_gauge(self, name: str, value: float) -> None:
        self._check(name, "gauge")
        self._gauges[name] = value

    def get(self, name: str) -> int | float:
        if name in self._gauges:
            return self._gauges[name]
        return self._counters.get(name, 0)

    @property
    def uptime(self) -> float:
        return time.monotonic() - self._start_time

    def to_prometheus(self) -> str:
        """Render every declared metric, unset ones as 0."""
        lines = []
        for name, (kind, help_text) in sorted(METRICS.items()):
            full = f"{PREFIX}{name}"
            lines.append(f"# HELP {full} {help_text}")
            lines.append(f"# TYPE {full} {kind}")
            lines.append(f"{full} {self.get(name)}")
        lines.append(f"# HELP {PREFIX}uptime_seconds Seconds since the server started")
        lines.append(f"# TYPE {PREFIX}uptime_seconds gauge")
        lines.append(f"{PREFIX}uptime_seconds {self.uptime:.1f}")
        return "\n".join(lines) + "\n"
