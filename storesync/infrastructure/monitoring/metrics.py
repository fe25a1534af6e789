"""Counters describing data-access behaviour.

Counters only grow; `queue_depth` is a gauge updated whenever the offline
queue changes. Callers get copies, and only `reset()` zeroes the values.
"""

import logging
import threading
from typing import Dict

from storesync.domain.models.common import MetricsSnapshot

logger = logging.getLogger(__name__)

COUNTERS = (
    "cache_hits",
    "cache_misses",
    "network_requests",
    "network_errors",
    "rate_limit_rejections",
    "deduplicated_reads",
    "queued_writes",
    "replayed_operations",
    "failed_replays",
)
GAUGES = ("queue_depth",)


class MetricsTracker:
    """Thread-safe holder of the data-access counters."""

    def __init__(self):
        self._values: Dict[str, int] = {name: 0 for name in COUNTERS + GAUGES}
        self._lock = threading.Lock()

    def increment(self, metric: str, value: int = 1) -> None:
        if metric not in COUNTERS:
            raise KeyError(f"Unknown counter: {metric}")
        if value < 0:
            raise ValueError("Counters only increase.")
        with self._lock:
            self._values[metric] += value

    def set_gauge(self, metric: str, value: int) -> None:
        if metric not in GAUGES:
            raise KeyError(f"Unknown gauge: {metric}")
        with self._lock:
            self._values[metric] = value

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(**self._values)

    def reset(self) -> None:
        with self._lock:
            for name in self._values:
                self._values[name] = 0
        logger.info("Metrics reset.")
