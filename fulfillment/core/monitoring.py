"""
Monitoring utilities

In-memory counters and rolling histograms for carrier calls and
inventory claims. Exposed as JSON on /metrics.
"""
import logging
from collections import deque
from datetime import datetime, timezone, timedelta
from threading import Lock
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class MetricsCollector:
    """
    In-memory metrics collector with rolling windows.

    Collects:
    - Counters (monotonically increasing values)
    - Histograms (distribution of values, e.g. carrier latency)
    """

    def __init__(self, max_observations: int = 10000):
        self._counters: Dict[str, int] = {}
        self._histograms: Dict[str, deque] = {}
        self._max_observations = max_observations
        self._lock = Lock()
        self._start_time = datetime.now(timezone.utc)

    def increment(self, name: str, value: int = 1, labels: Dict[str, str] = None) -> None:
        """Increment a counter metric."""
        key = self._make_key(name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + value

    def observe(self, name: str, value: float, labels: Dict[str, str] = None) -> None:
        """Record a histogram observation."""
        key = self._make_key(name, labels)
        now = datetime.now(timezone.utc)
        with self._lock:
            if key not in self._histograms:
                self._histograms[key] = deque(maxlen=self._max_observations)
            self._histograms[key].append((now, value))

    def _make_key(self, name: str, labels: Optional[Dict[str, str]]) -> str:
        if not labels:
            return name
        label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{name}{{{label_str}}}"

    def get_counter(self, name: str, labels: Dict[str, str] = None) -> int:
        key = self._make_key(name, labels)
        return self._counters.get(key, 0)

    def get_histogram_stats(self, name: str, labels: Dict[str, str] = None,
                            window_seconds: int = 300) -> Dict:
        """Get histogram statistics for time window."""
        return self._histogram_stats(self._make_key(name, labels), window_seconds)

    def _histogram_stats(self, key: str, window_seconds: int = 300) -> Dict:
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=window_seconds)

        with self._lock:
            if key not in self._histograms:
                return {"count": 0, "avg": 0, "min": 0, "max": 0, "p95": 0}
            values = [v for ts, v in self._histograms[key] if ts > cutoff]

        if not values:
            return {"count": 0, "avg": 0, "min": 0, "max": 0, "p95": 0}

        values.sort()
        p95_idx = int(len(values) * 0.95)

        return {
            "count": len(values),
            "avg": sum(values) / len(values),
            "min": values[0],
            "max": values[-1],
            "p95": values[p95_idx] if p95_idx < len(values) else values[-1],
        }

    def get_all_metrics(self) -> Dict:
        """Get all metrics for export/display."""
        now = datetime.now(timezone.utc)
        with self._lock:
            counters = dict(self._counters)
            histogram_keys = list(self._histograms.keys())

        return {
            "uptime_seconds": (now - self._start_time).total_seconds(),
            "timestamp": now.isoformat(),
            "counters": counters,
            "histograms": {
                key: self._histogram_stats(key) for key in histogram_keys
            },
        }

    def reset(self) -> None:
        """Clear all metrics (used by tests)."""
        with self._lock:
            self._counters.clear()
            self._histograms.clear()


# Global metrics collector
metrics = MetricsCollector()


def record_carrier_request(carrier: str, outcome: str, duration_ms: float) -> None:
    """Record one outbound carrier tracking call."""
    labels = {"carrier": carrier, "outcome": outcome}
    metrics.increment("carrier_requests_total", labels=labels)
    metrics.observe("carrier_request_duration_ms", duration_ms, labels={"carrier": carrier})


def record_inventory_claim(claimed: bool) -> None:
    """Record an attempt to claim the delivered-inventory adjustment."""
    metrics.increment("inventory_claims_total", labels={"claimed": str(claimed).lower()})


def configure_logging(level: Optional[str] = None) -> None:
    """Apply the process-wide logging format. Called once at startup."""
    from fulfillment.core.config import settings

    logging.basicConfig(
        level=getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
