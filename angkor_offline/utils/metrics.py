"""
Metrics collection for Angkor Offline.

In-memory counters, gauges and histograms for cache, worker and sync
activity. Exposed through the runtime and the web API.
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class MetricsConfig:
    """
    Metrics configuration.

    Attributes:
        enabled: Whether metrics collection is active
    """
    enabled: bool = True


class SimpleMetrics:
    """
    Simple in-memory metrics collector (no external dependencies).

    Provides basic counters and histograms for monitoring.
    """

    def __init__(self) -> None:
        self._counters: Dict[str, int] = {}
        self._histograms: Dict[str, list] = {}
        self._gauges: Dict[str, float] = {}
        self._start_time = time.time()

    def inc_counter(self, name: str, value: int = 1, labels: Optional[Dict[str, str]] = None) -> None:
        """Increment a counter."""
        key = self._make_key(name, labels)
        self._counters[key] = self._counters.get(key, 0) + value

    def observe_histogram(self, name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        """Record a histogram observation."""
        key = self._make_key(name, labels)
        self._histograms.setdefault(key, []).append(value)

    def set_gauge(self, name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        """Set a gauge value."""
        self._gauges[self._make_key(name, labels)] = value

    def get_counter(self, name: str, labels: Optional[Dict[str, str]] = None) -> int:
        """Get counter value."""
        return self._counters.get(self._make_key(name, labels), 0)

    def get_histogram_stats(self, name: str, labels: Optional[Dict[str, str]] = None) -> Dict[str, float]:
        """Get histogram statistics."""
        values = self._histograms.get(self._make_key(name, labels), [])
        if not values:
            return {"count": 0, "sum": 0, "min": 0, "max": 0, "avg": 0}
        return {
            "count": len(values),
            "sum": sum(values),
            "min": min(values),
            "max": max(values),
            "avg": sum(values) / len(values),
        }

    def get_gauge(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        """Get gauge value."""
        return self._gauges.get(self._make_key(name, labels), 0.0)

    def get_all(self) -> Dict[str, Any]:
        """Get all metrics as a dictionary."""
        return {
            "counters": dict(self._counters),
            "histograms": {k: self.get_histogram_stats(k) for k in self._histograms},
            "gauges": dict(self._gauges),
            "uptime_seconds": time.time() - self._start_time,
        }

    def reset(self) -> None:
        """Reset all metrics."""
        self._counters.clear()
        self._histograms.clear()
        self._gauges.clear()
        self._start_time = time.time()

    @staticmethod
    def _make_key(name: str, labels: Optional[Dict[str, str]] = None) -> str:
        """Create a unique key for a metric with labels."""
        if not labels:
            return name
        label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{name}{{{label_str}}}"


class OfflineMetrics:
    """
    Angkor Offline metrics collector.

    Wraps SimpleMetrics with domain-level recorders. When disabled, every
    recorder is a no-op and get_all() reports nothing.
    """

    def __init__(self, config: Optional[MetricsConfig] = None) -> None:
        self._config = config or MetricsConfig()
        self._backend = SimpleMetrics()

    @property
    def is_enabled(self) -> bool:
        return self._config.enabled

    @property
    def backend(self) -> SimpleMetrics:
        return self._backend

    def record_cache(self, outcome: str) -> None:
        """Record a persistent cache outcome: hit, miss, expired, write, write_failed."""
        if self._config.enabled:
            self._backend.inc_counter(f"cache.{outcome}")

    def record_worker_fetch(self, outcome: str, duration_ms: float = 0.0) -> None:
        """Record how the service worker answered: cache_hit, network, fallback, failed."""
        if not self._config.enabled:
            return
        self._backend.inc_counter(f"worker.{outcome}")
        if outcome == "network":
            self._backend.observe_histogram("worker.network_ms", duration_ms)

    def record_sync(self, delivered: int, failed: int, pending: int) -> None:
        """Record one sync flush."""
        if not self._config.enabled:
            return
        self._backend.inc_counter("sync.delivered", delivered)
        self._backend.inc_counter("sync.failed", failed)
        self._backend.set_gauge("sync.pending", pending)

    def get_all(self) -> Dict[str, Any]:
        if not self._config.enabled:
            return {}
        return self._backend.get_all()
