"""Prometheus metrics for schema-guard.

Each MetricsRegistry owns its own CollectorRegistry so that several engines
(and the test-suite) can coexist in one process without duplicate
registration errors.
"""

import time
from typing import TYPE_CHECKING, Any, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

from schema_guard.config import get_settings

if TYPE_CHECKING:
    from schema_guard.models.alert import ValidationReport

# Global metrics registry
_metrics: Optional["MetricsRegistry"] = None


class MetricsRegistry:
    """Registry of the engine's business metrics."""

    def __init__(self, prefix: str = "schema_guard", enabled: bool = True):
        self.prefix = prefix
        self.enabled = enabled
        self.registry = CollectorRegistry()
        self._metric_names: dict[str, str] = {
            "validations": f"{prefix}_validations",
            "alerts": f"{prefix}_alerts",
            "cache_hits": f"{prefix}_schema_cache_hits",
            "cache_misses": f"{prefix}_schema_cache_misses",
            "autofixes": f"{prefix}_autofixes",
            "validation_duration": f"{prefix}_validation_duration_seconds",
        }
        self._counters: dict[str, Counter] = {
            "validations": Counter(
                self._metric_names["validations"],
                "Total number of validate calls",
                ["outcome"],  # valid, invalid
                registry=self.registry,
            ),
            "alerts": Counter(
                self._metric_names["alerts"],
                "Total number of alerts emitted",
                ["level", "severity"],  # level: A, B, C, rules
                registry=self.registry,
            ),
            "cache_hits": Counter(
                self._metric_names["cache_hits"],
                "Total number of compiled schema cache hits",
                registry=self.registry,
            ),
            "cache_misses": Counter(
                self._metric_names["cache_misses"],
                "Total number of compiled schema cache misses",
                registry=self.registry,
            ),
            "autofixes": Counter(
                self._metric_names["autofixes"],
                "Total number of records patched by the auto-fixer",
                ["code"],
                registry=self.registry,
            ),
        }
        self._histograms: dict[str, Histogram] = {
            "validation_duration": Histogram(
                self._metric_names["validation_duration"],
                "Validation stage duration in seconds",
                ["stage"],  # total, levelA, levelB, levelC, rules
                buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1, 5, 30],
                registry=self.registry,
            ),
        }

    def inc_counter(self, name: str, value: int = 1, **labels: str) -> None:
        """Increment a counter."""
        if not self.enabled or value <= 0:
            return
        counter = self._counters[name]
        if labels:
            counter.labels(**labels).inc(value)
        else:
            counter.inc(value)

    def get_counter(self, name: str, **labels: str) -> float:
        """Get counter value."""
        sample_name = f"{self._metric_names[name]}_total"
        value = self.registry.get_sample_value(sample_name, labels)
        return value or 0.0

    def observe_histogram(self, name: str, value: float, **labels: str) -> None:
        """Record a histogram observation."""
        if not self.enabled:
            return
        histogram = self._histograms[name]
        if labels:
            histogram.labels(**labels).observe(value)
        else:
            histogram.observe(value)

    def get_histogram_count(self, name: str, **labels: str) -> float:
        """Get the number of observations recorded for a histogram."""
        sample_name = f"{self._metric_names[name]}_count"
        value = self.registry.get_sample_value(sample_name, labels)
        return value or 0.0

    def time_histogram(self, name: str, **labels: str):
        """Context manager to time a block and record in histogram."""
        outer_self = self

        class Timer:
            def __init__(self):
                self.start: float = 0.0
                self.duration: float = 0.0

            def __enter__(self):
                self.start = time.perf_counter()
                return self

            def __exit__(self, *args):
                self.duration = time.perf_counter() - self.start
                outer_self.observe_histogram(name, self.duration, **labels)

        return Timer()

    def export(self) -> bytes:
        """Render all metrics in the Prometheus text exposition format."""
        return generate_latest(self.registry)


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry."""
    global _metrics
    if _metrics is None:
        settings = get_settings()
        _metrics = MetricsRegistry(
            prefix=settings.metrics_prefix,
            enabled=settings.metrics_enabled,
        )
    return _metrics


def reset_metrics() -> None:
    """Drop the global registry (a new one is built on next access)."""
    global _metrics
    _metrics = None


def record_report(report: "ValidationReport") -> None:
    """Record alert counts for a finished validation."""
    metrics = get_metrics()
    metrics.inc_counter("validations", outcome="valid" if report.is_valid else "invalid")

    levels: dict[str, Any] = {
        "A": report.level_a,
        "B": report.level_b,
        "C": report.level_c,
        "rules": report.rule_alerts,
    }
    for level, alerts in levels.items():
        counts: dict[str, int] = {}
        for alert in alerts:
            counts[alert.severity.value] = counts.get(alert.severity.value, 0) + 1
        for severity, count in counts.items():
            metrics.inc_counter("alerts", count, level=level, severity=severity)


def record_cache_hit() -> None:
    """Record a compiled schema cache hit."""
    get_metrics().inc_counter("cache_hits")


def record_cache_miss() -> None:
    """Record a compiled schema cache miss."""
    get_metrics().inc_counter("cache_misses")


def record_autofix(code: str, fixed_count: int) -> None:
    """Record records patched by the auto-fixer."""
    get_metrics().inc_counter("autofixes", fixed_count, code=code)
