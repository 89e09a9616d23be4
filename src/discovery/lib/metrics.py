"""Metrics sinks.

Pipeline components report durations, counts and errors through a
:class:`MetricsSink`.  Production wires :class:`PrometheusMetricsSink`; tests
and tools that do not care use :class:`NullMetricsSink`.
"""

import logging
from abc import ABC, abstractmethod

from prometheus_client import CollectorRegistry, Counter, Histogram, REGISTRY

logger = logging.getLogger(__name__)


class MetricsSink(ABC):
    @abstractmethod
    def record_duration(self, name: str, ms: float) -> None:
        ...

    @abstractmethod
    def record_count(self, name: str, n: int = 1) -> None:
        ...

    @abstractmethod
    def record_error(self, message: str) -> None:
        ...


class NullMetricsSink(MetricsSink):
    def record_duration(self, name: str, ms: float) -> None:
        pass

    def record_count(self, name: str, n: int = 1) -> None:
        pass

    def record_error(self, message: str) -> None:
        pass


class PrometheusMetricsSink(MetricsSink):
    """Exports metrics via ``prometheus_client``, labelled by metric name."""

    def __init__(self, registry: CollectorRegistry | None = None, namespace: str = "discovery"):
        registry = registry if registry is not None else REGISTRY
        self._durations = Histogram(
            f"{namespace}_operation_duration_seconds",
            "Duration of discovery pipeline operations",
            ["operation"],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
            registry=registry,
        )
        self._counts = Counter(
            f"{namespace}_events_total",
            "Discovery pipeline event counts",
            ["event"],
            registry=registry,
        )
        self._errors = Counter(
            f"{namespace}_errors_total",
            "Discovery pipeline errors",
            registry=registry,
        )

    def record_duration(self, name: str, ms: float) -> None:
        self._durations.labels(operation=name).observe(ms / 1000.0)

    def record_count(self, name: str, n: int = 1) -> None:
        if n < 0:
            return
        self._counts.labels(event=name).inc(n)

    def record_error(self, message: str) -> None:
        logger.warning("Discovery error: %s", message)
        self._errors.inc()
