"""Per-call completion metrics, emitted as log records or Prometheus series."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Dict, Optional, Protocol

from prometheus_client import CollectorRegistry, Counter, Histogram, start_http_server

from .config import AIConfig

ATTEMPT_BUCKETS = (1, 2, 3, 4, 5, 10)


@dataclass
class CompletionEvent:
    """Outcome of one logical completion call through a fallback chain."""

    chain: str
    status: str
    provider: Optional[str]
    model: Optional[str]
    duration_ms: float
    attempts: int
    is_fallback: bool = False
    retryable: Optional[bool] = None
    error_code: Optional[str] = None


class MetricsCollector(Protocol):
    """Sink for completion events."""

    def record(self, event: CompletionEvent) -> None:
        """Handle one finished call."""


class LoggingMetricsCollector(MetricsCollector):
    """Writes each event as a ``completion_metrics`` record with the fields in ``extra``."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger("practice_ai.metrics")

    def record(self, event: CompletionEvent) -> None:
        payload = {f.name: getattr(event, f.name) for f in fields(event)}
        payload["duration_ms"] = round(event.duration_ms, 3)
        self._logger.info("completion_metrics", extra={"metrics": payload})


class PrometheusMetricsCollector(MetricsCollector):
    """Counts calls and observes latency and attempt totals per chain.

    Pass ``port`` to also expose the registry over HTTP.
    """

    def __init__(
        self,
        *,
        port: Optional[int] = None,
        registry: Optional[CollectorRegistry] = None,
    ) -> None:
        self._registry = registry or CollectorRegistry()
        self._calls = Counter(
            "practice_ai_completions_total",
            "Completion calls by chain, outcome and serving provider",
            ["chain", "status", "provider", "fallback", "error_code"],
            registry=self._registry,
        )
        self._latency = Histogram(
            "practice_ai_completion_duration_seconds",
            "Wall time of a completion call, retries and fallback included",
            ["chain", "status", "provider"],
            registry=self._registry,
        )
        self._attempts = Histogram(
            "practice_ai_completion_attempts",
            "Provider requests issued for one completion call",
            ["chain", "status"],
            registry=self._registry,
            buckets=ATTEMPT_BUCKETS,
        )
        if port is not None:
            start_http_server(port, registry=self._registry)

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    @staticmethod
    def _labels(event: CompletionEvent) -> Dict[str, str]:
        return {
            "chain": event.chain,
            "status": event.status,
            "provider": event.provider or "unknown",
        }

    def record(self, event: CompletionEvent) -> None:
        labels = self._labels(event)
        self._calls.labels(
            fallback="true" if event.is_fallback else "false",
            error_code=event.error_code or "none",
            **labels,
        ).inc()
        self._latency.labels(**labels).observe(max(event.duration_ms, 0.0) / 1000.0)
        self._attempts.labels(chain=event.chain, status=event.status).observe(max(event.attempts, 0))


def create_metrics_collector(config: AIConfig) -> MetricsCollector:
    """Collector selected by ``AI_METRICS_BACKEND``."""
    if config.metrics_backend == "prometheus":
        return PrometheusMetricsCollector(port=config.metrics_port)
    return LoggingMetricsCollector()
