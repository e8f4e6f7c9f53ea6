from __future__ import annotations

import logging
import os
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, start_http_server

_FETCH_DAY_BUCKETS = (1, 2, 3, 7, 14, 31, 62, 93, 186, 366, float("inf"))
_LATENCY_BUCKETS = (1, 5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, float("inf"))


class CacheMetrics:
    """Prometheus collectors for the series cache, registered on ``registry``."""

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()
        registry_kwargs = {"registry": self.registry}
        self.resolve_total = Counter(
            "series_resolve_total", "Resolve calls by decided action", ["metric", "action"], **registry_kwargs
        )
        self.provider_fetch_total = Counter(
            "provider_fetch_total", "Provider fetches by outcome", ["provider", "result"], **registry_kwargs
        )
        self.provider_fetch_days = Histogram(
            "provider_fetch_days", "Calendar days requested per provider fetch", ["provider"],
            buckets=_FETCH_DAY_BUCKETS, **registry_kwargs
        )
        self.store_failures_total = Counter(
            "store_failures_total", "Coverage store writes that failed", ["operation"], **registry_kwargs
        )
        self.resolve_latency_ms = Histogram(
            "resolve_latency_ms", "End-to-end resolve latency (ms)", ["action"],
            buckets=_LATENCY_BUCKETS, **registry_kwargs
        )

    def record_resolve(self, metric: str, action: str, latency_ms: float) -> None:
        self.resolve_total.labels(metric=metric, action=action).inc()
        self.resolve_latency_ms.labels(action=action).observe(latency_ms)

    def record_fetch(self, provider: str, result: str, days: int) -> None:
        self.provider_fetch_total.labels(provider=provider, result=result).inc()
        if days > 0:
            self.provider_fetch_days.labels(provider=provider).observe(days)

    def record_store_failure(self, operation: str) -> None:
        self.store_failures_total.labels(operation=operation).inc()


_GLOBAL_METRICS: Optional[CacheMetrics] = None


def bind_global_metrics(metrics: Optional[CacheMetrics]) -> None:
    global _GLOBAL_METRICS
    _GLOBAL_METRICS = metrics


def current_metrics() -> Optional[CacheMetrics]:
    return _GLOBAL_METRICS


def start_http_server_if_available(port: Optional[int] = None) -> bool:
    meter = current_metrics()
    if meter is None:
        logging.getLogger("series_engine.metrics").warning("no metrics bound; exporter not started")
        return False
    addr = os.getenv("METRICS_HOST", "0.0.0.0")
    start_http_server(port or 9103, addr=addr, registry=meter.registry)
    return True


__all__ = [
    "CacheMetrics",
    "bind_global_metrics",
    "current_metrics",
    "start_http_server_if_available",
]
