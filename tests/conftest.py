from __future__ import annotations

import asyncio
import datetime as dt
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pytest

from series_engine.catalog import MetricKind, MetricSpec
from series_engine.errors import Unauthorized
from series_engine.models import DateRange
from persistence.coverage_store import SQLiteCoverageStore
from providers.youtube import YOUTUBE_METRICS


class FakeAdapter:
    """Serves rows from an in-memory {date: value} map and records every fetch."""

    name = "youtube"
    catalog = YOUTUBE_METRICS

    def __init__(
        self,
        data: Optional[Dict[dt.date, int]] = None,
        *,
        items: Optional[List[Dict[str, Any]]] = None,
        error: Optional[Exception] = None,
        rejected: Iterable[str] = (),
    ) -> None:
        self.data = dict(data or {})
        self.items = list(items or [])
        self.error = error
        self.rejected = set(rejected)
        self.calls: List[tuple[str, str, DateRange]] = []

    async def fetch(self, credential: str, metric: MetricSpec, channel_scope: str, date_range: DateRange):
        self.calls.append((metric.name, channel_scope, date_range))
        await asyncio.sleep(0)
        if credential in self.rejected:
            raise Unauthorized("token expired", provider=self.name, status=401)
        if self.error is not None:
            raise self.error
        if metric.kind is MetricKind.DAILY:
            rows = [[day.isoformat(), value] for day, value in sorted(self.data.items()) if day in date_range]
            return {"rows": rows}
        return {"items": list(self.items)}


class MetricStub:
    def __init__(self) -> None:
        self.resolves: List[tuple[str, str]] = []
        self.fetches: List[tuple[str, str, int]] = []
        self.store_failures: List[str] = []

    def record_resolve(self, metric: str, action: str, latency_ms: float) -> None:
        self.resolves.append((metric, action))

    def record_fetch(self, provider: str, result: str, days: int) -> None:
        self.fetches.append((provider, result, days))

    def record_store_failure(self, operation: str) -> None:
        self.store_failures.append(operation)


@pytest.fixture
def fake_adapter_cls():
    return FakeAdapter


@pytest.fixture
def metric_stub() -> MetricStub:
    return MetricStub()


@pytest.fixture
def store(tmp_path: Path):
    cache = SQLiteCoverageStore(tmp_path / "series.sqlite")
    yield cache
    cache.close()
