from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from series_engine import time_machine
from series_engine.catalog import MetricSpec
from series_engine.densify import densify
from series_engine.errors import AlreadyExists, CoverageError, InvalidExtension, ProviderError, StorageFailure
from series_engine.logging_utils import get_logger
from series_engine.metrics import CacheMetrics, current_metrics
from series_engine.models import ONE_DAY, CacheKey, CacheRecord, DailyValue, DateRange, desired_window
from series_engine.shaping import Entity, shape, shape_daily
from persistence.coverage_store import CoverageStore
from providers.base import FetchAdapter


class Action(str, Enum):
    CREATE = "create"
    REPLACE = "replace"
    EXTEND = "extend"
    NOOP = "noop"
    PASSTHROUGH = "passthrough"


@dataclass(frozen=True)
class Plan:
    action: Action
    fetch_range: Optional[DateRange] = None


def plan(existing: Optional[CacheRecord], desired: DateRange) -> Plan:
    """
    Decide what a resolve has to do for ``existing`` coverage.

    A desired window that starts earlier than the stored one triggers a full
    refetch and replace, even when the end moved forward as well.
    """

    if existing is None:
        return Plan(Action.CREATE, desired)
    if desired.start < existing.start_date:
        return Plan(Action.REPLACE, desired)
    if existing.end_date < desired.end:
        return Plan(Action.EXTEND, DateRange(existing.last_date + ONE_DAY, desired.end))
    return Plan(Action.NOOP)


class CoverageResolver:
    """
    Keeps each (owner, channel, metric) record covering the trailing window.

    Holds no durable state: every decision is made from the stored record and the
    engine clock. The per-key store lock is held across read, fetch and write so
    concurrent resolves of one key cannot interleave. Stores in other processes
    sharing the database are not covered by that lock; a write rejected because
    the record moved underneath is re-read and re-planned once.
    """

    def __init__(
        self,
        adapter: FetchAdapter,
        store: CoverageStore,
        *,
        min_history_days: int = 90,
        lag_days: int = 1,
        metrics: Optional[CacheMetrics] = None,
    ) -> None:
        self._adapter = adapter
        self._store = store
        self._min_history_days = int(min_history_days)
        self._lag_days = int(lag_days)
        self._metrics = metrics or current_metrics()
        self._logger = get_logger("series_engine.resolver").bind(provider=adapter.name)

    def desired_window(self) -> DateRange:
        return desired_window(time_machine.today(), self._min_history_days, self._lag_days)

    async def resolve(self, owner_id: str, channel_id: str, metric: str, credential: str) -> List[DailyValue]:
        spec = self._adapter.catalog.get(metric)
        if not spec.kind.is_time_series:
            raise ValueError(f"{metric!r} is an entity listing; use fetch_entities()")
        key = CacheKey(owner_id=str(owner_id), channel_id=str(channel_id), metric=spec.name)
        log = self._logger.bind(owner_id=key.owner_id, channel_id=key.channel_id, metric=key.metric)
        started = time.perf_counter()
        async with self._store.lock(key):
            desired = self.desired_window()
            existing = await self._store.get(key)
            decision = plan(existing, desired)
            try:
                values = await self._apply(decision, desired, key, existing, spec, credential, log)
            except (AlreadyExists, InvalidExtension) as exc:
                # another store on the same database wrote this key after our read
                log.log_event(logging.WARNING, "resolve_conflict", action=decision.action.value, code=exc.code)
                existing = await self._store.get(key)
                decision = plan(existing, desired)
                values = await self._apply(decision, desired, key, existing, spec, credential, log)
        self._record(key.metric, decision.action, started)
        return values

    async def _apply(
        self,
        decision: Plan,
        desired: DateRange,
        key: CacheKey,
        existing: Optional[CacheRecord],
        spec: MetricSpec,
        credential: str,
        log,
    ) -> List[DailyValue]:
        fetch_range = decision.fetch_range
        log.log_event(
            logging.INFO,
            "resolve_action",
            action=decision.action.value,
            desired_start=desired.start,
            desired_end=desired.end,
            fetch_start=fetch_range.start if fetch_range else None,
            fetch_end=fetch_range.end if fetch_range else None,
        )
        if decision.action is Action.NOOP:
            if existing is None:
                raise CoverageError(f"no stored record to serve for {key}")
            return list(existing.values)
        if fetch_range is None:
            raise CoverageError(f"{decision.action.value} planned without a fetch range for {key}")
        rows = await self._fetch_rows(credential, spec, key, fetch_range, log)
        return await self._write(decision, fetch_range, key, existing, rows, log)

    async def fetch_entities(self, channel_id: str, metric: str, credential: str) -> List[Entity]:
        """Listings are not range tracked: always fetched, shaped and passed through."""

        spec = self._adapter.catalog.get(metric)
        if spec.kind.is_time_series:
            raise ValueError(f"{metric!r} is a daily metric; use resolve()")
        started = time.perf_counter()
        log = self._logger.bind(channel_id=str(channel_id), metric=spec.name)
        payload = await self._fetch(credential, spec, str(channel_id), self.desired_window(), log)
        entities = shape(payload, spec)
        self._record(spec.name, Action.PASSTHROUGH, started)
        return list(entities)

    # ------------------------------------------------------------------ internals
    async def _fetch(self, credential: str, spec: MetricSpec, channel_id: str, fetch_range: DateRange, log) -> dict:
        try:
            payload = await self._adapter.fetch(credential, spec, channel_id, fetch_range)
        except ProviderError as exc:
            log.log_event(logging.WARNING, "provider_fetch_failed", code=exc.code, status=exc.status, error=str(exc))
            if self._metrics:
                self._metrics.record_fetch(self._adapter.name, exc.code, fetch_range.days)
            raise
        if self._metrics:
            self._metrics.record_fetch(self._adapter.name, "ok", fetch_range.days)
        return payload

    async def _fetch_rows(
        self, credential: str, spec: MetricSpec, key: CacheKey, fetch_range: DateRange, log
    ) -> List[DailyValue]:
        payload = await self._fetch(credential, spec, key.channel_id, fetch_range, log)
        return shape_daily(payload, fetch_range)

    async def _write(
        self,
        decision: Plan,
        fetch_range: DateRange,
        key: CacheKey,
        existing: Optional[CacheRecord],
        rows: List[DailyValue],
        log,
    ) -> List[DailyValue]:
        dense = densify(rows, fetch_range.start, fetch_range.end)
        fetched_last = rows[-1].date if rows else None
        try:
            if decision.action is Action.EXTEND:
                if existing is None:
                    raise CoverageError(f"cannot extend missing record {key}")
                refreshed = [entry for entry in dense if entry.date <= existing.end_date]
                appended = [entry for entry in dense if entry.date > existing.end_date]
                new_last = max(existing.last_date, fetched_last) if fetched_last else existing.last_date
                updated = await self._store.extend(key, appended, fetch_range.end, new_last, refreshed=refreshed)
                return list(updated.values)
            record = CacheRecord.build(key, dense, last_date=fetched_last)
            if decision.action is Action.CREATE:
                await self._store.create(record)
            else:
                await self._store.replace(key, record)
            return list(record.values)
        except StorageFailure as exc:
            # fetched rows are dropped; the next read refetches
            log.log_event(logging.ERROR, "store_write_failed", action=decision.action.value, error=str(exc))
            if self._metrics:
                self._metrics.record_store_failure(decision.action.value)
            raise

    def _record(self, metric: str, action: Action, started: float) -> None:
        if self._metrics:
            self._metrics.record_resolve(metric, action.value, (time.perf_counter() - started) * 1000.0)


__all__ = ["Action", "CoverageResolver", "Plan", "plan"]
