from __future__ import annotations

import asyncio
import datetime as dt
import logging
import random
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Mapping, Optional, Protocol

import requests

from series_engine.catalog import MetricCatalog, MetricSpec
from series_engine.config import ProviderConfig
from series_engine.errors import BadRequest, ProviderError, RateLimited, Unauthorized, Unavailable
from series_engine.logging_utils import get_logger
from series_engine.models import DateRange

RawPayload = Dict[str, Any]


class FetchAdapter(Protocol):
    """
    One implementation per provider.

    ``fetch`` returns a normalised payload, either ``{"rows": [[date, value], ...]}``
    for daily metrics or ``{"items": [...]}`` for listings, and raises the
    ProviderError subclasses for failures.
    """

    name: str
    catalog: MetricCatalog

    async def fetch(
        self,
        credential: str,
        metric: MetricSpec,
        channel_scope: str,
        date_range: DateRange,
    ) -> RawPayload: ...


def _retry_after(response: requests.Response) -> Optional[float]:
    raw = response.headers.get("Retry-After") if response.headers else None
    if raw is None:
        return None
    try:
        return max(float(raw), 0.0)
    except ValueError:
        return None


class HttpFetchAdapter(ABC):
    """
    Shared request/classification plumbing for JSON-over-HTTPS providers.

    The ``requests.Session`` is the opaque wire client; credentials travel per
    call as bearer tokens and are never stored on the adapter. Only
    ``Unavailable`` is retried, with exponential backoff and jitter, and only
    when ``retries`` is configured.
    """

    name = "http"
    catalog: MetricCatalog

    def __init__(
        self,
        *,
        session: Optional[requests.Session] = None,
        config: Optional[ProviderConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session = session or requests.Session()
        self._cfg = config or ProviderConfig()
        self._sleep = sleep
        self._logger = get_logger(f"providers.{self.name}").bind(provider=self.name)

    async def fetch(
        self,
        credential: str,
        metric: MetricSpec,
        channel_scope: str,
        date_range: DateRange,
    ) -> RawPayload:
        if not str(credential or "").strip():
            raise Unauthorized("empty credential", provider=self.name)
        if not str(channel_scope or "").strip():
            raise BadRequest("channel scope must be non-empty", provider=self.name)
        return await asyncio.to_thread(self._fetch_with_retry, credential, metric, channel_scope, date_range)

    def _fetch_with_retry(
        self,
        credential: str,
        metric: MetricSpec,
        channel_scope: str,
        date_range: DateRange,
    ) -> RawPayload:
        retries = int(self._cfg.retries)
        for attempt in range(retries + 1):
            try:
                return self._fetch_sync(credential, metric, channel_scope, date_range)
            except Unavailable as exc:
                if attempt >= retries:
                    raise
                delay = float(self._cfg.backoff_seconds) * (2 ** attempt)
                delay = delay * (0.75 + (random.random() * 0.5))
                self._logger.log_event(
                    logging.WARNING, "provider_retry", metric=metric.name, attempt=attempt + 1, delay_s=round(delay, 3), error=str(exc)
                )
                self._sleep(delay)
        raise AssertionError("unreachable")  # pragma: no cover

    @abstractmethod
    def _fetch_sync(
        self,
        credential: str,
        metric: MetricSpec,
        channel_scope: str,
        date_range: DateRange,
    ) -> RawPayload:
        """Blocking fetch of one metric over ``date_range``; runs on a worker thread."""

    # ------------------------------------------------------------------ HTTP
    def _get_json(self, credential: str, url: str, params: Mapping[str, Any]) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {credential}", "Accept": "application/json"}
        try:
            response = self._session.get(url, params=dict(params), headers=headers, timeout=self._cfg.timeout)
        except requests.Timeout as exc:
            raise Unavailable(f"{self.name} timed out after {self._cfg.timeout}s", provider=self.name) from exc
        except requests.RequestException as exc:
            raise Unavailable(f"{self.name} request failed: {exc}", provider=self.name) from exc
        if response.status_code >= 400:
            raise self._classify(response)
        try:
            body = response.json()
        except ValueError as exc:
            raise Unavailable(f"{self.name} returned a non-JSON body", provider=self.name, status=response.status_code) from exc
        if not isinstance(body, dict):
            raise Unavailable(f"{self.name} returned unexpected payload type", provider=self.name)
        return body

    @staticmethod
    def _error_body(response: requests.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        error = body.get("error") if isinstance(body, dict) else None
        return error if isinstance(error, dict) else {}

    def _classify(self, response: requests.Response) -> ProviderError:
        status = int(response.status_code)
        message = str(self._error_body(response).get("message") or response.reason or f"HTTP {status}")
        if status == 401:
            return Unauthorized(message, provider=self.name, status=status)
        if status == 429:
            return RateLimited(message, provider=self.name, status=status, retry_after=_retry_after(response))
        if status == 403:
            return Unauthorized(message, provider=self.name, status=status)
        if status in {408, 425} or status >= 500:
            return Unavailable(message, provider=self.name, status=status)
        return BadRequest(message, provider=self.name, status=status)


def chunk_range(date_range: DateRange, max_span_days: int) -> list[DateRange]:
    """Split ``date_range`` into consecutive pieces of at most ``max_span_days`` days."""

    if max_span_days <= 0 or date_range.days <= max_span_days:
        return [date_range]
    out: list[DateRange] = []
    cursor = date_range.start
    while cursor <= date_range.end:
        chunk_end = min(date_range.end, cursor + dt.timedelta(days=max_span_days - 1))
        out.append(DateRange(cursor, chunk_end))
        cursor = chunk_end + dt.timedelta(days=1)
    return out


__all__ = ["FetchAdapter", "HttpFetchAdapter", "RawPayload", "chunk_range"]
