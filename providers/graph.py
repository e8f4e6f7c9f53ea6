from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional

import requests

from series_engine.catalog import MetricCatalog, MetricKind, MetricSpec, daily
from series_engine.config import ProviderConfig
from series_engine.errors import BadRequest, ProviderError, RateLimited, Unauthorized, Unavailable
from series_engine.models import DateRange
from providers.base import HttpFetchAdapter, RawPayload, chunk_range

GRAPH_URL = "https://graph.facebook.com/v19.0"
# Insights reject since/until spans longer than this.
GRAPH_MAX_SPAN_DAYS = 93

_AUTH_CODES = {102, 190}
_THROTTLE_CODES = {4, 17, 32, 613}
_TRANSIENT_CODES = {1, 2}

FACEBOOK_METRICS = MetricCatalog(
    "facebook",
    daily(
        "fans",
        "fan_adds",
        "impressions_unique",
        "engaged_users",
        "views_total",
        "post_reactions_total",
        "views_external_referrals",
        remote={
            "fans": "page_fans",
            "fan_adds": "page_fan_adds",
            "impressions_unique": "page_impressions_unique",
            "engaged_users": "page_engaged_users",
            "views_total": "page_views_total",
            "post_reactions_total": "page_actions_post_reactions_total",
            "views_external_referrals": "page_views_external_referrals",
        },
    ),
)

INSTAGRAM_METRICS = MetricCatalog("instagram", daily("reach", "impressions", "profile_views"))


def _scalar(value: Any) -> Optional[float]:
    """Breakdown metrics report ``{"like": 3, "love": 1}``; their total is the daily value."""

    if isinstance(value, dict):
        total = 0.0
        for part in value.values():
            if isinstance(part, (int, float)) and not isinstance(part, bool):
                total += part
        return total
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    return None


def _closing_day(end_time: Any) -> Optional[dt.date]:
    """``end_time`` marks the end of the reported day, i.e. midnight of the next one."""

    text = str(end_time or "").strip()
    if not text:
        return None
    if text.endswith("+0000"):
        text = text[:-5] + "+00:00"
    try:
        stamp = dt.datetime.fromisoformat(text)
    except ValueError:
        return None
    return (stamp - dt.timedelta(days=1)).date()


class GraphInsightsAdapter(HttpFetchAdapter):
    """Facebook page / Instagram account daily insights via the Graph API."""

    def __init__(
        self,
        platform: str = "facebook",
        *,
        session: Optional[requests.Session] = None,
        config: Optional[ProviderConfig] = None,
        **kwargs: Any,
    ) -> None:
        platform = str(platform or "").strip().lower()
        if platform not in {"facebook", "instagram"}:
            raise ValueError(f"Unsupported graph platform: {platform!r}")
        self.name = platform
        self.catalog = FACEBOOK_METRICS if platform == "facebook" else INSTAGRAM_METRICS
        super().__init__(session=session, config=config, **kwargs)
        self._base_url = (self._cfg.base_url or GRAPH_URL).rstrip("/")
        self._max_span = int(self._cfg.max_span_days or GRAPH_MAX_SPAN_DAYS)

    def _fetch_sync(
        self,
        credential: str,
        metric: MetricSpec,
        channel_scope: str,
        date_range: DateRange,
    ) -> RawPayload:
        if metric.kind is not MetricKind.DAILY:
            raise BadRequest(f"{self.name} serves daily insights only, not {metric.name!r}", provider=self.name)
        rows: List[List[Any]] = []
        for piece in chunk_range(date_range, self._max_span):
            body = self._get_json(
                credential,
                f"{self._base_url}/{channel_scope}/insights",
                {
                    "metric": metric.remote,
                    "period": "day",
                    "since": piece.start.isoformat(),
                    # until is exclusive
                    "until": (piece.end + dt.timedelta(days=1)).isoformat(),
                },
            )
            rows.extend(self._rows(body, metric))
        rows.sort(key=lambda row: row[0])
        return {"rows": rows}

    @staticmethod
    def _rows(body: Dict[str, Any], metric: MetricSpec) -> List[List[Any]]:
        out: List[List[Any]] = []
        for series in body.get("data") or []:
            if not isinstance(series, dict):
                continue
            if series.get("name") not in (None, metric.remote):
                continue
            if series.get("period") not in (None, "day"):
                continue
            for point in series.get("values") or []:
                if not isinstance(point, dict):
                    continue
                day = _closing_day(point.get("end_time"))
                value = _scalar(point.get("value"))
                if day is None or value is None:
                    continue
                out.append([day.isoformat(), value])
        return out

    def _classify(self, response: requests.Response) -> ProviderError:
        error = self._error_body(response)
        try:
            code = int(error.get("code"))
        except (TypeError, ValueError):
            return super()._classify(response)
        status = int(response.status_code)
        message = str(error.get("message") or f"graph error {code}")
        if code in _AUTH_CODES:
            return Unauthorized(message, provider=self.name, status=status)
        if code in _THROTTLE_CODES:
            return RateLimited(message, provider=self.name, status=status)
        if code in _TRANSIENT_CODES:
            return Unavailable(message, provider=self.name, status=status)
        if code == 100:
            return BadRequest(message, provider=self.name, status=status)
        return super()._classify(response)


__all__ = ["FACEBOOK_METRICS", "GRAPH_MAX_SPAN_DAYS", "GraphInsightsAdapter", "INSTAGRAM_METRICS"]
