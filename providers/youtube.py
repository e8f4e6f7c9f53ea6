from __future__ import annotations

from typing import Any, Dict, List, Optional

import requests

from series_engine.catalog import MetricCatalog, MetricKind, MetricSpec, daily
from series_engine.config import ProviderConfig
from series_engine.errors import BadRequest, ProviderError, RateLimited, Unauthorized
from series_engine.models import DateRange
from providers.base import HttpFetchAdapter, RawPayload

ANALYTICS_URL = "https://youtubeanalytics.googleapis.com/v2"
DATA_URL = "https://www.googleapis.com/youtube/v3"
MINE = "mine"

_QUOTA_REASONS = {"quotaExceeded", "rateLimitExceeded", "userRateLimitExceeded", "dailyLimitExceeded"}

YOUTUBE_METRICS = MetricCatalog(
    "youtube",
    [
        *daily(
            "views",
            "comments",
            "likes",
            "dislikes",
            "shares",
            "averageViewDuration",
            "estimatedMinutesWatched",
            "subscribersGained",
            "subscribersLost",
        ),
        MetricSpec("videos", MetricKind.CATALOG),
        MetricSpec("playlists", MetricKind.CATALOG),
        MetricSpec("channels", MetricKind.CATALOG),
        MetricSpec("info", MetricKind.STATISTICS),
    ],
)


class YouTubeFetchAdapter(HttpFetchAdapter):
    """
    YouTube Analytics v2 (daily reports) and Data v3 (listings).

    Daily reports come back as ``rows`` of ``[day, value]`` already; Data API
    listings are followed across ``nextPageToken`` pages up to ``max_pages``.
    """

    name = "youtube"
    catalog = YOUTUBE_METRICS

    def __init__(
        self,
        *,
        session: Optional[requests.Session] = None,
        config: Optional[ProviderConfig] = None,
        analytics_url: str = ANALYTICS_URL,
        data_url: str = DATA_URL,
        max_pages: int = 20,
        **kwargs: Any,
    ) -> None:
        super().__init__(session=session, config=config, **kwargs)
        self._analytics_url = analytics_url.rstrip("/")
        self._data_url = (self._cfg.base_url or data_url).rstrip("/")
        self._max_pages = max(int(max_pages), 1)

    def _fetch_sync(
        self,
        credential: str,
        metric: MetricSpec,
        channel_scope: str,
        date_range: DateRange,
    ) -> RawPayload:
        if metric.kind is MetricKind.DAILY:
            return self._daily_report(credential, metric, channel_scope, date_range)
        if metric.name == "videos":
            params = {"part": "snippet", "channelId": channel_scope, "type": "video", "order": "date"}
            return {"items": self._list_all(credential, "search", params)}
        if metric.name == "playlists":
            return {"items": self._list_all(credential, "playlists", {"part": "snippet", "channelId": channel_scope})}
        if metric.name == "channels":
            return {"items": self._list_all(credential, "channels", {"part": "snippet", "mine": "true"})}
        if metric.name == "info":
            params = self._channel_selector(channel_scope)
            params["part"] = "statistics"
            return {"items": self._list_all(credential, "channels", params)}
        raise BadRequest(f"youtube cannot fetch metric {metric.name!r}", provider=self.name)

    def _daily_report(self, credential: str, metric: MetricSpec, channel_scope: str, date_range: DateRange) -> RawPayload:
        start, end = date_range.as_params()
        channel = "MINE" if channel_scope == MINE else channel_scope
        body = self._get_json(
            credential,
            f"{self._analytics_url}/reports",
            {
                "ids": f"channel=={channel}",
                "startDate": start,
                "endDate": end,
                "metrics": metric.remote,
                "dimensions": "day",
                "sort": "day",
            },
        )
        return {"rows": list(body.get("rows") or [])}

    def _list_all(self, credential: str, resource: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        query = dict(params)
        query["maxResults"] = min(int(self._cfg.page_size), 50)
        for _ in range(self._max_pages):
            body = self._get_json(credential, f"{self._data_url}/{resource}", query)
            items.extend(item for item in body.get("items") or [] if isinstance(item, dict))
            token = body.get("nextPageToken")
            if not token:
                break
            query["pageToken"] = token
        return items

    @staticmethod
    def _channel_selector(channel_scope: str) -> Dict[str, Any]:
        if channel_scope == MINE:
            return {"mine": "true"}
        return {"id": channel_scope}

    def _classify(self, response: requests.Response) -> ProviderError:
        if int(response.status_code) == 403:
            error = self._error_body(response)
            reasons = {str(entry.get("reason")) for entry in error.get("errors") or [] if isinstance(entry, dict)}
            message = str(error.get("message") or "forbidden")
            if reasons & _QUOTA_REASONS:
                return RateLimited(message, provider=self.name, status=403)
            return Unauthorized(message, provider=self.name, status=403)
        return super()._classify(response)


__all__ = ["MINE", "YOUTUBE_METRICS", "YouTubeFetchAdapter"]
