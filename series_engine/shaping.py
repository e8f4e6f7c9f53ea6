"""
Turn normalised provider payloads into cache inputs.

Adapters hand back one of two raw forms regardless of provider:

    {"rows": [["2024-01-15", 42], ...]}   # daily metrics
    {"items": [{...}, ...]}               # catalog / statistics listings

Which shaper runs is decided by the metric kind alone.
"""
from __future__ import annotations

import datetime as dt
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from series_engine.catalog import MetricKind, MetricSpec
from series_engine.models import DailyValue, DateRange

Entity = Dict[str, Any]
Shaped = Union[List[DailyValue], List[Entity]]


def _as_int(raw: object) -> Optional[int]:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    try:
        return int(float(str(raw).strip()))
    except ValueError:
        return None


def _row_date(raw: object) -> Optional[dt.date]:
    if isinstance(raw, dt.datetime):
        return raw.date()
    if isinstance(raw, dt.date):
        return raw
    text = str(raw or "").strip()
    try:
        return dt.date.fromisoformat(text[:10])
    except ValueError:
        return None


def shape_daily(payload: Mapping[str, Any], window: Optional[DateRange] = None) -> List[DailyValue]:
    """
    Parse ``rows`` into ascending, de-duplicated daily values.

    Rows that cannot be parsed or fall outside ``window`` are dropped; for a
    repeated date the last row wins.
    """

    latest: dict[dt.date, int] = {}
    for row in payload.get("rows") or []:
        if not isinstance(row, (list, tuple)) or len(row) < 2:
            continue
        day = _row_date(row[0])
        value = _as_int(row[1])
        if day is None or value is None:
            continue
        if window is not None and day not in window:
            continue
        latest[day] = value
    return [DailyValue(date=day, value=latest[day]) for day in sorted(latest)]


def _item_id(item: Mapping[str, Any]) -> Optional[str]:
    raw = item.get("id")
    if isinstance(raw, Mapping):
        # search results wrap the id: {"kind": "youtube#video", "videoId": "..."}
        for field in ("videoId", "playlistId", "channelId"):
            if raw.get(field):
                return str(raw[field])
        return None
    return str(raw) if raw else None


def shape_catalog(payload: Mapping[str, Any], window: Optional[DateRange] = None) -> List[Entity]:
    out: List[Entity] = []
    for item in payload.get("items") or []:
        if not isinstance(item, Mapping):
            continue
        snippet = item.get("snippet") or {}
        out.append(
            {
                "id": _item_id(item),
                "title": snippet.get("title"),
                "description": snippet.get("description"),
                "published_at": snippet.get("publishedAt"),
                "thumbnails": snippet.get("thumbnails"),
            }
        )
    return out


def shape_statistics(payload: Mapping[str, Any], window: Optional[DateRange] = None) -> List[Entity]:
    out: List[Entity] = []
    for item in payload.get("items") or []:
        if not isinstance(item, Mapping):
            continue
        stats = item.get("statistics") or {}
        out.append(
            {
                "id": _item_id(item),
                "views": _as_int(stats.get("viewCount")),
                "comments": _as_int(stats.get("commentCount")),
                "subscribers": _as_int(stats.get("subscriberCount")),
                "videos": _as_int(stats.get("videoCount")),
            }
        )
    return out


_SHAPERS: Dict[MetricKind, Callable[..., Shaped]] = {
    MetricKind.DAILY: shape_daily,
    MetricKind.CATALOG: shape_catalog,
    MetricKind.STATISTICS: shape_statistics,
}


def shape(payload: Mapping[str, Any], spec: MetricSpec, window: Optional[DateRange] = None) -> Shaped:
    return _SHAPERS[spec.kind](payload or {}, window)


__all__ = ["Entity", "Shaped", "shape", "shape_catalog", "shape_daily", "shape_statistics"]
