from __future__ import annotations

import datetime as dt

from series_engine.models import DailyValue, DateRange
from series_engine.shaping import shape, shape_daily
from providers.youtube import YOUTUBE_METRICS


def test_shape_daily_sorts_dedupes_and_drops_junk() -> None:
    payload = {
        "rows": [
            ["2024-01-03", 3],
            ["2024-01-01", "1"],
            ["2024-01-03", 30],
            ["not-a-date", 5],
            ["2024-01-02", None],
            ["2024-01-04"],
        ]
    }
    assert shape_daily(payload) == [
        DailyValue(dt.date(2024, 1, 1), 1),
        DailyValue(dt.date(2024, 1, 3), 30),
    ]


def test_shape_daily_clips_to_window() -> None:
    payload = {"rows": [["2023-12-31", 1], ["2024-01-01", 2], ["2024-01-02", 3]]}
    window = DateRange(dt.date(2024, 1, 1), dt.date(2024, 1, 1))
    assert shape_daily(payload, window) == [DailyValue(dt.date(2024, 1, 1), 2)]


def test_catalog_shaping_unwraps_search_ids() -> None:
    payload = {
        "items": [
            {
                "id": {"kind": "youtube#video", "videoId": "vid-1"},
                "snippet": {"title": "Launch", "description": "d", "publishedAt": "2024-01-01T00:00:00Z", "thumbnails": {}},
            },
            {"id": "PL123", "snippet": {"title": "Playlist"}},
        ]
    }
    shaped = shape(payload, YOUTUBE_METRICS.get("videos"))
    assert shaped[0] == {
        "id": "vid-1",
        "title": "Launch",
        "description": "d",
        "published_at": "2024-01-01T00:00:00Z",
        "thumbnails": {},
    }
    assert shaped[1]["id"] == "PL123"
    assert shaped[1]["description"] is None


def test_statistics_shaping() -> None:
    payload = {
        "items": [
            {"id": "UC1", "statistics": {"viewCount": "1200", "commentCount": "4", "subscriberCount": "88", "videoCount": "12"}}
        ]
    }
    assert shape(payload, YOUTUBE_METRICS.get("info")) == [
        {"id": "UC1", "views": 1200, "comments": 4, "subscribers": 88, "videos": 12}
    ]


def test_shape_dispatches_on_metric_kind() -> None:
    rows = shape({"rows": [["2024-01-01", 1]]}, YOUTUBE_METRICS.get("views"))
    assert rows == [DailyValue(dt.date(2024, 1, 1), 1)]
    assert shape({}, YOUTUBE_METRICS.get("playlists")) == []
