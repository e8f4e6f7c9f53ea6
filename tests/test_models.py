from __future__ import annotations

import datetime as dt

import pytest

from series_engine import time_machine
from series_engine.models import CacheKey, CacheRecord, DailyValue, DateRange, desired_window


def test_desired_window_ends_yesterday_and_spans_min_history() -> None:
    window = desired_window(dt.date(2024, 3, 10), 90)
    assert window == DateRange(dt.date(2023, 12, 11), dt.date(2024, 3, 9))
    assert window.days == 90


def test_desired_window_honours_lag_and_validates() -> None:
    window = desired_window(dt.date(2024, 3, 10), 7, lag_days=0)
    assert window.end == dt.date(2024, 3, 10)
    assert window.start == dt.date(2024, 3, 4)
    with pytest.raises(ValueError):
        desired_window(dt.date(2024, 3, 10), 0)


def test_date_range_rejects_inverted_bounds() -> None:
    with pytest.raises(ValueError):
        DateRange(dt.date(2024, 1, 2), dt.date(2024, 1, 1))
    span = DateRange(dt.date(2024, 1, 30), dt.date(2024, 2, 2))
    assert list(span)[-1] == dt.date(2024, 2, 2)
    assert dt.date(2024, 2, 1) in span
    assert dt.date(2024, 2, 3) not in span
    assert span.as_params() == ("2024-01-30", "2024-02-02")


def test_cache_key_requires_all_parts() -> None:
    with pytest.raises(ValueError):
        CacheKey(owner_id="o1", channel_id=" ", metric="views")


def test_build_defaults_last_date_before_start() -> None:
    key = CacheKey("o1", "c1", "views")
    values = [DailyValue(dt.date(2024, 1, 1), 0), DailyValue(dt.date(2024, 1, 2), 3)]
    record = CacheRecord.build(key, values)
    assert record.last_date == dt.date(2023, 12, 31)
    assert record.coverage == DateRange(dt.date(2024, 1, 1), dt.date(2024, 1, 2))
    record.validate()


def test_validate_detects_gaps_and_bad_last_date() -> None:
    key = CacheKey("o1", "c1", "views")
    gappy = CacheRecord(
        key=key,
        start_date=dt.date(2024, 1, 1),
        end_date=dt.date(2024, 1, 2),
        last_date=dt.date(2024, 1, 2),
        values=(DailyValue(dt.date(2024, 1, 1), 0), DailyValue(dt.date(2024, 1, 3), 0)),
    )
    with pytest.raises(ValueError):
        gappy.validate()
    ahead = CacheRecord.build(key, [DailyValue(dt.date(2024, 1, 1), 0)], last_date=dt.date(2024, 1, 5))
    with pytest.raises(ValueError):
        ahead.validate()


def test_travel_freezes_today() -> None:
    with time_machine.travel(dt.date(2024, 3, 10)):
        assert time_machine.today() == dt.date(2024, 3, 10)
    with time_machine.travel("2024-03-10T23:30:00+00:00"):
        assert time_machine.today() == dt.date(2024, 3, 10)
