from __future__ import annotations

import datetime as dt

import pytest

from series_engine.densify import densify, to_frame
from series_engine.models import DailyValue


def _d(text: str) -> dt.date:
    return dt.date.fromisoformat(text)


def test_empty_rows_zero_fill_whole_range() -> None:
    out = densify([], _d("2024-01-01"), _d("2024-01-05"))
    assert [entry.date for entry in out] == [_d("2024-01-0%d" % day) for day in range(1, 6)]
    assert all(entry.value == 0 for entry in out)


def test_single_day_range() -> None:
    out = densify([DailyValue(_d("2024-02-29"), 7)], _d("2024-02-29"), _d("2024-02-29"))
    assert out == [DailyValue(_d("2024-02-29"), 7)]


def test_keeps_first_and_last_day_without_rows() -> None:
    rows = [DailyValue(_d("2024-01-03"), 5)]
    out = densify(rows, _d("2024-01-01"), _d("2024-01-06"))
    assert out[0] == DailyValue(_d("2024-01-01"), 0)
    assert out[-1] == DailyValue(_d("2024-01-06"), 0)
    assert len(out) == 6


def test_multi_day_gaps_do_not_misalign() -> None:
    rows = [
        DailyValue(_d("2024-01-04"), 4),
        DailyValue(_d("2024-01-05"), 5),
        DailyValue(_d("2024-01-20"), 20),
    ]
    out = densify(rows, _d("2024-01-01"), _d("2024-01-31"))
    by_day = {entry.date: entry.value for entry in out}
    assert len(out) == 31
    assert by_day[_d("2024-01-04")] == 4
    assert by_day[_d("2024-01-05")] == 5
    assert by_day[_d("2024-01-20")] == 20
    assert sum(by_day.values()) == 29
    assert [entry.date for entry in out] == sorted(by_day)


def test_range_across_month_and_year_boundary() -> None:
    rows = [DailyValue(_d("2023-12-31"), 1), DailyValue(_d("2024-01-01"), 2)]
    out = densify(rows, _d("2023-12-30"), _d("2024-01-02"))
    assert [entry.value for entry in out] == [0, 1, 2, 0]


def test_rejects_rows_outside_range() -> None:
    with pytest.raises(ValueError):
        densify([DailyValue(_d("2024-01-10"), 1)], _d("2024-01-01"), _d("2024-01-05"))


def test_rejects_unsorted_or_duplicate_rows() -> None:
    rows = [DailyValue(_d("2024-01-03"), 1), DailyValue(_d("2024-01-02"), 2)]
    with pytest.raises(ValueError):
        densify(rows, _d("2024-01-01"), _d("2024-01-05"))
    dupes = [DailyValue(_d("2024-01-02"), 1), DailyValue(_d("2024-01-02"), 2)]
    with pytest.raises(ValueError):
        densify(dupes, _d("2024-01-01"), _d("2024-01-05"))


def test_rejects_inverted_range() -> None:
    with pytest.raises(ValueError):
        densify([], _d("2024-01-05"), _d("2024-01-01"))


def test_to_frame_indexes_by_date() -> None:
    values = densify([DailyValue(_d("2024-01-02"), 9)], _d("2024-01-01"), _d("2024-01-03"))
    frame = to_frame(values)
    assert list(frame.columns) == ["value"]
    assert frame.index.name == "date"
    assert frame["value"].tolist() == [0, 9, 0]
    assert to_frame([]).empty
