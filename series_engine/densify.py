from __future__ import annotations

import datetime as dt
from typing import List, Sequence

import pandas as pd

from series_engine.models import DailyValue


def _check_rows(rows: Sequence[DailyValue], start: dt.date, end: dt.date) -> None:
    prev: dt.date | None = None
    for row in rows:
        if row.date < start or row.date > end:
            raise ValueError(f"row dated {row.date} outside [{start}, {end}]")
        if prev is not None and row.date <= prev:
            raise ValueError(f"rows must be strictly increasing by date ({prev} then {row.date})")
        prev = row.date


def densify(rows: Sequence[DailyValue], start: dt.date, end: dt.date) -> List[DailyValue]:
    """
    Expand sparse provider rows into one entry per calendar day of ``[start, end]``.

    Providers omit days without activity; those days come back as ``0``. Rows
    must be date-ascending, duplicate free and inside the range.
    """

    if end < start:
        raise ValueError(f"Invalid range: end {end} < start {start}")
    _check_rows(rows, start, end)

    calendar = pd.date_range(start=start, end=end, freq="D")
    sparse = pd.Series(
        [int(row.value) for row in rows],
        index=pd.DatetimeIndex([pd.Timestamp(row.date) for row in rows]),
        dtype="int64",
    )
    dense = sparse.reindex(calendar, fill_value=0)
    return [DailyValue(date=stamp.date(), value=int(value)) for stamp, value in dense.items()]


def to_frame(values: Sequence[DailyValue]) -> pd.DataFrame:
    """Date-indexed frame with a single ``value`` column."""

    if not values:
        return pd.DataFrame({"value": pd.Series([], dtype="int64")}, index=pd.DatetimeIndex([], name="date"))
    index = pd.DatetimeIndex([pd.Timestamp(entry.date) for entry in values], name="date")
    return pd.DataFrame({"value": [int(entry.value) for entry in values]}, index=index)


__all__ = ["densify", "to_frame"]
