from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping, Optional, Sequence, Tuple

ONE_DAY = dt.timedelta(days=1)


def as_date(value: object) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    text = str(value or "").strip()
    if not text:
        raise ValueError("date must be non-empty")
    try:
        return dt.date.fromisoformat(text[:10])
    except ValueError as exc:
        raise ValueError(f"Invalid date: {value!r}") from exc


def iter_dates(start: dt.date, end: dt.date) -> Iterator[dt.date]:
    cursor = start
    while cursor <= end:
        yield cursor
        cursor = cursor + ONE_DAY


def days_between(start: dt.date, end: dt.date) -> int:
    return (end - start).days


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar-date range."""

    start: dt.date
    end: dt.date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"Invalid range: {self.end} < {self.start}")

    @property
    def days(self) -> int:
        return days_between(self.start, self.end) + 1

    def __contains__(self, day: object) -> bool:
        return isinstance(day, dt.date) and self.start <= day <= self.end

    def __iter__(self) -> Iterator[dt.date]:
        return iter_dates(self.start, self.end)

    def as_params(self) -> Tuple[str, str]:
        return self.start.isoformat(), self.end.isoformat()


def desired_window(today: dt.date, min_history_days: int, lag_days: int = 1) -> DateRange:
    """
    Trailing window the cache must keep covered.

    Ends ``lag_days`` before ``today`` (yesterday by default) and spans exactly
    ``min_history_days`` calendar days.
    """

    if min_history_days < 1:
        raise ValueError("min_history_days must be >= 1")
    if lag_days < 0:
        raise ValueError("lag_days must be >= 0")
    end = today - dt.timedelta(days=lag_days)
    start = end - dt.timedelta(days=min_history_days - 1)
    return DateRange(start=start, end=end)


@dataclass(frozen=True)
class DailyValue:
    date: dt.date
    value: int

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.date.isoformat(), "value": int(self.value)}

    @staticmethod
    def from_dict(payload: Mapping[str, Any]) -> "DailyValue":
        return DailyValue(date=as_date(payload["date"]), value=int(payload["value"]))


@dataclass(frozen=True)
class CacheKey:
    owner_id: str
    channel_id: str
    metric: str

    def __post_init__(self) -> None:
        for name in ("owner_id", "channel_id", "metric"):
            if not str(getattr(self, name) or "").strip():
                raise ValueError(f"{name} must be non-empty")

    def as_tuple(self) -> Tuple[str, str, str]:
        return self.owner_id, self.channel_id, self.metric


@dataclass(frozen=True)
class CacheRecord:
    """
    Dense coverage for one (owner, channel, metric).

    ``values`` holds exactly one entry per day in ``[start_date, end_date]``;
    ``last_date`` is the last day the provider actually reported and may lag
    ``end_date``.
    """

    key: CacheKey
    start_date: dt.date
    end_date: dt.date
    last_date: dt.date
    values: Tuple[DailyValue, ...] = field(default_factory=tuple)

    @staticmethod
    def build(
        key: CacheKey,
        values: Iterable[DailyValue],
        *,
        last_date: Optional[dt.date] = None,
    ) -> "CacheRecord":
        ordered = tuple(values)
        if not ordered:
            raise ValueError("CacheRecord requires at least one value")
        start = ordered[0].date
        return CacheRecord(
            key=key,
            start_date=start,
            end_date=ordered[-1].date,
            last_date=last_date if last_date is not None else start - ONE_DAY,
            values=ordered,
        )

    @property
    def coverage(self) -> DateRange:
        return DateRange(self.start_date, self.end_date)

    def validate(self) -> None:
        if self.end_date < self.start_date:
            raise ValueError(f"end_date {self.end_date} precedes start_date {self.start_date}")
        expected = days_between(self.start_date, self.end_date) + 1
        if len(self.values) != expected:
            raise ValueError(f"expected {expected} values for {self.coverage}, got {len(self.values)}")
        for offset, entry in enumerate(self.values):
            if entry.date != self.start_date + dt.timedelta(days=offset):
                raise ValueError(f"values not contiguous at index {offset} ({entry.date})")
        if self.last_date > self.end_date:
            raise ValueError(f"last_date {self.last_date} is after end_date {self.end_date}")


def values_to_payload(values: Sequence[DailyValue]) -> list[dict[str, Any]]:
    return [entry.to_dict() for entry in values]


def values_from_payload(payload: Iterable[Mapping[str, Any]]) -> Tuple[DailyValue, ...]:
    return tuple(DailyValue.from_dict(item) for item in payload)


__all__ = [
    "CacheKey",
    "CacheRecord",
    "DailyValue",
    "DateRange",
    "ONE_DAY",
    "as_date",
    "days_between",
    "desired_window",
    "iter_dates",
    "values_from_payload",
    "values_to_payload",
]
