"""
Engine clock.

Window arithmetic reads "today" from here, never from ``datetime`` directly,
so a test can pin the calendar with :func:`travel`.
"""
from __future__ import annotations

import contextlib
import datetime as dt
from typing import Callable, Iterator, List, Optional, Union

UTC = dt.timezone.utc

NowProvider = Callable[[], dt.datetime]
Pinnable = Union[dt.datetime, dt.date, str]

_providers: List[NowProvider] = []


def _wall_clock() -> dt.datetime:
    return dt.datetime.now(UTC)


def utc_now() -> dt.datetime:
    stamp = _providers[-1]() if _providers else _wall_clock()
    if stamp.tzinfo is None:
        return stamp.replace(tzinfo=UTC)
    return stamp.astimezone(UTC)


def now(tz: Optional[dt.tzinfo] = None) -> dt.datetime:
    stamp = utc_now()
    return stamp.astimezone(tz) if tz else stamp


def today() -> dt.date:
    """UTC calendar date; stored series carry no timezone component."""

    return utc_now().date()


@contextlib.contextmanager
def travel(frozen: Pinnable) -> Iterator[dt.datetime]:
    """
    Pin the clock at ``frozen`` for the duration of the block.

    A bare date (or ``YYYY-MM-DD`` string) pins UTC midnight. Blocks nest; the
    innermost one wins.
    """

    pinned = _pin(frozen)
    _providers.append(lambda: pinned)
    try:
        yield pinned
    finally:
        _providers.pop()


def install_now_provider(fn: Optional[NowProvider]) -> None:
    """Replace every active provider with ``fn``; ``None`` restores the wall clock."""

    _providers.clear()
    if fn is not None:
        _providers.append(fn)


def _pin(value: Pinnable) -> dt.datetime:
    if isinstance(value, str):
        text = value.strip()
        value = dt.datetime.fromisoformat(text) if len(text) > 10 else dt.date.fromisoformat(text)
    if not isinstance(value, dt.datetime):
        value = dt.datetime.combine(value, dt.time.min)
    return value if value.tzinfo else value.replace(tzinfo=UTC)


__all__ = ["install_now_provider", "now", "today", "travel", "utc_now"]
