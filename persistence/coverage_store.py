from __future__ import annotations

import asyncio
import contextlib
import datetime as dt
import json
import sqlite3
import threading
import weakref
from pathlib import Path
from typing import Iterator, Optional, Protocol, Sequence

from series_engine.errors import AlreadyExists, CoverageError, InvalidExtension, StorageFailure
from series_engine.models import (
    ONE_DAY,
    CacheKey,
    CacheRecord,
    DailyValue,
    as_date,
    values_from_payload,
    values_to_payload,
)
from series_engine.time_machine import utc_now
from persistence.db import connect_db, run_migrations


class CoverageStore(Protocol):
    """Persistence for one CacheRecord per key; every mutation is atomic per key."""

    def lock(self, key: CacheKey) -> asyncio.Lock: ...

    async def get(self, key: CacheKey) -> Optional[CacheRecord]: ...

    async def create(self, record: CacheRecord) -> None: ...

    async def replace(self, key: CacheKey, record: CacheRecord) -> None: ...

    async def extend(
        self,
        key: CacheKey,
        appended: Sequence[DailyValue],
        new_end: dt.date,
        new_last_date: dt.date,
        *,
        refreshed: Sequence[DailyValue] = (),
    ) -> CacheRecord: ...


def _check_extension(
    current: CacheRecord,
    appended: Sequence[DailyValue],
    new_end: dt.date,
    new_last_date: dt.date,
    refreshed: Sequence[DailyValue],
) -> None:
    if not appended:
        raise InvalidExtension(f"nothing to append to {current.key}")
    expected = current.end_date + ONE_DAY
    for entry in appended:
        if entry.date <= current.end_date:
            raise InvalidExtension(
                f"appended {entry.date} is not after end_date {current.end_date}",
                context={"key": current.key.as_tuple()},
            )
        if entry.date != expected:
            raise InvalidExtension(
                f"gap in extension: expected {expected}, got {entry.date}",
                context={"key": current.key.as_tuple()},
            )
        expected = expected + ONE_DAY
    if appended[-1].date != new_end:
        raise InvalidExtension(f"new_end {new_end} does not match last appended day {appended[-1].date}")
    if new_last_date < current.last_date or new_last_date > new_end:
        raise InvalidExtension(
            f"new_last_date {new_last_date} outside [{current.last_date}, {new_end}]",
            context={"key": current.key.as_tuple()},
        )
    prev: Optional[dt.date] = None
    for entry in refreshed:
        if not (current.last_date < entry.date <= current.end_date):
            raise InvalidExtension(
                f"refreshed {entry.date} outside ({current.last_date}, {current.end_date}]",
                context={"key": current.key.as_tuple()},
            )
        if prev is not None and entry.date <= prev:
            raise InvalidExtension("refreshed values must be strictly increasing")
        prev = entry.date


class SQLiteCoverageStore:
    """
    SQLite-backed coverage store.

    Schema:
      coverage_records(owner_id, channel_id, metric, start_date, end_date, last_date,
                       payload JSON, updated_at, PRIMARY KEY(owner_id, channel_id, metric))

    A single connection guarded by a thread lock serialises SQL; every mutation is one
    ``BEGIN IMMEDIATE`` transaction, so readers see either the old or the new record.
    Callers serialise the read-decide-write sequence for a key with :meth:`lock`.
    """

    def __init__(self, path: str | Path, *, migrations_dir: Optional[Path] = None) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._key_locks: "weakref.WeakValueDictionary[CacheKey, asyncio.Lock]" = weakref.WeakValueDictionary()
        try:
            self._conn = connect_db(self.path)
            with self._lock:
                run_migrations(self._conn, migrations_dir)
        except sqlite3.Error as exc:
            raise StorageFailure(f"Failed to initialise coverage store at {self.path}") from exc

    # ------------------------------------------------------------------ async API
    def lock(self, key: CacheKey) -> asyncio.Lock:
        lock = self._key_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._key_locks[key] = lock
        return lock

    async def get(self, key: CacheKey) -> Optional[CacheRecord]:
        return await asyncio.to_thread(self.get_sync, key)

    async def create(self, record: CacheRecord) -> None:
        await asyncio.to_thread(self.create_sync, record)

    async def replace(self, key: CacheKey, record: CacheRecord) -> None:
        await asyncio.to_thread(self.replace_sync, key, record)

    async def extend(
        self,
        key: CacheKey,
        appended: Sequence[DailyValue],
        new_end: dt.date,
        new_last_date: dt.date,
        *,
        refreshed: Sequence[DailyValue] = (),
    ) -> CacheRecord:
        return await asyncio.to_thread(self.extend_sync, key, appended, new_end, new_last_date, refreshed)

    async def remove(self, key: CacheKey) -> bool:
        return await asyncio.to_thread(self.remove_sync, key)

    # ------------------------------------------------------------------- sync API
    def get_sync(self, key: CacheKey) -> Optional[CacheRecord]:
        try:
            with self._lock:
                row = self._select(self._conn, key)
        except sqlite3.Error as exc:
            raise StorageFailure(f"Failed to read {key}") from exc
        return self._to_record(key, row) if row is not None else None

    def create_sync(self, record: CacheRecord) -> None:
        self._validated(record)
        with self._transaction("create") as conn:
            try:
                self._insert(conn, record)
            except sqlite3.IntegrityError as exc:
                if "UNIQUE" not in str(exc).upper():
                    raise
                raise AlreadyExists(f"record already exists for {record.key}", context={"key": record.key.as_tuple()}) from exc

    def replace_sync(self, key: CacheKey, record: CacheRecord) -> None:
        if record.key != key:
            raise CoverageError(f"replacement record is keyed {record.key}, expected {key}")
        self._validated(record)
        with self._transaction("replace") as conn:
            conn.execute(
                """
                INSERT INTO coverage_records
                (owner_id, channel_id, metric, start_date, end_date, last_date, payload, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(owner_id, channel_id, metric) DO UPDATE SET
                    start_date=excluded.start_date,
                    end_date=excluded.end_date,
                    last_date=excluded.last_date,
                    payload=excluded.payload,
                    updated_at=excluded.updated_at
                """,
                self._params(record),
            )

    def extend_sync(
        self,
        key: CacheKey,
        appended: Sequence[DailyValue],
        new_end: dt.date,
        new_last_date: dt.date,
        refreshed: Sequence[DailyValue] = (),
    ) -> CacheRecord:
        with self._transaction("extend") as conn:
            row = self._select(conn, key)
            if row is None:
                raise InvalidExtension(f"cannot extend missing record {key}")
            current = self._to_record(key, row)
            _check_extension(current, appended, new_end, new_last_date, refreshed)
            overrides = {entry.date: entry for entry in refreshed}
            merged = tuple(overrides.get(entry.date, entry) for entry in current.values) + tuple(appended)
            updated = CacheRecord(
                key=key,
                start_date=current.start_date,
                end_date=new_end,
                last_date=new_last_date,
                values=merged,
            )
            self._validated(updated)
            conn.execute(
                """
                UPDATE coverage_records
                SET end_date = ?, last_date = ?, payload = ?, updated_at = ?
                WHERE owner_id = ? AND channel_id = ? AND metric = ?
                """,
                (
                    updated.end_date.isoformat(),
                    updated.last_date.isoformat(),
                    json.dumps(values_to_payload(updated.values), separators=(",", ":")),
                    utc_now().isoformat(),
                    *key.as_tuple(),
                ),
            )
        return updated

    def remove_sync(self, key: CacheKey) -> bool:
        with self._transaction("remove") as conn:
            cur = conn.execute(
                "DELETE FROM coverage_records WHERE owner_id = ? AND channel_id = ? AND metric = ?",
                key.as_tuple(),
            )
        return cur.rowcount > 0

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------ internals
    @contextlib.contextmanager
    def _transaction(self, operation: str) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE")
                yield self._conn
                self._conn.execute("COMMIT")
            except CoverageError:
                self._rollback()
                raise
            except sqlite3.IntegrityError as exc:
                self._rollback()
                raise CoverageError(
                    f"coverage store {operation} violated a table constraint", context={"operation": operation}
                ) from exc
            except sqlite3.Error as exc:
                self._rollback()
                raise StorageFailure(f"coverage store {operation} failed", context={"operation": operation}) from exc
            except BaseException:
                self._rollback()
                raise

    def _rollback(self) -> None:
        if self._conn.in_transaction:
            self._conn.rollback()

    @staticmethod
    def _validated(record: CacheRecord) -> CacheRecord:
        try:
            record.validate()
        except ValueError as exc:
            raise CoverageError(f"invalid record for {record.key}: {exc}") from exc
        return record

    @staticmethod
    def _select(conn: sqlite3.Connection, key: CacheKey) -> Optional[sqlite3.Row]:
        return conn.execute(
            """
            SELECT start_date, end_date, last_date, payload
            FROM coverage_records
            WHERE owner_id = ? AND channel_id = ? AND metric = ?
            """,
            key.as_tuple(),
        ).fetchone()

    @staticmethod
    def _params(record: CacheRecord) -> tuple:
        return (
            *record.key.as_tuple(),
            record.start_date.isoformat(),
            record.end_date.isoformat(),
            record.last_date.isoformat(),
            json.dumps(values_to_payload(record.values), separators=(",", ":")),
            utc_now().isoformat(),
        )

    def _insert(self, conn: sqlite3.Connection, record: CacheRecord) -> None:
        conn.execute(
            """
            INSERT INTO coverage_records
            (owner_id, channel_id, metric, start_date, end_date, last_date, payload, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            self._params(record),
        )

    @staticmethod
    def _to_record(key: CacheKey, row: sqlite3.Row) -> CacheRecord:
        try:
            record = CacheRecord(
                key=key,
                start_date=as_date(row["start_date"]),
                end_date=as_date(row["end_date"]),
                last_date=as_date(row["last_date"]),
                values=values_from_payload(json.loads(row["payload"])),
            )
            record.validate()
        except (ValueError, KeyError, TypeError) as exc:
            raise StorageFailure(f"stored record for {key} is corrupt") from exc
        return record


__all__ = ["CoverageStore", "SQLiteCoverageStore"]
