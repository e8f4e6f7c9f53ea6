from __future__ import annotations

import datetime as dt
import sqlite3
from importlib import resources
from pathlib import Path
from typing import List, Optional, Tuple

_PRAGMAS = (
    "PRAGMA journal_mode=WAL;",
    "PRAGMA synchronous=NORMAL;",
    "PRAGMA busy_timeout=5000;",
)

Migration = Tuple[str, str]


def connect_db(path: str | Path) -> sqlite3.Connection:
    """Open (creating parent dirs) a WAL-mode connection shared across worker threads."""

    db_path = Path(path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    for pragma in _PRAGMAS:
        conn.execute(pragma)
    return conn


def _load_migrations(migrations_dir: Optional[Path]) -> List[Migration]:
    if migrations_dir is not None:
        files = sorted(migrations_dir.glob("*.sql"))
        return [(path.name, path.read_text(encoding="utf-8")) for path in files]
    bundled = resources.files("persistence").joinpath("schema_migrations")
    entries = sorted((entry for entry in bundled.iterdir() if entry.name.endswith(".sql")), key=lambda entry: entry.name)
    return [(entry.name, entry.read_text(encoding="utf-8")) for entry in entries]


def _applied_names(conn: sqlite3.Connection) -> set[str]:
    conn.execute("CREATE TABLE IF NOT EXISTS schema_migrations(name TEXT PRIMARY KEY, applied_at TEXT NOT NULL)")
    conn.commit()
    return {row["name"] for row in conn.execute("SELECT name FROM schema_migrations")}


def run_migrations(conn: sqlite3.Connection, migrations_dir: Optional[Path] = None) -> List[str]:
    """
    Apply pending ``*.sql`` scripts in name order and return the names applied.

    Scripts ship inside the ``persistence`` package unless ``migrations_dir``
    points elsewhere. Each script is committed together with its bookkeeping row.
    """

    done = _applied_names(conn)
    applied: List[str] = []
    for name, script in _load_migrations(migrations_dir):
        if name in done:
            continue
        conn.executescript(script)
        conn.execute(
            "INSERT INTO schema_migrations(name, applied_at) VALUES (?, ?)",
            (name, dt.datetime.now(dt.timezone.utc).isoformat()),
        )
        conn.commit()
        applied.append(name)
    return applied


__all__ = ["connect_db", "run_migrations"]
