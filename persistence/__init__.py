from persistence.coverage_store import CoverageStore, SQLiteCoverageStore
from persistence.db import connect_db, run_migrations

__all__ = ["CoverageStore", "SQLiteCoverageStore", "connect_db", "run_migrations"]
