"""
Storage layer for the advisory importer.

This module provides data persistence using DuckDB.

Components:
- Database: Connection management and schema creation
- StoreWriter: All-or-nothing bulk load of mapped advisories
- WriteResult: Row counts and skipped duplicates of one load

Usage:
    from ghsa_db.storage import Database, StoreWriter

    with Database("ghsa.duckdb") as db:
        result = StoreWriter(db).write(mapped_advisories)
"""

from .database import Database
from .writer import StoreWriter, WriteResult

__all__ = [
    "Database",
    "StoreWriter",
    "WriteResult",
]
