"""
Database connection and schema management for the advisory store.

This module provides:
- DuckDB connection lifecycle management
- The ``advisories`` and ``affected_packages`` tables
- Schema rebuild used by the writer inside its load transaction

Design decisions:
- DuckDB as the file-backed store (single file, transactional DDL)
- Serialized arrays/objects kept as TEXT columns holding JSON
- No foreign key between the tables; ``ghsa`` is the natural join key
- Secondary indexes are built after the bulk insert
"""
import logging
from typing import Dict, Optional

import duckdb

from ghsa_db.errors import StoreError

logger = logging.getLogger(__name__)

ADVISORIES_DDL = """
    CREATE TABLE {if_not_exists} advisories (
        ghsa TEXT PRIMARY KEY,
        schema_version TEXT,
        modified TEXT NOT NULL,
        published TEXT,
        withdrawn TEXT,
        cve TEXT,
        ecosystems TEXT,
        summary TEXT,
        details TEXT,
        severity TEXT,
        cwes TEXT,
        github_reviewed INTEGER,
        github_reviewed_at TEXT,
        nvd_published_at TEXT,
        ref_commits TEXT,
        ref_pull_requests TEXT
    )
"""

AFFECTED_PACKAGES_DDL = """
    CREATE TABLE {if_not_exists} affected_packages (
        ghsa TEXT,
        name TEXT NOT NULL,
        ecosystem TEXT NOT NULL,
        ranges TEXT,
        versions TEXT
    )
"""

INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_adv_cve ON advisories(cve)",
    "CREATE INDEX IF NOT EXISTS idx_ap_ghsa ON affected_packages(ghsa)",
    "CREATE INDEX IF NOT EXISTS idx_ap_package ON affected_packages(ecosystem, name)",
)

INDEX_NAMES = ("idx_adv_cve", "idx_ap_ghsa", "idx_ap_package")

TABLES = ("advisories", "affected_packages")


class Database:
    """
    Manages the DuckDB connection and the advisory schema.

    This class is responsible for:
    - Creating and maintaining a single database connection
    - Creating the two advisory tables when absent
    - Dropping and recreating them for a full rebuild
    """

    def __init__(self, db_path: str = "ghsa.duckdb"):
        """
        Initialize database manager.

        Args:
            db_path: Path to DuckDB database file (created if doesn't exist)
        """
        self.db_path = str(db_path)
        self.conn: Optional[duckdb.DuckDBPyConnection] = None

    def connect(self) -> duckdb.DuckDBPyConnection:
        """
        Get or create database connection.

        Returns:
            Active DuckDB connection

        Raises:
            StoreError: If the database file cannot be opened or created
        """
        if self.conn is None:
            try:
                self.conn = duckdb.connect(self.db_path)
            except duckdb.Error as e:
                raise StoreError(f"cannot open database: {e}", self.db_path) from e
        return self.conn

    def close(self):
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    def initialize_schema(self):
        """Create both tables and their indexes if they don't exist."""
        conn = self.connect()
        conn.execute(ADVISORIES_DDL.format(if_not_exists="IF NOT EXISTS"))
        conn.execute(AFFECTED_PACKAGES_DDL.format(if_not_exists="IF NOT EXISTS"))
        self.create_indexes()

    def rebuild_schema(self):
        """
        Drop and recreate both tables, empty.

        Must run inside the caller's transaction so the old content survives
        if the load fails.
        """
        conn = self.connect()
        for index in INDEX_NAMES:
            conn.execute(f"DROP INDEX IF EXISTS {index}")
        for table in TABLES:
            conn.execute(f"DROP TABLE IF EXISTS {table}")
        conn.execute(ADVISORIES_DDL.format(if_not_exists=""))
        conn.execute(AFFECTED_PACKAGES_DDL.format(if_not_exists=""))

    def create_indexes(self):
        conn = self.connect()
        for statement in INDEXES:
            conn.execute(statement)

    def table_counts(self) -> Dict[str, int]:
        """Row count per advisory table (0 for a missing table)."""
        conn = self.connect()
        counts = {}
        for table in TABLES:
            exists = conn.execute("""
                SELECT count(*) FROM information_schema.tables
                WHERE table_schema = 'main' AND table_name = ?
            """, [table]).fetchone()[0]
            counts[table] = conn.execute(f"SELECT count(*) FROM {table}").fetchone()[0] if exists else 0
        return counts

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
