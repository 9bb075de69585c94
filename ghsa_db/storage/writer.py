"""
Store writer for the advisory tables.

Loads every mapped advisory into DuckDB as one all-or-nothing unit: the
tables are dropped, recreated and filled inside a single transaction, so a
failed or interrupted load leaves the previous content in place.

Design decisions:
- Full rebuild on every run instead of upserts
- Duplicate advisory ids are resolved before the transaction opens (first
  occurrence wins), since a constraint violation would abort the whole load
- executemany in fixed-size batches for the inserts
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence

import duckdb

from ghsa_db.errors import RowConflictError, StoreError
from ghsa_db.mapping import ADVISORY_COLUMNS, AFFECTED_PACKAGE_COLUMNS, MappedAdvisory
from .database import Database

logger = logging.getLogger(__name__)

INSERT_ADVISORY = f"""
    INSERT INTO advisories ({", ".join(ADVISORY_COLUMNS)})
    VALUES ({", ".join("?" for _ in ADVISORY_COLUMNS)})
"""

INSERT_AFFECTED_PACKAGE = f"""
    INSERT INTO affected_packages ({", ".join(AFFECTED_PACKAGE_COLUMNS)})
    VALUES ({", ".join("?" for _ in AFFECTED_PACKAGE_COLUMNS)})
"""


@dataclass
class WriteResult:
    """Outcome of one bulk load."""
    advisories_written: int = 0
    packages_written: int = 0
    conflicts: List[RowConflictError] = field(default_factory=list)


class StoreWriter:
    """
    Writes mapped advisories to the destination database.

    The writer is the single writer of a run: it is called once, from the
    coordinating process, after all documents have been mapped.
    """

    def __init__(self, database: Database, batch_size: int = 5000):
        """
        Initialize writer.

        Args:
            database: Destination Database
            batch_size: Rows per executemany call
        """
        self.db = database
        self.batch_size = batch_size

    def write(self, mapped: Iterable[MappedAdvisory]) -> WriteResult:
        """
        Replace the store content with the given advisories.

        Args:
            mapped: Mapped advisories in input order

        Returns:
            WriteResult with row counts and skipped duplicates

        Raises:
            StoreError: If the database cannot be opened or the load fails;
                nothing is committed in that case
        """
        accepted, conflicts = self.resolve_conflicts(mapped)
        for conflict in conflicts:
            logger.warning("Skipping duplicate advisory: %s", conflict)

        advisory_params = [m.advisory.as_params() for m in accepted]
        package_params = [p.as_params() for m in accepted for p in m.packages]

        conn = self.db.connect()
        try:
            conn.begin()
            self.db.rebuild_schema()
            self._insert(conn, INSERT_ADVISORY, advisory_params, "advisories")
            self._insert(conn, INSERT_AFFECTED_PACKAGE, package_params, "affected_packages")
            self.db.create_indexes()
            conn.commit()
        except duckdb.Error as e:
            self._rollback(conn)
            logger.error("Bulk write failed, rolled back: %s", e, exc_info=True)
            raise StoreError(f"bulk write failed: {e}", self.db.db_path) from e
        except BaseException:
            self._rollback(conn)
            raise

        logger.info(
            "Wrote %d advisories and %d affected packages to %s",
            len(advisory_params), len(package_params), self.db.db_path,
        )
        return WriteResult(
            advisories_written=len(advisory_params),
            packages_written=len(package_params),
            conflicts=conflicts,
        )

    @staticmethod
    def resolve_conflicts(mapped: Iterable[MappedAdvisory]):
        """
        Keep the first advisory per id and report the rest.

        Returns:
            Tuple of (accepted advisories, RowConflictError per skipped one)
        """
        first_seen: Dict[str, MappedAdvisory] = {}
        accepted: List[MappedAdvisory] = []
        conflicts: List[RowConflictError] = []

        for item in mapped:
            ghsa = item.advisory.ghsa
            if ghsa in first_seen:
                conflicts.append(RowConflictError(
                    ghsa, path=item.source_path, first_path=first_seen[ghsa].source_path
                ))
                continue
            first_seen[ghsa] = item
            accepted.append(item)

        return accepted, conflicts

    def _insert(self, conn, statement: str, rows: Sequence[list], table: str) -> None:
        for start in range(0, len(rows), self.batch_size):
            conn.executemany(statement, rows[start:start + self.batch_size])
            logger.debug("  %s: %d/%d rows", table, min(start + self.batch_size, len(rows)), len(rows))

    @staticmethod
    def _rollback(conn) -> None:
        try:
            conn.rollback()
        except duckdb.Error as e:
            logger.debug("Rollback after failed load raised: %s", e)
