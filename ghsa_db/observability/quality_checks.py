"""
Data quality checks for the written store.

This module implements QualityChecker, which runs SQL-based validation checks
against the advisory tables after each load.

Checks implemented:
- No null modified: every advisory row carries its last-modified timestamp
- No empty ids: every advisory row has a non-empty ghsa
- No orphan packages: every affected package points at a written advisory
- CVE format: CVE IDs must match CVE-YYYY-NNNN pattern
- Reference columns: classified reference columns hold JSON arrays

Design decisions:
- Each check returns a QualityCheckResult with pass/fail and details
- Checks are SQL-based for performance (run against database, not Python)
"""
from dataclasses import dataclass
from typing import Any, Dict, List


@dataclass
class QualityCheckResult:
    """
    Result of a single quality check.

    Attributes:
        check_name: Unique identifier for the check
        passed: True if check passed, False otherwise
        message: Human-readable summary of the result
        details: Optional dict with additional context (e.g., counts)
    """
    check_name: str
    passed: bool
    message: str
    details: Dict[str, Any] = None


class QualityChecker:
    """
    Runs data quality checks against the advisory store.

    Each check method executes a SQL query against the database and returns
    a QualityCheckResult indicating pass/fail status.
    """

    def __init__(self, database):
        """
        Initialize quality checker.

        Args:
            database: Database instance with active connection
        """
        self.db = database

    def run_all_checks(self) -> List[QualityCheckResult]:
        """
        Run all quality checks.

        Returns:
            List of QualityCheckResult objects, one per check
        """
        return [
            self.check_no_null_modified(),
            self.check_no_empty_ids(),
            self.check_no_orphan_packages(),
            self.check_cve_format(),
            self.check_reference_columns(),
        ]

    def check_no_null_modified(self) -> QualityCheckResult:
        """Every advisory must keep its last-modified timestamp."""
        result = self._count("SELECT count(*) FROM advisories WHERE modified IS NULL")

        return QualityCheckResult(
            check_name="no_null_modified",
            passed=result == 0,
            message=f"{result} advisories without modified" if result > 0 else "All advisories have modified",
            details={"null_count": result}
        )

    def check_no_empty_ids(self) -> QualityCheckResult:
        result = self._count("""
            SELECT count(*) FROM advisories
            WHERE ghsa IS NULL OR trim(ghsa) = ''
        """)

        return QualityCheckResult(
            check_name="no_empty_ids",
            passed=result == 0,
            message=f"{result} advisories with empty id" if result > 0 else "All advisories have ids",
            details={"empty_count": result}
        )

    def check_no_orphan_packages(self) -> QualityCheckResult:
        """
        Every affected package must belong to an advisory of the same load.

        Package rows are only derived from their parent advisory, so a
        failure here means the writer lost advisory rows.
        """
        result = self._count("""
            SELECT count(*) FROM affected_packages p
            LEFT JOIN advisories a ON a.ghsa = p.ghsa
            WHERE a.ghsa IS NULL
        """)

        return QualityCheckResult(
            check_name="no_orphan_packages",
            passed=result == 0,
            message=f"{result} orphan package rows" if result > 0 else "All packages have an advisory",
            details={"orphan_count": result}
        )

    def check_cve_format(self) -> QualityCheckResult:
        """
        Check that all CVE IDs match the expected format: CVE-YYYY-NNNN+.

        Uses SQL SIMILAR TO (regex) for format validation.
        """
        result = self._count("""
            SELECT count(*) FROM advisories
            WHERE cve IS NOT NULL
              AND cve NOT SIMILAR TO 'CVE-[0-9]{4}-[0-9]{4,}'
        """)

        return QualityCheckResult(
            check_name="cve_format",
            passed=result == 0,
            message=f"{result} invalid CVE formats" if result > 0 else "All CVE IDs valid",
            details={"invalid_count": result}
        )

    def check_reference_columns(self) -> QualityCheckResult:
        """Classified reference columns are either NULL or a JSON array."""
        result = self._count("""
            SELECT count(*) FROM advisories
            WHERE (ref_commits IS NOT NULL AND NOT starts_with(ref_commits, '['))
               OR (ref_pull_requests IS NOT NULL AND NOT starts_with(ref_pull_requests, '['))
        """)

        return QualityCheckResult(
            check_name="reference_columns",
            passed=result == 0,
            message=f"{result} malformed reference columns" if result > 0 else "Reference columns well formed",
            details={"malformed_count": result}
        )

    def _count(self, query: str) -> int:
        return self.db.connect().execute(query).fetchone()[0]
