"""
Metrics collection for import runs.

This module provides RunMetrics, a dataclass that tracks the observability
data of one import:
- Counts of documents seen, parsed and skipped
- Rows written per table
- Per-document failures with path and cause
- Reference classification and ecosystem tallies

Design decisions:
- Single metrics object per run, filled by the coordinating process only
- Defaultdict used for automatic initialization of counters
- Serializable to_dict() for the JSON run summary
"""
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ghsa_db.errors import ImporterError


@dataclass
class DocumentFailure:
    """One document that was skipped, and why."""
    path: Optional[str]
    error_type: str
    cause: str

    def __str__(self) -> str:
        return f"{self.path or '<unknown>'}: {self.error_type}: {self.cause}"


@dataclass
class RunMetrics:
    """
    Metrics for a single import run.

    Tracks document counts, written rows, failures and classification tallies.
    """
    run_id: str
    started_at: datetime
    completed_at: datetime = None

    # Core counts
    documents_seen: int = 0
    documents_parsed: int = 0
    advisories_written: int = 0
    packages_written: int = 0

    # Classified reference URLs across the run
    commit_refs: int = 0
    pull_request_refs: int = 0

    # Key: ecosystem name, Value: advisories touching it
    ecosystem_counts: Dict[str, int] = field(default_factory=lambda: defaultdict(int))

    # Key: error class name, Value: count
    error_counts: Dict[str, int] = field(default_factory=lambda: defaultdict(int))

    failures: List[DocumentFailure] = field(default_factory=list)

    @property
    def documents_skipped(self) -> int:
        return len(self.failures)

    def record_failure(self, error: ImporterError):
        """
        Record a skipped document.

        Args:
            error: The recoverable error that caused the skip
        """
        error_type = type(error).__name__
        self.error_counts[error_type] += 1
        self.failures.append(DocumentFailure(path=error.path, error_type=error_type, cause=error.cause))

    def record_advisory(self, ecosystems: Optional[List[str]], commits: int, pull_requests: int):
        """
        Record one successfully mapped advisory.

        Args:
            ecosystems: Distinct ecosystems of the advisory
            commits: Number of commit references found
            pull_requests: Number of pull request references found
        """
        self.documents_parsed += 1
        self.commit_refs += commits
        self.pull_request_refs += pull_requests
        for ecosystem in ecosystems or []:
            self.ecosystem_counts[ecosystem] += 1

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert metrics to dictionary for JSON serialization.

        Returns:
            Dictionary representation suitable for JSON storage
        """
        return {
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "documents_seen": self.documents_seen,
            "documents_parsed": self.documents_parsed,
            "documents_skipped": self.documents_skipped,
            "advisories_written": self.advisories_written,
            "packages_written": self.packages_written,
            "commit_refs": self.commit_refs,
            "pull_request_refs": self.pull_request_refs,
            "ecosystem_counts": dict(self.ecosystem_counts),
            "error_counts": dict(self.error_counts),
            "failures": [
                {"path": f.path, "error_type": f.error_type, "cause": f.cause}
                for f in self.failures
            ],
        }
