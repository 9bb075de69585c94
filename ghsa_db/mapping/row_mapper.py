"""
Row mapper: flattens a parsed advisory into relational rows.

This is the only place where structured values become text. Arrays and
objects are serialized as JSON with element order preserved; fields the
source omitted stay None so the store records real NULLs.

Design decisions:
- A field present as an empty array is stored as "[]", a missing field as NULL
- Classified reference lists are derived, so an empty list is always NULL
- github_reviewed is stored as 1/0 to fit the INTEGER column
"""
import json
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from ghsa_db.classification import ClassifiedReferences
from ghsa_db.errors import MappingError
from ghsa_db.ingestion.osv_parser import Advisory

ADVISORY_COLUMNS = (
    "ghsa",
    "schema_version",
    "modified",
    "published",
    "withdrawn",
    "cve",
    "ecosystems",
    "summary",
    "details",
    "severity",
    "cwes",
    "github_reviewed",
    "github_reviewed_at",
    "nvd_published_at",
    "ref_commits",
    "ref_pull_requests",
)

AFFECTED_PACKAGE_COLUMNS = ("ghsa", "name", "ecosystem", "ranges", "versions")


@dataclass
class AdvisoryRow:
    """One row of the ``advisories`` table."""
    ghsa: str
    schema_version: Optional[str]
    modified: str
    published: Optional[str]
    withdrawn: Optional[str]
    cve: Optional[str]
    ecosystems: Optional[str]
    summary: Optional[str]
    details: Optional[str]
    severity: Optional[str]
    cwes: Optional[str]
    github_reviewed: Optional[int]
    github_reviewed_at: Optional[str]
    nvd_published_at: Optional[str]
    ref_commits: Optional[str]
    ref_pull_requests: Optional[str]

    def as_params(self) -> List[Any]:
        return [getattr(self, column) for column in ADVISORY_COLUMNS]


@dataclass
class AffectedPackageRow:
    """One row of the ``affected_packages`` table."""
    ghsa: str
    name: str
    ecosystem: str
    ranges: Optional[str]
    versions: Optional[str]

    def as_params(self) -> List[Any]:
        return [getattr(self, column) for column in AFFECTED_PACKAGE_COLUMNS]


@dataclass
class MappedAdvisory:
    """All rows derived from one advisory document."""
    advisory: AdvisoryRow
    packages: List[AffectedPackageRow] = field(default_factory=list)
    source_path: Optional[str] = None


def to_json(value: Any) -> Optional[str]:
    """Serialize a structured value for a TEXT column; None stays None."""
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def severity_descriptor(advisory: Advisory) -> Optional[Dict[str, Any]]:
    """
    Combine the GitHub severity level and the OSV severity scores.

    Returns None when the advisory carries neither.
    """
    descriptor: Dict[str, Any] = {}
    level = advisory.database_specific.severity if advisory.database_specific else None
    if level is not None:
        descriptor["level"] = level
    if advisory.severity is not None:
        descriptor["scores"] = [asdict(score) for score in advisory.severity]
    return descriptor or None


def map_advisory(advisory: Advisory, references: ClassifiedReferences) -> MappedAdvisory:
    """
    Flatten one advisory into its table rows.

    Args:
        advisory: Parsed advisory
        references: Output of the reference classifier for this advisory

    Returns:
        MappedAdvisory with one advisory row and one row per affected entry

    Raises:
        MappingError: If the advisory breaks an invariant the parser should
            have enforced, or a value cannot be serialized
    """
    path = advisory.source_path
    if not advisory.id or not advisory.modified:
        raise MappingError("advisory reached the mapper without id or modified", path)

    db = advisory.database_specific
    try:
        advisory_row = AdvisoryRow(
            ghsa=advisory.id,
            schema_version=advisory.schema_version,
            modified=advisory.modified,
            published=advisory.published,
            withdrawn=advisory.withdrawn,
            cve=advisory.cve,
            ecosystems=to_json(advisory.ecosystems),
            summary=advisory.summary,
            details=advisory.details,
            severity=to_json(severity_descriptor(advisory)),
            cwes=to_json(db.cwe_ids if db else None),
            github_reviewed=_flag(db.github_reviewed if db else None),
            github_reviewed_at=db.github_reviewed_at if db else None,
            nvd_published_at=db.nvd_published_at if db else None,
            ref_commits=to_json(references.commits or None),
            ref_pull_requests=to_json(references.pull_requests or None),
        )

        packages = [
            AffectedPackageRow(
                ghsa=advisory.id,
                name=entry.package.name,
                ecosystem=entry.package.ecosystem,
                ranges=to_json(entry.ranges),
                versions=to_json(entry.versions),
            )
            for entry in advisory.affected or []
        ]
    except (TypeError, ValueError, AttributeError) as e:
        raise MappingError(f"{type(e).__name__} while flattening {advisory.id}: {e}", path) from e

    for package in packages:
        if not package.name or not package.ecosystem:
            raise MappingError(f"affected package of {advisory.id} lacks name or ecosystem", path)

    return MappedAdvisory(advisory=advisory_row, packages=packages, source_path=path)


def _flag(value: Optional[bool]) -> Optional[int]:
    if value is None:
        return None
    return 1 if value else 0
