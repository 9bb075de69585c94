"""
OSV advisory parser.

Turns the raw bytes of one OSV document into a typed Advisory. Only the
advisory id and the modified timestamp are required; every other field is
optional and is kept as None when the source omits it, so "absent" never
collapses into an empty value.

Nested sections (affected packages, references, severity scores and the
GitHub database_specific block) are parsed into dataclasses rather than kept
as opaque JSON, because the reference classifier inspects them before the
row mapper serializes them.
"""
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Type, Union

from ghsa_db.errors import ParseError

logger = logging.getLogger(__name__)


@dataclass
class Package:
    ecosystem: str
    name: str
    purl: Optional[str] = None


@dataclass
class AffectedEntry:
    """One entry of the OSV ``affected`` array."""
    package: Package
    ranges: Optional[List[Dict[str, Any]]] = None
    versions: Optional[List[str]] = None


@dataclass
class Reference:
    """
    One entry of the OSV ``references`` array.

    Malformed entries are kept with ``url=None`` so the classifier can treat
    them as "no match" instead of failing the whole document.
    """
    type: Optional[str]
    url: Optional[str]


@dataclass
class SeverityScore:
    type: str
    score: str


@dataclass
class DatabaseSpecific:
    """GitHub-specific metadata carried in ``database_specific``."""
    severity: Optional[str] = None
    cwe_ids: Optional[List[str]] = None
    github_reviewed: Optional[bool] = None
    github_reviewed_at: Optional[str] = None
    nvd_published_at: Optional[str] = None


@dataclass
class Advisory:
    """Typed view of one OSV advisory document."""
    id: str
    modified: str
    schema_version: Optional[str] = None
    published: Optional[str] = None
    withdrawn: Optional[str] = None
    aliases: Optional[List[str]] = None
    summary: Optional[str] = None
    details: Optional[str] = None
    severity: Optional[List[SeverityScore]] = None
    affected: Optional[List[AffectedEntry]] = None
    references: Optional[List[Reference]] = None
    database_specific: Optional[DatabaseSpecific] = None
    source_path: Optional[str] = None

    @property
    def cve(self) -> Optional[str]:
        """First CVE identifier among the aliases, if any."""
        return next((a for a in self.aliases or [] if a.startswith("CVE-")), None)

    @property
    def ecosystems(self) -> Optional[List[str]]:
        """Distinct affected ecosystems in first-seen order (None if no affected section)."""
        if self.affected is None:
            return None
        seen: List[str] = []
        for entry in self.affected:
            if entry.package.ecosystem not in seen:
                seen.append(entry.package.ecosystem)
        return seen


_TYPE_NAMES = {str: "a string", bool: "a boolean", list: "an array", dict: "an object"}


_RFC3339 = re.compile(
    r"(\d{4}-\d{2}-\d{2})[Tt ](\d{2}:\d{2}:\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})"
)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an RFC 3339 timestamp, returning None if it is missing or invalid.

    Fractional seconds of any precision are accepted and truncated to
    microseconds.
    """
    if not value:
        return None
    match = _RFC3339.fullmatch(value)
    if match is None:
        return None
    date, time, fraction, offset = match.groups()
    if offset in ("Z", "z"):
        offset = "+00:00"
    fraction = (fraction or "")[:6].ljust(6, "0")
    try:
        return datetime.fromisoformat(f"{date}T{time}.{fraction}{offset}")
    except ValueError:
        return None


def parse_advisory(payload: Union[bytes, str], path: Optional[str] = None) -> Advisory:
    """
    Parse one OSV document.

    Args:
        payload: Raw JSON document
        path: Source path, used only for error reporting

    Returns:
        Parsed Advisory

    Raises:
        ParseError: If the document is not valid JSON, is not an object,
            lacks ``id`` or ``modified``, or has a field of the wrong type
    """
    try:
        document = json.loads(payload)
    except (ValueError, RecursionError) as e:
        # JSONDecodeError and UnicodeDecodeError are ValueErrors
        raise ParseError(f"malformed JSON: {e}", path) from e

    if not isinstance(document, dict):
        raise ParseError(f"document must be a JSON object, got {type(document).__name__}", path)

    advisory_id = _field(document, "id", str, path)
    if not advisory_id:
        raise ParseError("missing required field 'id'", path)

    modified = _field(document, "modified", str, path)
    if modified is None:
        raise ParseError(f"missing required field 'modified' in {advisory_id}", path)
    if parse_timestamp(modified) is None:
        raise ParseError(f"field 'modified' is not a valid timestamp: {modified!r}", path)

    return Advisory(
        id=advisory_id,
        modified=modified,
        schema_version=_field(document, "schema_version", str, path),
        published=_field(document, "published", str, path),
        withdrawn=_field(document, "withdrawn", str, path),
        aliases=_string_list(document, "aliases", path),
        summary=_field(document, "summary", str, path),
        details=_field(document, "details", str, path),
        severity=_parse_severity(document, path),
        affected=_parse_affected(document, path),
        references=_parse_references(document, path),
        database_specific=_parse_database_specific(document, path),
        source_path=path,
    )


def _field(
    obj: Dict[str, Any],
    key: str,
    expected: Union[Type, Tuple[Type, ...]],
    path: Optional[str],
    where: str = "",
) -> Any:
    value = obj.get(key)
    if value is None:
        return None
    # bool is an int subclass; only accept it where a bool is asked for
    if not isinstance(value, expected) or (isinstance(value, bool) and expected is not bool):
        raise ParseError(
            f"field '{where}{key}' must be {_TYPE_NAMES.get(expected, expected)}, "
            f"got {type(value).__name__}",
            path,
        )
    return value


def _string_list(obj: Dict[str, Any], key: str, path: Optional[str], where: str = "") -> Optional[List[str]]:
    values = _field(obj, key, list, path, where)
    if values is None:
        return None
    for item in values:
        if not isinstance(item, str):
            raise ParseError(f"field '{where}{key}' must contain only strings", path)
    return list(values)


def _parse_severity(document: Dict[str, Any], path: Optional[str]) -> Optional[List[SeverityScore]]:
    entries = _field(document, "severity", list, path)
    if entries is None:
        return None

    scores = []
    for i, entry in enumerate(entries):
        where = f"severity[{i}]."
        if not isinstance(entry, dict):
            raise ParseError(f"field 'severity[{i}]' must be an object", path)
        score_type = _field(entry, "type", str, path, where)
        score = _field(entry, "score", str, path, where)
        if score_type is None or score is None:
            raise ParseError(f"field 'severity[{i}]' needs both 'type' and 'score'", path)
        scores.append(SeverityScore(type=score_type, score=score))
    return scores


def _parse_affected(document: Dict[str, Any], path: Optional[str]) -> Optional[List[AffectedEntry]]:
    entries = _field(document, "affected", list, path)
    if entries is None:
        return None

    affected = []
    for i, entry in enumerate(entries):
        where = f"affected[{i}]."
        if not isinstance(entry, dict):
            raise ParseError(f"field 'affected[{i}]' must be an object", path)

        package = _field(entry, "package", dict, path, where)
        if package is None:
            raise ParseError(f"missing required field '{where}package'", path)

        name = _field(package, "name", str, path, where + "package.")
        ecosystem = _field(package, "ecosystem", str, path, where + "package.")
        if not name or not ecosystem:
            raise ParseError(f"field '{where}package' needs both 'name' and 'ecosystem'", path)

        ranges = _field(entry, "ranges", list, path, where)
        if ranges is not None and not all(isinstance(r, dict) for r in ranges):
            raise ParseError(f"field '{where}ranges' must contain only objects", path)

        affected.append(AffectedEntry(
            package=Package(
                ecosystem=ecosystem,
                name=name,
                purl=_field(package, "purl", str, path, where + "package."),
            ),
            ranges=ranges,
            versions=_string_list(entry, "versions", path, where),
        ))
    return affected


def _parse_references(document: Dict[str, Any], path: Optional[str]) -> Optional[List[Reference]]:
    entries = _field(document, "references", list, path)
    if entries is None:
        return None

    references = []
    for entry in entries:
        if not isinstance(entry, dict):
            logger.debug("Ignoring non-object reference in %s: %r", path, entry)
            references.append(Reference(type=None, url=None))
            continue
        ref_type = entry.get("type")
        url = entry.get("url")
        references.append(Reference(
            type=ref_type if isinstance(ref_type, str) else None,
            url=url if isinstance(url, str) else None,
        ))
    return references


def _parse_database_specific(document: Dict[str, Any], path: Optional[str]) -> Optional[DatabaseSpecific]:
    block = _field(document, "database_specific", dict, path)
    if block is None:
        return None

    where = "database_specific."
    return DatabaseSpecific(
        severity=_field(block, "severity", str, path, where),
        cwe_ids=_string_list(block, "cwe_ids", path, where),
        github_reviewed=_field(block, "github_reviewed", bool, path, where),
        github_reviewed_at=_field(block, "github_reviewed_at", str, path, where),
        nvd_published_at=_field(block, "nvd_published_at", str, path, where),
    )
