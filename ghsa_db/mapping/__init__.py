"""Flattening of parsed advisories into table rows."""
from .row_mapper import (
    ADVISORY_COLUMNS,
    AFFECTED_PACKAGE_COLUMNS,
    AdvisoryRow,
    AffectedPackageRow,
    MappedAdvisory,
    map_advisory,
    to_json,
)

__all__ = [
    "ADVISORY_COLUMNS",
    "AFFECTED_PACKAGE_COLUMNS",
    "AdvisoryRow",
    "AffectedPackageRow",
    "MappedAdvisory",
    "map_advisory",
    "to_json",
]
