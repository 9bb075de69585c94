"""
Shared pytest fixtures for advisory importer tests.

This module provides reusable fixtures that simplify test setup
and reduce code duplication across test modules.
"""
import copy
import json
from pathlib import Path

import pytest

from ghsa_db.storage import Database

GHSA_DOCUMENT = {
    "schema_version": "1.4.0",
    "id": "GHSA-2x8x-jmrp-phxw",
    "modified": "2024-02-16T08:20:31Z",
    "published": "2023-11-03T18:30:38Z",
    "aliases": ["CVE-2023-46136"],
    "summary": "Werkzeug DoS: High resource usage when parsing multipart/form-data",
    "details": "Werkzeug multipart data parser needs to find a boundary ...",
    "severity": [
        {"type": "CVSS_V3", "score": "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:N/I:N/A:H"}
    ],
    "affected": [
        {
            "package": {"ecosystem": "PyPI", "name": "werkzeug"},
            "ranges": [
                {"type": "ECOSYSTEM", "events": [{"introduced": "0"}, {"fixed": "2.3.8"}]}
            ],
        },
        {
            "package": {"ecosystem": "PyPI", "name": "werkzeug"},
            "ranges": [
                {"type": "ECOSYSTEM", "events": [{"introduced": "3.0.0"}, {"fixed": "3.0.1"}]}
            ],
            "versions": ["3.0.0"],
        },
    ],
    "references": [
        {"type": "WEB", "url": "https://github.com/pallets/werkzeug/security/advisories/GHSA-hrfv-mqp8-q5rw"},
        {"type": "ADVISORY", "url": "https://nvd.nist.gov/vuln/detail/CVE-2023-46136"},
        {"type": "WEB", "url": "https://github.com/pallets/werkzeug/commit/f2300208d5e2a5076cbbb4c2aad71096fd1c5f37"},
        {"type": "WEB", "url": "https://github.com/pallets/werkzeug/pull/2797"},
        {"type": "PACKAGE", "url": "https://github.com/pallets/werkzeug"},
    ],
    "database_specific": {
        "cwe_ids": ["CWE-400", "CWE-407"],
        "severity": "HIGH",
        "github_reviewed": True,
        "github_reviewed_at": "2023-11-03T18:30:38Z",
        "nvd_published_at": "2023-10-25T18:17:37Z",
    },
}


def make_document(**overrides):
    """
    Build an OSV document based on GHSA_DOCUMENT.

    Keyword arguments replace top-level fields; a value of None removes the field.
    """
    document = copy.deepcopy(GHSA_DOCUMENT)
    for key, value in overrides.items():
        if value is None:
            document.pop(key, None)
        else:
            document[key] = value
    return document


def encode(document) -> bytes:
    return json.dumps(document).encode("utf-8")


@pytest.fixture
def sample_document():
    """A complete GitHub-reviewed advisory as a dict."""
    return make_document()


@pytest.fixture
def temp_db(tmp_path):
    """
    Create a temporary database for testing.

    Yields:
        Database instance with schema initialized

    Cleanup:
        Closes the connection; tmp_path removes the file
    """
    db = Database(str(tmp_path / "test.duckdb"))
    db.initialize_schema()
    yield db
    db.close()


@pytest.fixture
def corpus_dir(tmp_path):
    """
    Build an on-disk corpus laid out like the GitHub Advisory Database.

    Returns:
        Function taking {relative_path: document dict | bytes} and returning
        the corpus root
    """
    root = tmp_path / "advisory-database"

    def build(files):
        for relative, content in files.items():
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content if isinstance(content, bytes) else encode(content))
        root.mkdir(parents=True, exist_ok=True)
        return root

    return build


def reviewed_path(ghsa: str, year: str = "2023", month: str = "11") -> str:
    return f"advisories/github-reviewed/{year}/{month}/{ghsa}/{ghsa}.json"


def fetch_tables(db_path):
    """Return both tables as ordered row lists, for content comparisons."""
    db = Database(str(db_path))
    try:
        conn = db.connect()
        advisories = conn.execute("SELECT * FROM advisories ORDER BY ghsa").fetchall()
        packages = conn.execute("""
            SELECT * FROM affected_packages
            ORDER BY ghsa, ecosystem, name, ranges, versions
        """).fetchall()
    finally:
        db.close()
    return advisories, packages


@pytest.fixture
def db_path(tmp_path) -> Path:
    return tmp_path / "ghsa.duckdb"
