"""
ghsa-db: load an OSV advisory corpus into a DuckDB database.

Pipeline stages live in subpackages:
- ingestion: corpus enumeration and OSV parsing
- classification: commit / pull request reference classification
- mapping: flattening advisories into table rows
- storage: DuckDB schema and the all-or-nothing writer
- observability: run metrics, quality checks and reports
"""

__version__ = "0.1.0"
