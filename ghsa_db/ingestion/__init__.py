"""
Ingestion layer for the advisory importer.

Provides enumeration of a local OSV corpus and parsing of its documents:
- DocumentLoader: walks the corpus directory and yields raw documents
- parse_advisory: turns one document into a typed Advisory
"""
from .document_loader import DocumentLoader, LoaderHealth, RawDocument
from .osv_parser import (
    Advisory,
    AffectedEntry,
    DatabaseSpecific,
    Package,
    Reference,
    SeverityScore,
    parse_advisory,
)

__all__ = [
    "Advisory",
    "AffectedEntry",
    "DatabaseSpecific",
    "DocumentLoader",
    "LoaderHealth",
    "Package",
    "RawDocument",
    "Reference",
    "SeverityScore",
    "parse_advisory",
]
