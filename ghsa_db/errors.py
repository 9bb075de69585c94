"""
Error taxonomy for the advisory importer.

Per-document errors (ReadError, ParseError, MappingError, RowConflictError)
are recoverable: the pipeline records them and moves on to the next document.
StoreError is fatal and aborts the run with nothing committed.
"""
from typing import Optional


class ImporterError(Exception):
    """Base class for importer errors that can be tied to a source document."""

    def __init__(self, cause: str, path: Optional[str] = None):
        self.cause = cause
        self.path = path
        super().__init__(f"{path}: {cause}" if path else cause)

    def __reduce__(self):
        # Errors travel back from worker processes; keep path and cause apart.
        return type(self), (self.cause, self.path)


class ReadError(ImporterError):
    """Raised when an advisory file cannot be read from disk."""


class ParseError(ImporterError):
    """Raised when a document is not a usable OSV advisory."""


class MappingError(ImporterError):
    """Raised when a parsed advisory cannot be flattened into rows."""


class RowConflictError(ImporterError):
    """Raised when an advisory ID was already written earlier in the run."""

    def __init__(self, ghsa: str, path: Optional[str] = None, first_path: Optional[str] = None):
        self.ghsa = ghsa
        self.first_path = first_path
        cause = f"duplicate advisory id {ghsa}"
        if first_path:
            cause += f" (first seen in {first_path})"
        super().__init__(cause, path)

    def __reduce__(self):
        return type(self), (self.ghsa, self.path, self.first_path)


class StoreError(ImporterError):
    """Raised when the destination store cannot be opened or written."""
