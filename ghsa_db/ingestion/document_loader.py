"""
Document loader for a local OSV advisory corpus.

Walks a directory tree (for example a checkout of the GitHub Advisory
Database) and yields the raw bytes of every advisory document. Parsing is
left to the caller so it can run in worker processes.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, Optional, Union

from ghsa_db.errors import ReadError

logger = logging.getLogger(__name__)

DEFAULT_PATTERN = "**/*.json"


@dataclass
class RawDocument:
    """One advisory file as read from disk."""
    path: str
    payload: bytes


@dataclass
class LoaderHealth:
    """Read statistics for the last enumeration."""
    root: str
    last_scan: Optional[datetime]
    documents_read: int
    read_errors: int


class DocumentLoader:
    """
    Enumerates advisory documents under a root directory.

    Files are visited in lexical path order so that failure reports are
    reproducible between runs. A file that cannot be read is handed to
    ``on_error`` as a ReadError and skipped.
    """

    def __init__(
        self,
        root: Union[str, Path],
        pattern: str = DEFAULT_PATTERN,
        on_error: Optional[Callable[[ReadError], None]] = None,
    ):
        self.root = Path(root)
        self.pattern = pattern
        self.on_error = on_error
        self._last_scan: Optional[datetime] = None
        self._documents_read = 0
        self._read_errors = 0

    def iter_documents(self) -> Iterator[RawDocument]:
        """
        Yield every matching document under the root.

        Raises:
            ReadError: If the root itself is missing or not a directory
        """
        if not self.root.is_dir():
            raise ReadError("source directory does not exist or is not a directory", str(self.root))

        self._last_scan = datetime.utcnow()
        self._documents_read = 0
        self._read_errors = 0

        for path in sorted(p for p in self.root.glob(self.pattern) if p.is_file()):
            try:
                payload = path.read_bytes()
            except OSError as e:
                self._report(ReadError(f"{type(e).__name__}: {e.strerror or e}", str(path)))
                continue

            self._documents_read += 1
            yield RawDocument(path=str(path), payload=payload)

    def __iter__(self) -> Iterator[RawDocument]:
        return self.iter_documents()

    def get_health(self) -> LoaderHealth:
        return LoaderHealth(
            root=str(self.root),
            last_scan=self._last_scan,
            documents_read=self._documents_read,
            read_errors=self._read_errors,
        )

    def _report(self, error: ReadError) -> None:
        self._read_errors += 1
        if self.on_error is not None:
            self.on_error(error)
        else:
            logger.warning("Skipping unreadable file %s", error)
