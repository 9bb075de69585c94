#!/usr/bin/env python3
"""
Main pipeline orchestrator for the advisory importer.

This module coordinates the whole import:
1. Store: Open the destination DuckDB file (fatal if it can't be opened)
2. Ingestion: Enumerate and read advisory documents from the corpus
3. Transformation: Parse, classify references and map rows per document
4. Loading: Replace the store content in one transaction
5. Quality: Run data quality checks on the written tables
6. Reporting: Print the run summary and optionally save a Markdown report

The orchestrator is designed to be:
- Idempotent: Re-running on an unchanged corpus rebuilds identical tables
- Tolerant: A bad document is reported and skipped, never fatal
- Parallel: Per-document work runs in a process pool, the write does not

Usage:
    python -m ghsa_db SOURCE_DIR DEST_DB [--config path/to/config.yaml]
"""
import argparse
import copy
import logging
import sys
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

import yaml

from ghsa_db.classification import ReferenceClassifier
from ghsa_db.errors import ImporterError, MappingError, ParseError, ReadError, StoreError
from ghsa_db.ingestion import DocumentLoader, RawDocument, parse_advisory
from ghsa_db.mapping import MappedAdvisory, map_advisory
from ghsa_db.observability import QualityChecker, RunMetrics, RunReporter
from ghsa_db.storage import Database, StoreWriter

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

DEFAULT_CONFIG: Dict[str, Any] = {
    "source": {
        "path": None,
        "pattern": "**/*.json",
    },
    "database": {
        "path": "ghsa.duckdb",
        "insert_batch_size": 5000,
    },
    "pipeline": {
        "workers": 1,
        "batch_size": 1000,
        "failure_log_limit": 20,
        "quality_checks": True,
    },
    "classification": {
        "tag_kinds": None,
        "extra_patterns": [],
    },
    "report": {
        "output_dir": None,
    },
    "logging": {
        "level": "INFO",
    },
}


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration, merged over the built-in defaults.

    Args:
        config_path: Path to YAML configuration file, or None for defaults only

    Raises:
        FileNotFoundError: If config_path doesn't exist
        ValueError: If the file is not a YAML mapping
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    if config_path is None:
        return config

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path) as f:
        loaded = yaml.safe_load(f) or {}

    if not isinstance(loaded, dict):
        raise ValueError(f"Config file must contain a mapping: {config_path}")

    return _merge(config, loaded)


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


@dataclass
class DocumentOutcome:
    """Result of processing one document in a worker."""
    mapped: Optional[MappedAdvisory] = None
    error: Optional[ImporterError] = None
    ecosystems: Optional[List[str]] = None
    commits: int = 0
    pull_requests: int = 0


def process_document(document: RawDocument, classifier: ReferenceClassifier) -> DocumentOutcome:
    """
    Parse, classify and map one document.

    Runs in worker processes, so it must stay a module-level function and
    return instead of raise for per-document errors.
    """
    try:
        advisory = parse_advisory(document.payload, document.path)
        references = classifier.classify(advisory.references)
        mapped = map_advisory(advisory, references)
    except (ParseError, MappingError) as e:
        return DocumentOutcome(error=e)
    except Exception as e:
        return DocumentOutcome(error=MappingError(f"unexpected {type(e).__name__}: {e}", document.path))
    return DocumentOutcome(
        mapped=mapped,
        ecosystems=advisory.ecosystems,
        commits=len(references.commits),
        pull_requests=len(references.pull_requests),
    )


def _batched(items: Iterable[RawDocument], size: int) -> Iterator[List[RawDocument]]:
    batch: List[RawDocument] = []
    for item in items:
        batch.append(item)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch


class ImportPipeline:
    """
    Main pipeline orchestrator that coordinates all stages.

    The pipeline follows a strict execution order:
    1. Open the destination database
    2. Read, parse and map every document (optionally in parallel)
    3. Write all rows in one transaction
    4. Run quality checks
    5. Generate reports

    Design decisions:
    - Single run_id tracks entire execution
    - Per-document errors are collected, only StoreError aborts the run
    - The coordinating process is the only writer
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize pipeline with configuration.

        Args:
            config: Merged configuration (see DEFAULT_CONFIG)

        Raises:
            ValueError: If required settings are missing or invalid
        """
        self.config = config

        for key in ("source", "database", "pipeline"):
            if key not in self.config:
                raise ValueError(f"Missing required config key: {key}")
        if not self.config["source"].get("path"):
            raise ValueError("Missing source directory (source.path)")
        if not self.config["database"].get("path"):
            raise ValueError("Missing destination database (database.path)")

        pipeline_cfg = self.config["pipeline"]
        self.workers = int(pipeline_cfg.get("workers") or 1)
        self.batch_size = int(pipeline_cfg.get("batch_size") or 1000)
        self.failure_log_limit = int(pipeline_cfg.get("failure_log_limit", 20))
        if self.workers < 1 or self.batch_size < 1:
            raise ValueError("pipeline.workers and pipeline.batch_size must be positive")

        self.classifier = ReferenceClassifier.from_config(self.config.get("classification"))
        self.db = Database(self.config["database"]["path"])
        self.writer = StoreWriter(self.db, batch_size=int(self.config["database"].get("insert_batch_size", 5000)))
        self.reporter = RunReporter()

        logger.info(f"Pipeline initialized: {self.config['source']['path']} -> {self.db.db_path}")

    def run(self) -> RunMetrics:
        """
        Execute a complete import run.

        Returns:
            RunMetrics object with execution statistics

        Raises:
            StoreError: If the destination cannot be opened or written
            ReadError: If the source directory doesn't exist
        """
        run_id = f"run_{datetime.utcnow().strftime('%Y%m%d_%H%M%S')}"
        metrics = RunMetrics(run_id=run_id, started_at=datetime.utcnow())

        logger.info(f"=== Starting Import Run: {run_id} ===")

        try:
            logger.info("Stage 1: Opening destination store")
            self.db.connect()

            logger.info("Stage 2: Reading and mapping advisory documents")
            mapped = self._collect(metrics)
            logger.info(
                f"  {metrics.documents_parsed} of {metrics.documents_seen} documents mapped, "
                f"{metrics.documents_skipped} skipped"
            )

            logger.info("Stage 3: Writing store")
            result = self.writer.write(mapped)
            metrics.advisories_written = result.advisories_written
            metrics.packages_written = result.packages_written
            for conflict in result.conflicts:
                metrics.record_failure(conflict)

            quality_results = []
            if self.config["pipeline"].get("quality_checks", True):
                logger.info("Stage 4: Running quality checks")
                quality_results = QualityChecker(self.db).run_all_checks()
                for qr in quality_results:
                    if not qr.passed:
                        logger.warning(f"  Quality check {qr.check_name} failed: {qr.message}")

            metrics.completed_at = datetime.utcnow()

            output_dir = (self.config.get("report") or {}).get("output_dir")
            if output_dir:
                logger.info("Stage 5: Generating report")
                report = self.reporter.generate_report(metrics, quality_results)
                report_path = self.reporter.save_report(report, Path(output_dir))
                logger.info(f"Report: {report_path}")

            duration = (metrics.completed_at - metrics.started_at).total_seconds()
            logger.info("=== Import Complete ===")
            logger.info(f"Duration: {duration:.1f}s")
            logger.info(f"Advisories: {metrics.advisories_written}")
            logger.info(f"Skipped documents: {metrics.documents_skipped}")

        except StoreError as e:
            logger.exception(f"Import aborted, store left unchanged: {e}")
            raise

        finally:
            self.db.close()

        return metrics

    def _collect(self, metrics: RunMetrics) -> List[MappedAdvisory]:
        """
        Read, parse and map all documents in path order.

        Args:
            metrics: RunMetrics to update

        Returns:
            Mapped advisories in document order
        """
        def on_read_error(error: ReadError):
            metrics.documents_seen += 1
            self._record_failure(metrics, error)

        loader = DocumentLoader(
            self.config["source"]["path"],
            pattern=self.config["source"].get("pattern") or "**/*.json",
            on_error=on_read_error,
        )
        worker = partial(process_document, classifier=self.classifier)
        mapped: List[MappedAdvisory] = []

        executor = ProcessPoolExecutor(max_workers=self.workers) if self.workers > 1 else None
        try:
            for batch in _batched(loader.iter_documents(), self.batch_size):
                metrics.documents_seen += len(batch)
                if executor is not None:
                    chunksize = max(1, len(batch) // (self.workers * 4))
                    outcomes = executor.map(worker, batch, chunksize=chunksize)
                else:
                    outcomes = map(worker, batch)

                for outcome in outcomes:
                    if outcome.error is not None:
                        self._record_failure(metrics, outcome.error)
                        continue
                    mapped.append(outcome.mapped)
                    metrics.record_advisory(outcome.ecosystems, outcome.commits, outcome.pull_requests)

                logger.debug(f"  {metrics.documents_seen} documents processed")
        finally:
            if executor is not None:
                executor.shutdown()

        return mapped

    def _record_failure(self, metrics: RunMetrics, error: ImporterError):
        metrics.record_failure(error)
        if metrics.documents_skipped <= self.failure_log_limit:
            logger.warning(f"  Skipping {error.path}: {type(error).__name__}: {error.cause}")
        elif metrics.documents_skipped == self.failure_log_limit + 1:
            logger.warning("  Further skipped documents are listed in the run summary only")


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Import an OSV advisory corpus into a DuckDB database"
    )
    parser.add_argument("source", nargs="?", help="Directory containing OSV JSON documents")
    parser.add_argument("destination", nargs="?", help="Path of the DuckDB database to (re)build")
    parser.add_argument("--config", help="Path to YAML configuration file")
    parser.add_argument("--workers", type=int, help="Worker processes for parsing (default: 1)")
    parser.add_argument("--report-dir", help="Directory to save a Markdown run report in")
    parser.add_argument("--log-level", help="Logging level (default: INFO)")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    if args.source:
        config["source"]["path"] = args.source
    if args.destination:
        config["database"]["path"] = args.destination
    if args.workers is not None:
        config["pipeline"]["workers"] = args.workers
    if args.report_dir:
        config["report"]["output_dir"] = args.report_dir
    if args.log_level:
        config["logging"]["level"] = args.log_level

    logging.basicConfig(
        level=str(config["logging"].get("level", "INFO")).upper(),
        format=LOG_FORMAT
    )

    try:
        pipeline = ImportPipeline(config)
        metrics = pipeline.run()
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1
    except (StoreError, ReadError) as e:
        logger.error(f"Import failed: {e}")
        return 1

    reporter = pipeline.reporter
    print(reporter.summary_line(metrics))
    for line in reporter.failure_lines(metrics):
        print(line, file=sys.stderr)

    return 0


if __name__ == "__main__":
    sys.exit(main())
