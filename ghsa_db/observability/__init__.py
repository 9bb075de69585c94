"""
Observability layer for the advisory importer.

This module provides metrics collection, quality checks, and reporting
for import runs.

Main exports:
- RunMetrics: Tracks metrics for an import run
- DocumentFailure: One skipped document with its cause
- QualityChecker: Runs data quality checks
- QualityCheckResult: Result of a quality check
- RunReporter: Generates Markdown and console reports
"""
from .metrics import DocumentFailure, RunMetrics
from .quality_checks import QualityChecker, QualityCheckResult
from .reporter import RunReporter

__all__ = [
    "DocumentFailure",
    "RunMetrics",
    "QualityChecker",
    "QualityCheckResult",
    "RunReporter",
]
