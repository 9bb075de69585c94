"""
Generate human-readable run reports.

This module provides RunReporter, which turns RunMetrics and quality check
results into:
- A Markdown report (summary, errors by type, top ecosystems, quality
  checks, skipped documents)
- The console summary: one count line followed by one line per skipped
  document

Design decisions:
- Uses tabulate library for table formatting (GitHub-flavored)
- Reports saved with timestamp for historical tracking
"""
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from tabulate import tabulate

from .metrics import RunMetrics
from .quality_checks import QualityCheckResult

TOP_ECOSYSTEMS = 15


class RunReporter:
    """Generates Markdown and console reports from import run metrics."""

    def generate_report(
        self,
        metrics: RunMetrics,
        quality_results: Optional[List[QualityCheckResult]] = None
    ) -> str:
        """
        Generate full run report in Markdown format.

        Args:
            metrics: RunMetrics object from completed run
            quality_results: Quality check results, if the checks ran

        Returns:
            Markdown-formatted report as string
        """
        lines = []

        lines.append("# Advisory Import Report")
        lines.append(f"**Run ID:** {metrics.run_id}")
        lines.append(f"**Started:** {metrics.started_at.isoformat()}")
        if metrics.completed_at:
            duration = (metrics.completed_at - metrics.started_at).total_seconds()
            lines.append(f"**Duration:** {duration:.1f} seconds")
        lines.append("")

        lines.append("## Summary")
        summary_data = [
            ["Documents Seen", metrics.documents_seen],
            ["Documents Parsed", metrics.documents_parsed],
            ["Documents Skipped", metrics.documents_skipped],
            ["Advisories Written", metrics.advisories_written],
            ["Affected Packages Written", metrics.packages_written],
            ["Commit References", metrics.commit_refs],
            ["Pull Request References", metrics.pull_request_refs],
        ]
        lines.append(tabulate(summary_data, headers=["Metric", "Value"], tablefmt="github"))
        lines.append("")

        if metrics.error_counts:
            lines.append("## Errors by Type")
            error_data = [[k, v] for k, v in sorted(metrics.error_counts.items())]
            lines.append(tabulate(error_data, headers=["Error", "Count"], tablefmt="github"))
            lines.append("")

        if metrics.ecosystem_counts:
            lines.append("## Top Ecosystems")
            ranked = sorted(metrics.ecosystem_counts.items(), key=lambda kv: (-kv[1], kv[0]))
            lines.append(tabulate(
                [[k, v] for k, v in ranked[:TOP_ECOSYSTEMS]],
                headers=["Ecosystem", "Advisories"],
                tablefmt="github",
            ))
            lines.append("")

        if quality_results:
            lines.append("## Data Quality Checks")
            quality_data = []
            for qr in quality_results:
                status = "✓" if qr.passed else "✗"
                quality_data.append([status, qr.check_name, qr.message])
            lines.append(tabulate(quality_data, headers=["Status", "Check", "Details"], tablefmt="github"))
            lines.append("")

        if metrics.failures:
            lines.append("## Skipped Documents")
            failure_data = [[f.path, f.error_type, f.cause] for f in metrics.failures]
            lines.append(tabulate(failure_data, headers=["Path", "Error", "Cause"], tablefmt="github"))
            lines.append("")

        return "\n".join(lines)

    def save_report(self, report: str, output_dir: Path) -> Path:
        """
        Save report to file with timestamp.

        Args:
            report: Markdown report content
            output_dir: Directory to save report in

        Returns:
            Path to saved report file
        """
        output_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.utcnow().strftime("%Y%m%d-%H%M%S")
        filepath = output_dir / f"import-report-{timestamp}.md"
        filepath.write_text(report)
        return filepath

    def summary_line(self, metrics: RunMetrics) -> str:
        return (
            f"{metrics.documents_seen} documents processed, "
            f"{metrics.documents_skipped} skipped, "
            f"{metrics.advisories_written} advisories and "
            f"{metrics.packages_written} affected packages written"
        )

    def failure_lines(self, metrics: RunMetrics) -> List[str]:
        return [str(failure) for failure in metrics.failures]
