"""
End-to-end integration tests for the advisory importer.

These tests run the whole pipeline against small on-disk corpora and check
the resulting DuckDB file, the run metrics and the CLI exit codes.
"""
import json

import pytest

from ghsa_db import run_pipeline
from ghsa_db.errors import ReadError, StoreError
from ghsa_db.run_pipeline import ImportPipeline, load_config, main
from ghsa_db.storage import Database, StoreWriter
from ghsa_db.tests.conftest import fetch_tables, make_document, reviewed_path


def pipeline_for(source, destination, **pipeline_overrides):
    config = load_config()
    config["source"]["path"] = str(source)
    config["database"]["path"] = str(destination)
    config["pipeline"].update(pipeline_overrides)
    return ImportPipeline(config)


@pytest.fixture
def mixed_corpus(corpus_dir):
    """Three good advisories, one without modified and one duplicate id."""
    return corpus_dir({
        reviewed_path("GHSA-aaaa-aaaa-aaaa", month="01"): make_document(id="GHSA-aaaa-aaaa-aaaa"),
        reviewed_path("GHSA-bbbb-bbbb-bbbb", month="02"): make_document(
            id="GHSA-bbbb-bbbb-bbbb",
            affected=[{"package": {"ecosystem": "npm", "name": "left-pad"}}],
            references=[{"type": "WEB", "url": "https://github.com/o/r/pull/42"}],
        ),
        reviewed_path("GHSA-cccc-cccc-cccc", month="03"): make_document(
            id="GHSA-cccc-cccc-cccc", affected=None, references=None,
        ),
        reviewed_path("GHSA-dddd-dddd-dddd", month="04"): make_document(
            id="GHSA-dddd-dddd-dddd", modified=None,
        ),
        reviewed_path("GHSA-aaaa-aaaa-aaaa", month="05"): make_document(
            id="GHSA-aaaa-aaaa-aaaa", summary="later duplicate",
        ),
    })


class TestEndToEndPipeline:
    """Integration tests for complete pipeline flow."""

    def test_full_pipeline_flow(self, mixed_corpus, db_path):
        """
        Test complete pipeline: read -> parse -> classify -> map -> write.

        This validates the happy path plus both recoverable failure kinds.
        """
        metrics = pipeline_for(mixed_corpus, db_path).run()

        assert metrics.documents_seen == 5
        assert metrics.documents_parsed == 4
        assert metrics.advisories_written == 3
        assert metrics.packages_written == 3
        assert metrics.error_counts == {"ParseError": 1, "RowConflictError": 1}
        assert metrics.completed_at is not None

        advisories, packages = fetch_tables(db_path)
        assert [a[0] for a in advisories] == [
            "GHSA-aaaa-aaaa-aaaa", "GHSA-bbbb-bbbb-bbbb", "GHSA-cccc-cccc-cccc",
        ]
        assert {p[0] for p in packages} == {"GHSA-aaaa-aaaa-aaaa", "GHSA-bbbb-bbbb-bbbb"}

    def test_missing_modified_contributes_no_rows(self, mixed_corpus, db_path):
        metrics = pipeline_for(mixed_corpus, db_path).run()

        failure = next(f for f in metrics.failures if f.error_type == "ParseError")
        assert failure.path.endswith("GHSA-dddd-dddd-dddd.json")
        assert "modified" in failure.cause

        with Database(str(db_path)) as db:
            conn = db.connect()
            assert conn.execute(
                "SELECT count(*) FROM advisories WHERE ghsa = 'GHSA-dddd-dddd-dddd'"
            ).fetchone()[0] == 0
            assert conn.execute(
                "SELECT count(*) FROM affected_packages WHERE ghsa = 'GHSA-dddd-dddd-dddd'"
            ).fetchone()[0] == 0

    def test_first_duplicate_wins(self, mixed_corpus, db_path):
        metrics = pipeline_for(mixed_corpus, db_path).run()

        conflict = next(f for f in metrics.failures if f.error_type == "RowConflictError")
        assert "/2023/05/" in conflict.path

        with Database(str(db_path)) as db:
            summary = db.connect().execute(
                "SELECT summary FROM advisories WHERE ghsa = 'GHSA-aaaa-aaaa-aaaa'"
            ).fetchone()[0]
        assert summary != "later duplicate"

    def test_rows_satisfy_schema_invariants(self, mixed_corpus, db_path):
        pipeline_for(mixed_corpus, db_path).run()
        advisories, packages = fetch_tables(db_path)

        ids = [a[0] for a in advisories]
        assert all(ghsa for ghsa in ids)
        assert all(a[2] is not None for a in advisories)
        for package in packages:
            assert ids.count(package[0]) == 1

    def test_reference_columns(self, mixed_corpus, db_path):
        pipeline_for(mixed_corpus, db_path).run()

        with Database(str(db_path)) as db:
            rows = dict(
                (r[0], r[1:]) for r in db.connect().execute(
                    "SELECT ghsa, ref_commits, ref_pull_requests FROM advisories"
                ).fetchall()
            )

        assert rows["GHSA-bbbb-bbbb-bbbb"] == (None, json.dumps(["https://github.com/o/r/pull/42"]))
        assert rows["GHSA-cccc-cccc-cccc"] == (None, None)
        assert len(json.loads(rows["GHSA-aaaa-aaaa-aaaa"][0])) == 1

    def test_rerun_is_idempotent(self, mixed_corpus, db_path):
        pipeline_for(mixed_corpus, db_path).run()
        first = fetch_tables(db_path)

        pipeline_for(mixed_corpus, db_path).run()
        second = fetch_tables(db_path)

        assert first == second

    def test_parallel_run_matches_serial(self, mixed_corpus, tmp_path):
        serial = tmp_path / "serial.duckdb"
        parallel = tmp_path / "parallel.duckdb"

        serial_metrics = pipeline_for(mixed_corpus, serial).run()
        parallel_metrics = pipeline_for(mixed_corpus, parallel, workers=2, batch_size=2).run()

        assert fetch_tables(serial) == fetch_tables(parallel)
        assert [str(f) for f in serial_metrics.failures] == [str(f) for f in parallel_metrics.failures]

    def test_empty_corpus_writes_empty_tables(self, corpus_dir, db_path):
        metrics = pipeline_for(corpus_dir({}), db_path).run()

        assert metrics.documents_seen == 0
        assert fetch_tables(db_path) == ([], [])

    def test_deeply_nested_document_is_skipped(self, corpus_dir, db_path):
        root = corpus_dir({
            reviewed_path("GHSA-aaaa-aaaa-aaaa"): make_document(id="GHSA-aaaa-aaaa-aaaa"),
            reviewed_path("GHSA-nest-nest-nest"): b"[" * 100000 + b"]" * 100000,
        })

        metrics = pipeline_for(root, db_path).run()

        assert metrics.advisories_written == 1
        assert metrics.error_counts == {"ParseError": 1}
        assert metrics.failures[0].path.endswith("GHSA-nest-nest-nest.json")
        assert len(fetch_tables(db_path)[0]) == 1

    def test_unexpected_document_error_is_skipped(self, mixed_corpus, db_path, monkeypatch):
        real_map_advisory = run_pipeline.map_advisory

        def flaky_map_advisory(advisory, references):
            if advisory.id == "GHSA-bbbb-bbbb-bbbb":
                raise KeyError("ranges")
            return real_map_advisory(advisory, references)

        monkeypatch.setattr(run_pipeline, "map_advisory", flaky_map_advisory)

        metrics = pipeline_for(mixed_corpus, db_path).run()

        assert metrics.advisories_written == 2
        failure = next(f for f in metrics.failures if f.error_type == "MappingError")
        assert failure.path.endswith("GHSA-bbbb-bbbb-bbbb.json")
        assert "KeyError" in failure.cause

    def test_report_is_saved(self, mixed_corpus, db_path, tmp_path):
        pipeline = pipeline_for(mixed_corpus, db_path)
        pipeline.config["report"]["output_dir"] = str(tmp_path / "reports")

        pipeline.run()

        reports = list((tmp_path / "reports").glob("import-report-*.md"))
        assert len(reports) == 1
        assert "GHSA-dddd-dddd-dddd.json" in reports[0].read_text()


class TestFatalErrors:
    """Only store-level problems abort a run."""

    def test_unopenable_store_aborts(self, mixed_corpus, tmp_path):
        destination = tmp_path / "a-directory"
        destination.mkdir()

        with pytest.raises(StoreError):
            pipeline_for(mixed_corpus, destination).run()

    def test_missing_source_aborts(self, tmp_path, db_path):
        with pytest.raises(ReadError):
            pipeline_for(tmp_path / "missing", db_path).run()

    def test_failed_write_keeps_previous_store(self, mixed_corpus, db_path, monkeypatch):
        pipeline_for(mixed_corpus, db_path).run()
        before = fetch_tables(db_path)

        def broken_insert(self, conn, statement, rows, table):
            if table == "affected_packages":
                conn.execute("INSERT INTO affected_packages (ghsa, name, ecosystem) VALUES ('x', NULL, 'npm')")
            conn.executemany(statement, rows)

        monkeypatch.setattr(StoreWriter, "_insert", broken_insert)

        with pytest.raises(StoreError):
            pipeline_for(mixed_corpus, db_path).run()

        assert fetch_tables(db_path) == before

    def test_invalid_classification_config(self, mixed_corpus, db_path):
        config = load_config()
        config["source"]["path"] = str(mixed_corpus)
        config["database"]["path"] = str(db_path)
        config["classification"]["extra_patterns"] = [{"kind": "tag", "pattern": "/x/"}]

        with pytest.raises(ValueError):
            ImportPipeline(config)


class TestCommandLine:

    def test_success_exit_code_and_output(self, mixed_corpus, db_path, capsys):
        exit_code = main([str(mixed_corpus), str(db_path)])

        captured = capsys.readouterr()
        assert exit_code == 0
        assert "5 documents processed, 2 skipped, 3 advisories" in captured.out
        err_lines = [line for line in captured.err.splitlines() if line.startswith(str(mixed_corpus))]
        assert len(err_lines) == 2
        assert ": ParseError: " in err_lines[0]
        assert ": RowConflictError: " in err_lines[1]

    def test_store_failure_exit_code(self, mixed_corpus, tmp_path):
        destination = tmp_path / "dir"
        destination.mkdir()

        assert main([str(mixed_corpus), str(destination)]) == 1

    def test_missing_source_exit_code(self, tmp_path, db_path):
        assert main([str(tmp_path / "missing"), str(db_path)]) == 1

    def test_config_file(self, mixed_corpus, db_path, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text(
            "source:\n"
            f"  path: {mixed_corpus}\n"
            "database:\n"
            f"  path: {db_path}\n"
            "pipeline:\n"
            "  quality_checks: false\n"
        )

        assert main(["--config", str(config_path)]) == 0
        assert len(fetch_tables(db_path)[0]) == 3

    def test_missing_config_file(self, tmp_path):
        assert main(["--config", str(tmp_path / "nope.yaml")]) == 1

    def test_missing_paths(self):
        assert main([]) == 1
