"""Tests for guarded INSERT/UPDATE/DELETE.

Covers:
- Flag gating (no flag, --dry-run, --write)
- Preview/write parity
- Backups and byte preservation of untouched lines
- Rejections: missing WHERE, read-only tables and columns, unsupported clauses
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from devsql.catalog.builders import build_assistant_catalog
from devsql.config.models import SourcesConfig
from devsql.core.errors import (
    CatalogError,
    ErrorCode,
    MutationRejected,
    ParseError,
    TypeMismatchError,
)
from devsql.mutation.ops import LINE_COLUMN, SUMMARY_COLUMNS, MutationGuard, Outcome


def run(
    sources: SourcesConfig,
    sql: str,
    *,
    dry_run: bool = False,
    write: bool = False,
    require_where: bool = True,
) -> tuple[Outcome, list[tuple[object, ...]]]:
    """Run one statement in a fresh guard and drain its stream."""
    with MutationGuard(build_assistant_catalog(sources), require_where=require_where) as guard:
        outcome = guard.run(sql, dry_run=dry_run, write=write)
        rows = list(outcome.stream)
    return outcome, rows


def history_path(sources: SourcesConfig) -> Path:
    return sources.data_dir / "history.jsonl"


def backups(path: Path) -> list[Path]:
    return sorted(path.parent.glob(f"{path.name}.*.bak"))


class TestFlagGating:
    """Mutations never run without an explicit flag."""

    def test_select_passes_through(self, sources: SourcesConfig) -> None:
        outcome, rows = run(sources, "SELECT COUNT(*) FROM history")
        assert rows == [(3,)]
        assert outcome.mutation is None

    def test_no_flag_is_rejected(self, sources: SourcesConfig) -> None:
        before = history_path(sources).read_bytes()
        with pytest.raises(MutationRejected) as exc_info:
            run(sources, "DELETE FROM history WHERE project = '/work/app'")
        assert exc_info.value.code is ErrorCode.MUTATION_NO_FLAG
        assert exc_info.value.exit_code == 5
        assert history_path(sources).read_bytes() == before
        assert backups(history_path(sources)) == []

    def test_type_error_reported_before_flag_check(self, sources: SourcesConfig) -> None:
        with pytest.raises(TypeMismatchError):
            run(sources, "DELETE FROM history WHERE timestamp = 'yesterday'")

    def test_dry_run_wins_over_write(self, sources: SourcesConfig) -> None:
        before = history_path(sources).read_bytes()
        outcome, _ = run(
            sources, "DELETE FROM history WHERE project = '/work/app'", dry_run=True, write=True
        )
        assert outcome.mutation is not None
        assert outcome.mutation.dry_run
        assert not outcome.mutation.applied
        assert history_path(sources).read_bytes() == before

    def test_unsupported_statement(self, sources: SourcesConfig) -> None:
        with pytest.raises(MutationRejected) as exc_info:
            run(sources, "DROP TABLE history", write=True)
        assert exc_info.value.code is ErrorCode.MUTATION_UNSUPPORTED_STATEMENT


class TestDelete:
    """DELETE with --write and --dry-run."""

    def test_write_removes_rows_and_keeps_backup(self, sources: SourcesConfig) -> None:
        path = history_path(sources)
        original = path.read_bytes()

        outcome, rows = run(sources, "DELETE FROM history WHERE project = '/work/app'", write=True)

        remaining = path.read_text().splitlines()
        assert len(remaining) == 1
        assert json.loads(remaining[0])["display"] == "write docs"

        assert outcome.stream.columns == SUMMARY_COLUMNS
        assert outcome.mutation is not None
        assert outcome.mutation.rows_affected == 2
        assert outcome.mutation.applied
        [backup] = backups(path)
        assert backup.read_bytes() == original
        assert rows == [("DELETE", "history", 2, str(backup), str(path))]

    def test_dry_run_previews_without_writing(self, sources: SourcesConfig) -> None:
        path = history_path(sources)
        original = path.read_bytes()

        outcome, rows = run(
            sources, "DELETE FROM history WHERE project = '/work/app'", dry_run=True
        )

        assert outcome.stream.columns[0] == LINE_COLUMN
        assert [r[0] for r in rows] == [1, 2]
        assert [r[1] for r in rows] == ["fix the login bug", "add tests"]
        assert path.read_bytes() == original
        assert backups(path) == []

    def test_dry_run_matches_write(self, sources: SourcesConfig) -> None:
        sql = "DELETE FROM history WHERE session_id = 's1' AND timestamp > 1700000050000"
        preview, preview_rows = run(sources, sql, dry_run=True)
        applied, _ = run(sources, sql, write=True)
        assert preview.mutation is not None
        assert applied.mutation is not None
        assert preview.mutation.rows_affected == applied.mutation.rows_affected == 1
        assert [r[0] for r in preview_rows] == [2]

    def test_with_clause_feeds_where(self, sources: SourcesConfig) -> None:
        path = history_path(sources)

        outcome, _ = run(
            sources,
            "WITH x AS (SELECT 'write docs' AS v) "
            "DELETE FROM history WHERE display IN (SELECT v FROM x)",
            write=True,
        )

        assert outcome.mutation is not None
        assert outcome.mutation.rows_affected == 1
        displays = [json.loads(line)["display"] for line in path.read_text().splitlines()]
        assert displays == ["fix the login bug", "add tests"]

    def test_where_one_equals_one_deletes_everything(self, sources: SourcesConfig) -> None:
        run(sources, "DELETE FROM history WHERE 1=1", write=True)
        assert history_path(sources).read_bytes() == b""
        assert len(backups(history_path(sources))) == 1

    def test_zero_rows_is_a_no_op(self, sources: SourcesConfig) -> None:
        path = history_path(sources)
        original = path.read_bytes()
        outcome, rows = run(sources, "DELETE FROM history WHERE project = '/nowhere'", write=True)
        assert rows == [("DELETE", "history", 0, None, str(path))]
        assert outcome.mutation is not None
        assert outcome.mutation.backup_path is None
        assert path.read_bytes() == original
        assert backups(path) == []


class TestUpdate:
    """UPDATE rewrites only the matched lines."""

    def test_untouched_lines_are_byte_identical(self, sources: SourcesConfig) -> None:
        path = history_path(sources)
        path.write_bytes(
            b'{"display": "keep",  "timestamp": 1}\n'
            b'{"display":"b","timestamp":2}\n'
            b"{corrupt\n"
        )

        run(sources, "UPDATE history SET timestamp = 3 WHERE display = 'b'", write=True)

        assert path.read_bytes() == (
            b'{"display": "keep",  "timestamp": 1}\n'
            b'{"display":"b","timestamp":3}\n'
            b"{corrupt\n"
        )

    def test_key_order_and_unknown_keys_preserved(self, sources: SourcesConfig) -> None:
        path = history_path(sources)
        path.write_text(
            '{"sessionId":"s","display":"a","extra":true,"project":"/p","timestamp":1}\n'
        )

        run(sources, "UPDATE history SET project = '/q', session_id = 't' WHERE 1=1", write=True)

        assert path.read_text() == (
            '{"sessionId":"t","display":"a","extra":true,"project":"/q","timestamp":1}\n'
        )

    def test_crlf_line_endings_survive(self, sources: SourcesConfig) -> None:
        path = history_path(sources)
        path.write_bytes(b'{"display":"a"}\r\n{"display":"b"}\r\n')

        run(sources, "UPDATE history SET display = 'x' WHERE display = 'b'", write=True)

        assert path.read_bytes() == b'{"display":"a"}\r\n{"display":"x"}\r\n'

    def test_json_column_accepts_json_text(self, sources: SourcesConfig) -> None:
        run(
            sources,
            "UPDATE history SET pasted_contents = '{\"1\": {\"id\": 9}}' "
            "WHERE display = 'write docs'",
            write=True,
        )
        last = json.loads(history_path(sources).read_text().splitlines()[-1])
        assert last["pastedContents"] == {"1": {"id": 9}}

    def test_preview_shows_new_values(self, sources: SourcesConfig) -> None:
        outcome, rows = run(
            sources,
            "UPDATE history SET display = upper(display) WHERE project = '/work/lib'",
            dry_run=True,
        )
        assert outcome.stream.columns == [
            LINE_COLUMN,
            "display",
            "timestamp",
            "project",
            "session_id",
            "pasted_contents",
        ]
        assert rows == [(3, "WRITE DOCS", 1700000200000, "/work/lib", "s2", {})]

    def test_update_through_alias_edits_canonical_file(
        self, sources: SourcesConfig
    ) -> None:
        path = sources.codex_home / "history.jsonl"
        run(
            sources,
            "UPDATE codex_history SET text = 'renamed' WHERE ts = 1700000000",
            write=True,
        )
        first = path.read_text().splitlines()[0]
        assert first == '{"session_id":"c1","ts":1700000000,"text":"renamed"}'
        assert len(backups(path)) == 1


class TestInsert:
    """INSERT appends new lines."""

    def test_insert_appends(self, sources: SourcesConfig) -> None:
        path = history_path(sources)
        outcome, _ = run(
            sources,
            "INSERT INTO history (display, timestamp, project) VALUES ('new', 5, '/p')",
            write=True,
        )
        lines = path.read_text().splitlines()
        assert len(lines) == 4
        assert lines[-1] == '{"display":"new","timestamp":5,"project":"/p"}'
        assert outcome.mutation is not None
        assert outcome.mutation.backup_path is not None

    def test_insert_many_rows_preview_line_numbers(self, sources: SourcesConfig) -> None:
        _, rows = run(
            sources,
            "INSERT INTO history (display) VALUES ('one'), ('two')",
            dry_run=True,
        )
        assert [(r[0], r[1]) for r in rows] == [(4, "one"), (5, "two")]

    def test_insert_without_column_list_fills_writable_columns(
        self, sources: SourcesConfig
    ) -> None:
        path = sources.codex_home / "history.jsonl"

        run(sources, "INSERT INTO jhistory VALUES ('s', 1700000000, 'hi')", write=True)

        lines = path.read_text().splitlines()
        assert len(lines) == 3
        assert lines[-1] == '{"session_id":"s","ts":1700000000,"text":"hi"}'

    def test_insert_with_clause_supplies_rows(self, sources: SourcesConfig) -> None:
        _, rows = run(
            sources,
            "WITH x AS (SELECT 'from cte' AS v) INSERT INTO history (display) SELECT v FROM x",
            dry_run=True,
        )
        assert [(r[0], r[1]) for r in rows] == [(4, "from cte")]

    def test_insert_value_count_mismatch(self, sources: SourcesConfig) -> None:
        path = sources.codex_home / "history.jsonl"
        before = path.read_bytes()

        with pytest.raises(ParseError) as exc_info:
            run(sources, "INSERT INTO jhistory VALUES ('s')", write=True)

        assert exc_info.value.code is ErrorCode.PARSE_SYNTAX
        assert "__devsql" not in exc_info.value.message
        assert path.read_bytes() == before

    def test_insert_into_missing_file_creates_it(self, tmp_path: Path) -> None:
        sources = SourcesConfig(
            data_dir=tmp_path / "fresh", codex_home=tmp_path / "codex", repos=[tmp_path]
        )
        outcome, _ = run(
            sources, "INSERT INTO history (display) VALUES ('first')", write=True
        )
        assert history_path(sources).read_text() == '{"display":"first"}\n'
        assert outcome.mutation is not None
        assert outcome.mutation.backup_path is None


class TestRejections:
    """Statements refused regardless of flags."""

    def test_missing_where(self, sources: SourcesConfig) -> None:
        with pytest.raises(MutationRejected) as exc_info:
            run(sources, "DELETE FROM history", write=True)
        assert exc_info.value.code is ErrorCode.MUTATION_MISSING_WHERE
        assert len(history_path(sources).read_text().splitlines()) == 3

    def test_missing_where_allowed_when_disabled(self, sources: SourcesConfig) -> None:
        outcome, _ = run(sources, "DELETE FROM history", write=True, require_where=False)
        assert outcome.mutation is not None
        assert outcome.mutation.rows_affected == 3

    def test_read_only_table(self, sources: SourcesConfig) -> None:
        with pytest.raises(MutationRejected) as exc_info:
            run(sources, "DELETE FROM todos WHERE status = 'pending'", write=True)
        assert exc_info.value.code is ErrorCode.MUTATION_UNSUPPORTED_TABLE

    def test_read_only_column(self, sources: SourcesConfig) -> None:
        with pytest.raises(MutationRejected) as exc_info:
            run(sources, "UPDATE jhistory SET display = 'x' WHERE ts = 1", write=True)
        assert exc_info.value.code is ErrorCode.MUTATION_READONLY_COLUMN

    def test_unknown_column(self, sources: SourcesConfig) -> None:
        with pytest.raises(CatalogError) as exc_info:
            run(sources, "UPDATE history SET nope = 1 WHERE 1=1", write=True)
        assert exc_info.value.code is ErrorCode.COLUMN_NOT_FOUND

    def test_returning_rejected(self, sources: SourcesConfig) -> None:
        with pytest.raises(MutationRejected) as exc_info:
            run(sources, "DELETE FROM history WHERE 1=1 RETURNING display", write=True)
        assert exc_info.value.code is ErrorCode.MUTATION_UNSUPPORTED_STATEMENT
        assert len(history_path(sources).read_text().splitlines()) == 3
