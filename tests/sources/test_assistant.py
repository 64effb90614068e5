"""Tests for coding-assistant row producers."""

from __future__ import annotations

import json
from pathlib import Path

from devsql.sources.assistant import (
    decode_jhistory,
    iter_model_usage,
    iter_stats,
    iter_todos,
    iter_transcripts,
    normalize_epoch_seconds,
)
from devsql.sources.jsonl import ReadReport


class TestJhistory:
    """Secondary CLI history records."""

    def test_mirrors_text_and_timestamp(self) -> None:
        row = decode_jhistory({"session_id": "c1", "ts": 1700000000, "text": "hi"})
        assert row == {
            "session_id": "c1",
            "ts": 1700000000,
            "text": "hi",
            "display": "hi",
            "timestamp": 1700000000000,
        }

    def test_falls_back_to_millisecond_timestamp(self) -> None:
        row = decode_jhistory({"sessionId": "c2", "timestamp": 1700000000123, "display": "x"})
        assert row["ts"] == 1700000000
        assert row["session_id"] == "c2"
        assert row["text"] == "x"

    def test_missing_fields_are_null(self) -> None:
        row = decode_jhistory({})
        assert row["ts"] is None
        assert row["timestamp"] is None

    def test_normalize_epoch_seconds(self) -> None:
        assert normalize_epoch_seconds(1700000000) == 1700000000
        assert normalize_epoch_seconds(1700000000999) == 1700000000


class TestTranscripts:
    """One row per transcript line across files."""

    def test_rows_carry_provenance(self, data_dir: Path) -> None:
        rows = list(iter_transcripts(data_dir / "transcripts", ReadReport()))

        assert [r["uuid"] for r in rows] == ["u1", "u2"]
        assert rows[0]["_session_id"] == "abc"
        assert rows[0]["_source_file"] == "ses_abc.jsonl"
        assert [r["_line"] for r in rows] == [1, 2]

    def test_content_and_tool_use(self, data_dir: Path) -> None:
        rows = list(iter_transcripts(data_dir / "transcripts", ReadReport()))

        assert rows[0]["role"] == "user"
        assert rows[0]["content"] == "hello there"
        assert rows[1]["content"] == "Reading"
        assert rows[1]["tool_name"] == "Read"
        assert rows[1]["tool_input"] == {"path": "a.py"}
        assert rows[1]["parent_uuid"] == "u1"
        assert rows[1]["model"] == "model-x"

    def test_unmatched_filename_gives_null_session(self, tmp_path: Path) -> None:
        (tmp_path / "notes.jsonl").write_text('{"type":"user"}\n')
        rows = list(iter_transcripts(tmp_path, ReadReport()))
        assert rows[0]["_session_id"] is None
        assert rows[0]["_source_file"] == "notes.jsonl"

    def test_files_in_name_order(self, tmp_path: Path) -> None:
        (tmp_path / "ses_b.jsonl").write_text('{"uuid":"b"}\n')
        (tmp_path / "ses_a.jsonl").write_text('{"uuid":"a"}\n')
        rows = list(iter_transcripts(tmp_path, ReadReport()))
        assert [r["uuid"] for r in rows] == ["a", "b"]

    def test_missing_directory_yields_nothing(self, tmp_path: Path) -> None:
        assert list(iter_transcripts(tmp_path / "absent", ReadReport())) == []


class TestTodos:
    """Todo list files."""

    def test_array_file(self, data_dir: Path) -> None:
        rows = list(iter_todos(data_dir / "todos", ReadReport()))

        assert [r["content"] for r in rows] == ["write code", "ship it"]
        assert rows[0]["_workspace_id"] == "ws1"
        assert rows[0]["_agent_id"] == "ag1"
        assert rows[0]["active_form"] == "Writing"
        assert [r["_index"] for r in rows] == [0, 1]

    def test_single_object_file(self, tmp_path: Path) -> None:
        (tmp_path / "w-agent-a.json").write_text(json.dumps({"id": "9", "content": "solo"}))
        rows = list(iter_todos(tmp_path, ReadReport()))
        assert [r["content"] for r in rows] == ["solo"]

    def test_unmatched_filename_and_bad_items(self, tmp_path: Path) -> None:
        (tmp_path / "loose.json").write_text(json.dumps([{"id": "1"}, 7]))
        report = ReadReport()

        rows = list(iter_todos(tmp_path, report))

        assert len(rows) == 1
        assert rows[0]["_workspace_id"] is None
        assert rows[0]["_agent_id"] is None
        assert report.total_skipped == 1


class TestStats:
    """stats-cache.json."""

    def test_daily_activity_joined_with_tokens(self, data_dir: Path) -> None:
        rows = list(iter_stats(data_dir / "stats-cache.json", ReadReport()))

        assert rows[0] == {
            "date": "2024-01-01",
            "message_count": 10,
            "session_count": 2,
            "tool_call_count": 4,
            "tokens_by_model": {"model-x": 1200},
        }
        assert rows[1]["tokens_by_model"] is None

    def test_model_usage(self, data_dir: Path) -> None:
        rows = list(iter_model_usage(data_dir / "stats-cache.json", ReadReport()))

        assert len(rows) == 1
        assert rows[0]["model"] == "model-x"
        assert rows[0]["input_tokens"] == 1000
        assert rows[0]["cost_usd"] == 0.5
        assert rows[0]["context_window"] is None

    def test_missing_document_yields_nothing(self, tmp_path: Path) -> None:
        assert list(iter_stats(tmp_path / "stats-cache.json", ReadReport())) == []
        assert list(iter_model_usage(tmp_path / "stats-cache.json", ReadReport())) == []
