"""Catalog construction for the three tools."""

from __future__ import annotations

from collections.abc import Sequence
from functools import partial
from pathlib import Path

from devsql.catalog.catalog import Catalog, unify
from devsql.catalog.models import Column, ColumnType, TableDef, TableKind
from devsql.config.models import SourcesConfig
from devsql.git.tables import GIT_TABLES, repository_rows
from devsql.sources.assistant import (
    decode_jhistory,
    iter_model_usage,
    iter_stats,
    iter_todos,
    iter_transcripts,
)

TEXT = ColumnType.TEXT
INT = ColumnType.INTEGER
REAL = ColumnType.REAL
JSON = ColumnType.JSON

HISTORY_COLUMNS = (
    Column("display", TEXT, description="Prompt text as shown"),
    Column("timestamp", INT, description="Epoch milliseconds"),
    Column("project", TEXT, description="Working directory of the session"),
    Column("session_id", TEXT, keys=("sessionId",)),
    Column("pasted_contents", JSON, keys=("pastedContents",)),
)

JHISTORY_COLUMNS = (
    Column("session_id", TEXT, keys=("session_id", "sessionId")),
    Column("ts", INT, keys=("ts",), description="Epoch seconds"),
    Column("text", TEXT, keys=("text", "display")),
    Column("display", TEXT, writable=False, description="Same as text"),
    Column("timestamp", INT, writable=False, description="ts in epoch milliseconds"),
)

TRANSCRIPT_COLUMNS = (
    Column("_source_file", TEXT, writable=False),
    Column("_session_id", TEXT, writable=False, description="From ses_<id>.jsonl"),
    Column("_line", INT, writable=False),
    Column("type", TEXT),
    Column("uuid", TEXT),
    Column("parent_uuid", TEXT),
    Column("session_id", TEXT),
    Column("timestamp", TEXT),
    Column("cwd", TEXT),
    Column("role", TEXT),
    Column("model", TEXT),
    Column("content", TEXT),
    Column("tool_name", TEXT),
    Column("tool_input", JSON),
    Column("result", JSON),
    Column("message", JSON),
)

TODO_COLUMNS = (
    Column("_source_file", TEXT, writable=False),
    Column("_workspace_id", TEXT, writable=False),
    Column("_agent_id", TEXT, writable=False),
    Column("_index", INT, writable=False),
    Column("id", TEXT),
    Column("content", TEXT),
    Column("status", TEXT),
    Column("active_form", TEXT),
    Column("priority", TEXT),
)

STATS_COLUMNS = (
    Column("date", TEXT),
    Column("message_count", INT),
    Column("session_count", INT),
    Column("tool_call_count", INT),
    Column("tokens_by_model", JSON),
)

MODEL_USAGE_COLUMNS = (
    Column("model", TEXT),
    Column("input_tokens", INT),
    Column("output_tokens", INT),
    Column("cache_read_input_tokens", INT),
    Column("cache_creation_input_tokens", INT),
    Column("web_search_requests", INT),
    Column("cost_usd", REAL),
    Column("context_window", INT),
)


def build_assistant_catalog(sources: SourcesConfig) -> Catalog:
    data = sources.data_dir
    stats_path = data / "stats-cache.json"
    catalog = Catalog(
        [
            TableDef(
                "history",
                TableKind.JSONL_FILE,
                HISTORY_COLUMNS,
                path=data / "history.jsonl",
                description="Prompt history",
            ),
            TableDef(
                "jhistory",
                TableKind.JSONL_FILE,
                JHISTORY_COLUMNS,
                path=sources.codex_home / "history.jsonl",
                decoder=decode_jhistory,
                description="Secondary CLI prompt history",
            ),
            TableDef(
                "transcripts",
                TableKind.MULTI_FILE,
                TRANSCRIPT_COLUMNS,
                source=partial(iter_transcripts, data / "transcripts"),
                path=data / "transcripts",
                description="Conversation transcripts",
            ),
            TableDef(
                "todos",
                TableKind.MULTI_FILE,
                TODO_COLUMNS,
                source=partial(iter_todos, data / "todos"),
                path=data / "todos",
                description="Agent todo lists",
            ),
            TableDef(
                "stats",
                TableKind.JSON_DOCUMENT,
                STATS_COLUMNS,
                source=partial(iter_stats, stats_path),
                path=stats_path,
                description="Daily activity counters",
            ),
            TableDef(
                "model_usage",
                TableKind.JSON_DOCUMENT,
                MODEL_USAGE_COLUMNS,
                source=partial(iter_model_usage, stats_path),
                path=stats_path,
                description="Token usage per model",
            ),
        ]
    )
    catalog.alias("codex_history", "jhistory")
    return catalog.freeze()


def build_git_catalog(repos: Sequence[Path]) -> Catalog:
    paths = list(repos)
    catalog = Catalog(
        TableDef(
            table.name,
            TableKind.REPOSITORY,
            table.columns,
            source=partial(repository_rows, table, paths),
            description=table.description,
        )
        for table in GIT_TABLES
    )
    return catalog.freeze()


def build_unified_catalog(sources: SourcesConfig) -> Catalog:
    return unify(build_assistant_catalog(sources), build_git_catalog(sources.repos))
