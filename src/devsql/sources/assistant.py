"""Row producers for coding-assistant data files.

Layout under the data directory::

    history.jsonl            prompt history, one object per line
    transcripts/*.jsonl      one conversation per file (ses_<id>.jsonl)
    todos/*.json             <workspace>-agent-<agent>.json, array or object
    stats-cache.json         aggregated usage counters

The secondary CLI keeps its own ``history.jsonl`` under its home directory
with a slightly different record shape (see ``decode_jhistory``).
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from devsql.core.errors import SourceReadError
from devsql.sources.jsonl import ReadReport, iter_jsonl, load_json_document

# Epoch values above this are milliseconds
_MS_THRESHOLD = 10_000_000_000

_TRANSCRIPT_NAME = re.compile(r"^ses_(?P<session>.+)\.jsonl$")
_TODO_NAME = re.compile(r"^(?P<workspace>.+?)-agent-(?P<agent>.+)\.json$")


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return None


def normalize_epoch_seconds(value: int) -> int:
    return value // 1000 if value > _MS_THRESHOLD else value


def decode_jhistory(obj: dict[str, Any]) -> dict[str, Any]:
    """Secondary CLI history: session_id, ts (seconds), text.

    ``display`` mirrors ``text`` and ``timestamp`` is ``ts`` in milliseconds,
    so the table joins with ``history`` on the same columns.
    """
    session_id = _as_text(obj.get("session_id", obj.get("sessionId")))
    text = _as_text(obj.get("text", obj.get("display")))
    ts = _as_int(obj.get("ts"))
    if ts is None:
        raw = _as_int(obj.get("timestamp"))
        ts = normalize_epoch_seconds(raw) if raw is not None else None
    return {
        "session_id": session_id,
        "ts": ts,
        "text": text,
        "display": text,
        "timestamp": ts * 1000 if ts is not None else None,
    }


def _sorted_files(directory: Path, pattern: str) -> list[Path]:
    try:
        return sorted(p for p in directory.glob(pattern) if p.is_file())
    except FileNotFoundError:
        return []
    except OSError as e:
        raise SourceReadError.unreadable(str(directory), e.strerror or str(e)) from e


def _message_text(content: Any) -> str | None:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [
            part["text"]
            for part in content
            if isinstance(part, dict)
            and part.get("type", "text") == "text"
            and isinstance(part.get("text"), str)
        ]
        return " ".join(parts) if parts else None
    return None


def _first_tool_use(content: Any) -> dict[str, Any] | None:
    if isinstance(content, list):
        for part in content:
            if isinstance(part, dict) and part.get("type") == "tool_use":
                return part
    return None


def transcript_record(
    obj: dict[str, Any], source_file: str, session: str | None, line: int
) -> dict[str, Any]:
    message = obj.get("message")
    if not isinstance(message, dict):
        message = {}
    content = message.get("content", obj.get("content"))
    tool_use = _first_tool_use(content)

    tool_name = obj.get("tool_name")
    tool_input = obj.get("tool_input")
    if tool_name is None and tool_use is not None:
        tool_name = tool_use.get("name")
        tool_input = tool_use.get("input")

    return {
        "_source_file": source_file,
        "_session_id": session,
        "_line": line,
        "type": _as_text(obj.get("type")),
        "uuid": _as_text(obj.get("uuid")),
        "parent_uuid": _as_text(obj.get("parentUuid", obj.get("parent_uuid"))),
        "session_id": _as_text(obj.get("sessionId", obj.get("session_id"))),
        "timestamp": _as_text(obj.get("timestamp")),
        "cwd": _as_text(obj.get("cwd")),
        "role": _as_text(message.get("role")),
        "model": _as_text(message.get("model")),
        "content": _message_text(content),
        "tool_name": _as_text(tool_name),
        "tool_input": tool_input,
        "result": obj.get("result", obj.get("toolUseResult")),
        "message": obj.get("message"),
    }


def iter_transcripts(directory: Path, report: ReadReport) -> Iterator[dict[str, Any]]:
    """All transcript files, in filename order, one row per valid line."""
    for path in _sorted_files(directory, "*.jsonl"):
        match = _TRANSCRIPT_NAME.match(path.name)
        session = match.group("session") if match else None
        for line, obj in iter_jsonl(path, report):
            yield transcript_record(obj, path.name, session, line)


def todo_record(
    item: dict[str, Any], source_file: str, workspace: str | None, agent: str | None, index: int
) -> dict[str, Any]:
    return {
        "_source_file": source_file,
        "_workspace_id": workspace,
        "_agent_id": agent,
        "_index": index,
        "id": _as_text(item.get("id")),
        "content": _as_text(item.get("content")),
        "status": _as_text(item.get("status")),
        "active_form": _as_text(item.get("activeForm", item.get("active_form"))),
        "priority": _as_text(item.get("priority")),
    }


def iter_todos(directory: Path, report: ReadReport) -> Iterator[dict[str, Any]]:
    for path in _sorted_files(directory, "*.json"):
        match = _TODO_NAME.match(path.name)
        workspace = match.group("workspace") if match else None
        agent = match.group("agent") if match else None

        document = load_json_document(path, report)
        if document is None:
            continue
        items = document if isinstance(document, list) else [document]
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                report.record(path, None, f"todo #{index} is not a JSON object")
                continue
            yield todo_record(item, path.name, workspace, agent, index)


def _stats_document(path: Path, report: ReadReport) -> dict[str, Any]:
    document = load_json_document(path, report)
    if document is None:
        return {}
    if not isinstance(document, dict):
        report.record(path, None, "stats cache is not a JSON object")
        return {}
    return document


def iter_stats(path: Path, report: ReadReport) -> Iterator[dict[str, Any]]:
    """One row per ``dailyActivity`` entry, joined to ``dailyModelTokens`` by date."""
    document = _stats_document(path, report)
    tokens_by_date = {
        entry.get("date"): entry.get("tokensByModel")
        for entry in document.get("dailyModelTokens") or []
        if isinstance(entry, dict)
    }
    for entry in document.get("dailyActivity") or []:
        if not isinstance(entry, dict):
            report.record(path, None, "dailyActivity entry is not a JSON object")
            continue
        date = _as_text(entry.get("date"))
        yield {
            "date": date,
            "message_count": _as_int(entry.get("messageCount")),
            "session_count": _as_int(entry.get("sessionCount")),
            "tool_call_count": _as_int(entry.get("toolCallCount")),
            "tokens_by_model": tokens_by_date.get(date),
        }


def iter_model_usage(path: Path, report: ReadReport) -> Iterator[dict[str, Any]]:
    document = _stats_document(path, report)
    usage = document.get("modelUsage") or {}
    if not isinstance(usage, dict):
        report.record(path, None, "modelUsage is not a JSON object")
        return
    for model, data in usage.items():
        if not isinstance(data, dict):
            report.record(path, None, f"modelUsage[{model}] is not a JSON object")
            continue
        cost = data.get("costUSD")
        if isinstance(cost, bool) or not isinstance(cost, (int, float)):
            cost = None
        yield {
            "model": model,
            "input_tokens": _as_int(data.get("inputTokens")),
            "output_tokens": _as_int(data.get("outputTokens")),
            "cache_read_input_tokens": _as_int(data.get("cacheReadInputTokens")),
            "cache_creation_input_tokens": _as_int(data.get("cacheCreationInputTokens")),
            "web_search_requests": _as_int(data.get("webSearchRequests")),
            "cost_usd": float(cost) if cost is not None else None,
            "context_window": _as_int(data.get("contextWindow")),
        }
