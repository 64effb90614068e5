"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages, and
provides a populated assistant data directory.
"""

import json
import os
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

# Insert local src directory at the beginning of sys.path
# This ensures that the local devsql package is used, not any installed one
_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

# Force reimport of devsql modules if already imported
for module_name in list(sys.modules.keys()):
    if module_name.startswith("devsql"):
        del sys.modules[module_name]

from devsql.config.models import SourcesConfig  # noqa: E402

HISTORY_RECORDS = [
    {
        "display": "fix the login bug",
        "timestamp": 1700000000000,
        "project": "/work/app",
        "sessionId": "s1",
        "pastedContents": {},
    },
    {
        "display": "add tests",
        "timestamp": 1700000100000,
        "project": "/work/app",
        "sessionId": "s1",
        "pastedContents": {"1": {"id": 1, "type": "text", "content": "stack"}},
    },
    {
        "display": "write docs",
        "timestamp": 1700000200000,
        "project": "/work/lib",
        "sessionId": "s2",
        "pastedContents": {},
    },
]


def dump_jsonl(records: list[dict[str, Any]]) -> str:
    return "".join(json.dumps(r, separators=(",", ":")) + "\n" for r in records)


@pytest.fixture
def write_jsonl() -> Callable[[Path, list[dict[str, Any]]], Path]:
    def _write(path: Path, records: list[dict[str, Any]]) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(dump_jsonl(records), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Assistant data directory with every source populated."""
    root = tmp_path / "claude"
    root.mkdir()
    (root / "history.jsonl").write_text(dump_jsonl(HISTORY_RECORDS), encoding="utf-8")

    transcripts = root / "transcripts"
    transcripts.mkdir()
    (transcripts / "ses_abc.jsonl").write_text(
        dump_jsonl(
            [
                {
                    "type": "user",
                    "uuid": "u1",
                    "sessionId": "abc",
                    "timestamp": "2024-01-01T00:00:00Z",
                    "message": {"role": "user", "content": "hello there"},
                },
                {
                    "type": "assistant",
                    "uuid": "u2",
                    "parentUuid": "u1",
                    "sessionId": "abc",
                    "message": {
                        "role": "assistant",
                        "model": "model-x",
                        "content": [
                            {"type": "text", "text": "Reading"},
                            {"type": "tool_use", "name": "Read", "input": {"path": "a.py"}},
                        ],
                    },
                },
            ]
        ),
        encoding="utf-8",
    )

    todos = root / "todos"
    todos.mkdir()
    (todos / "ws1-agent-ag1.json").write_text(
        json.dumps(
            [
                {"id": "1", "content": "write code", "status": "completed", "activeForm": "Writing"},
                {"id": "2", "content": "ship it", "status": "pending"},
            ]
        ),
        encoding="utf-8",
    )

    (root / "stats-cache.json").write_text(
        json.dumps(
            {
                "dailyActivity": [
                    {"date": "2024-01-01", "messageCount": 10, "sessionCount": 2, "toolCallCount": 4},
                    {"date": "2024-01-02", "messageCount": 3, "sessionCount": 1, "toolCallCount": 0},
                ],
                "dailyModelTokens": [{"date": "2024-01-01", "tokensByModel": {"model-x": 1200}}],
                "modelUsage": {
                    "model-x": {"inputTokens": 1000, "outputTokens": 200, "costUSD": 0.5}
                },
            }
        ),
        encoding="utf-8",
    )
    return root


@pytest.fixture
def codex_home(tmp_path: Path) -> Path:
    root = tmp_path / "codex"
    root.mkdir()
    (root / "history.jsonl").write_text(
        dump_jsonl(
            [
                {"session_id": "c1", "ts": 1700000000, "text": "first codex prompt"},
                {"session_id": "c1", "ts": 1700000050, "text": "second codex prompt"},
            ]
        ),
        encoding="utf-8",
    )
    return root


@pytest.fixture
def sources(data_dir: Path, codex_home: Path, tmp_path: Path) -> SourcesConfig:
    return SourcesConfig(data_dir=data_dir, codex_home=codex_home, repos=[tmp_path])


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep the user's config file and environment out of every test."""
    for var in ("CLAUDE_DATA_DIR", "CODEX_HOME"):
        monkeypatch.delenv(var, raising=False)
    for var in list(os.environ):
        if var.upper().startswith("DEVSQL__"):
            monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr(
        "devsql.config.loader.GLOBAL_CONFIG_PATH", tmp_path / "no-config.yaml"
    )
