"""JSON and JSON-Lines readers.

Readers are generators: nothing is read until a consumer iterates, and every
call starts again from the beginning of the file. Lines that cannot be
decoded into a JSON object are skipped and counted on a ``ReadReport``;
they never abort a scan.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from devsql.core.errors import SourceReadError

log = structlog.get_logger(__name__)


@dataclass
class SkippedLines:
    """Malformed-line tally for one source file."""

    path: str
    count: int = 0
    first_line: int | None = None
    first_reason: str | None = None


@dataclass
class ReadReport:
    """Non-fatal problems collected while scanning sources."""

    skipped: dict[str, SkippedLines] = field(default_factory=dict)

    def record(self, path: Path | str, line: int | None, reason: str) -> None:
        key = str(path)
        entry = self.skipped.get(key)
        if entry is None:
            entry = self.skipped[key] = SkippedLines(key)
        entry.count += 1
        if entry.first_line is None and entry.first_reason is None:
            entry.first_line = line
            entry.first_reason = reason

    @property
    def total_skipped(self) -> int:
        return sum(entry.count for entry in self.skipped.values())

    def warnings(self) -> list[str]:
        """Human-readable summary, one line per affected file."""
        lines = []
        for entry in self.skipped.values():
            noun = "record" if entry.count == 1 else "records"
            detail = entry.first_reason or "unreadable"
            if entry.first_line is not None:
                detail = f"first at line {entry.first_line}: {detail}"
            lines.append(
                f"warning: skipped {entry.count} malformed {noun} in {entry.path} ({detail})"
            )
        return lines


def parse_lines(
    lines: Iterable[bytes], path: Path | str, report: ReadReport
) -> Iterator[tuple[int, dict[str, Any]]]:
    """Decode JSON-Lines content, yielding ``(line_number, object)`` pairs.

    Line numbers are 1-based physical line numbers; blank lines are skipped
    silently and keep their number.
    """
    for number, raw in enumerate(lines, start=1):
        stripped = raw.strip()
        if not stripped:
            continue
        try:
            obj = json.loads(stripped.decode("utf-8"))
        except UnicodeDecodeError:
            report.record(path, number, "invalid UTF-8")
            continue
        except json.JSONDecodeError as e:
            report.record(path, number, f"invalid JSON: {e.msg}")
            continue
        if not isinstance(obj, dict):
            report.record(path, number, "not a JSON object")
            continue
        yield number, obj


def iter_jsonl(path: Path, report: ReadReport) -> Iterator[tuple[int, dict[str, Any]]]:
    """Stream a JSON-Lines file. A missing file yields nothing."""
    try:
        f = path.open("rb")
    except FileNotFoundError:
        log.debug("source_missing", path=str(path))
        return
    except OSError as e:
        raise SourceReadError.unreadable(str(path), e.strerror or str(e)) from e
    with f:
        try:
            yield from parse_lines(f, path, report)
        except OSError as e:
            raise SourceReadError.unreadable(str(path), e.strerror or str(e)) from e


def load_json_document(path: Path, report: ReadReport) -> Any | None:
    """Read a whole JSON document. Missing or malformed files give None."""
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        log.debug("source_missing", path=str(path))
        return None
    except OSError as e:
        raise SourceReadError.unreadable(str(path), e.strerror or str(e)) from e
    try:
        return json.loads(raw.decode("utf-8"))
    except UnicodeDecodeError:
        report.record(path, None, "invalid UTF-8")
    except json.JSONDecodeError as e:
        report.record(path, e.lineno, f"invalid JSON: {e.msg}")
    return None


@dataclass(frozen=True)
class FileSnapshot:
    """Exact bytes of a file at one moment, pinned for plan-then-write."""

    path: Path
    content: bytes
    digest: str
    exists: bool

    @classmethod
    def capture(cls, path: Path) -> FileSnapshot:
        try:
            content = path.read_bytes()
            exists = True
        except FileNotFoundError:
            content, exists = b"", False
        except OSError as e:
            raise SourceReadError.unreadable(str(path), e.strerror or str(e)) from e
        return cls(path, content, hashlib.sha256(content).hexdigest(), exists)

    @property
    def lines(self) -> list[bytes]:
        """Physical lines without their terminating newline."""
        if not self.content:
            return []
        parts = self.content.split(b"\n")
        if self.ends_with_newline:
            parts.pop()
        return parts

    @property
    def ends_with_newline(self) -> bool:
        return self.content.endswith(b"\n")

    def entries(self, report: ReadReport) -> Iterator[tuple[int, dict[str, Any]]]:
        return parse_lines(self.lines, self.path, report)


def file_digest(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1 << 16), b""):
            h.update(chunk)
    return h.hexdigest()
