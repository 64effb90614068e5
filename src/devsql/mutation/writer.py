"""Backup and atomic rewrite of JSONL source files."""

from __future__ import annotations

import contextlib
import json
import os
import shutil
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from devsql.core.errors import BackupFailure, WriteFailure
from devsql.sources.jsonl import FileSnapshot, file_digest

if TYPE_CHECKING:
    from devsql.mutation.ops import MutationPlan

log = structlog.get_logger(__name__)


def dump_line(obj: dict[str, Any]) -> bytes:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def backup_path_for(path: Path, now: datetime | None = None) -> Path:
    """``<file>.<UTC timestamp>.bak``, numbered if that name is taken."""
    stamp = (now or datetime.now(UTC)).strftime("%Y%m%dT%H%M%S%f")
    candidate = path.with_name(f"{path.name}.{stamp}.bak")
    counter = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.name}.{stamp}.{counter}.bak")
        counter += 1
    return candidate


def take_backup(snapshot: FileSnapshot) -> Path:
    """Copy the source byte-for-byte and prove the copy matches the plan's snapshot.

    Raises:
        BackupFailure: the copy could not be made; nothing was modified.
        WriteFailure: the file changed after planning; the backup is removed.
    """
    source = snapshot.path
    target = backup_path_for(source)
    try:
        shutil.copy2(source, target)
        digest = file_digest(target)
    except OSError as e:
        with contextlib.suppress(OSError):
            target.unlink()
        raise BackupFailure.copy_failed(str(source), e.strerror or str(e)) from e
    if digest != snapshot.digest:
        with contextlib.suppress(OSError):
            target.unlink()
        raise WriteFailure.source_changed(str(source))
    log.info("backup_taken", source=str(source), backup=str(target))
    return target


def render(plan: MutationPlan) -> bytes:
    """New file content for ``plan``. Lines the plan does not touch stay byte-identical."""
    snapshot = plan.snapshot
    lines = snapshot.lines
    if plan.operation == "INSERT":
        out = [*lines, *(dump_line(row.after) for row in plan.rows if row.after is not None)]
        return b"\n".join(out) + b"\n" if out else b""

    replaced: dict[int, bytes | None] = {}
    for row in plan.rows:
        if row.after is None:
            replaced[row.line] = None
        else:
            line = dump_line(row.after)
            if lines[row.line - 1].endswith(b"\r"):
                line += b"\r"
            replaced[row.line] = line

    out = []
    for number, line in enumerate(lines, start=1):
        if number in replaced:
            new = replaced[number]
            if new is not None:
                out.append(new)
        else:
            out.append(line)
    if not out:
        return b""
    content = b"\n".join(out)
    return content + b"\n" if snapshot.ends_with_newline else content


def atomic_write(snapshot: FileSnapshot, content: bytes, backup: Path | None) -> None:
    """Replace the source with ``content`` via a same-directory temp file."""
    path = snapshot.path
    backup_str = str(backup) if backup else None
    tmp_name: str | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
        ) as tmp:
            tmp_name = tmp.name
            tmp.write(content)
            tmp.flush()
            os.fsync(tmp.fileno())
        if snapshot.exists:
            shutil.copymode(path, tmp_name)
            if file_digest(path) != snapshot.digest:
                raise WriteFailure.source_changed(str(path))
        elif path.exists():
            raise WriteFailure.source_changed(str(path))
        os.replace(tmp_name, path)
        tmp_name = None
    except OSError as e:
        raise WriteFailure.write_failed(str(path), e.strerror or str(e), backup_str) from e
    finally:
        if tmp_name is not None:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
    log.info("source_rewritten", path=str(path), bytes=len(content))
