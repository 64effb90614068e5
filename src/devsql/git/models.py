"""Value conversions from pygit2 objects to table cells."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

import pygit2
from pygit2.enums import DeltaStatus, FileStatus

ISO_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

_DELTA_STATUS_MAP: dict[int, str] = {
    DeltaStatus.ADDED: "added",
    DeltaStatus.DELETED: "deleted",
    DeltaStatus.MODIFIED: "modified",
    DeltaStatus.RENAMED: "renamed",
    DeltaStatus.COPIED: "copied",
    DeltaStatus.TYPECHANGE: "typechange",
}

_INDEX_STATUS: tuple[tuple[int, str], ...] = (
    (FileStatus.INDEX_NEW, "added"),
    (FileStatus.INDEX_MODIFIED, "modified"),
    (FileStatus.INDEX_DELETED, "deleted"),
    (FileStatus.INDEX_RENAMED, "renamed"),
    (FileStatus.INDEX_TYPECHANGE, "typechange"),
)

_WORKTREE_STATUS: tuple[tuple[int, str], ...] = (
    (FileStatus.WT_NEW, "untracked"),
    (FileStatus.WT_MODIFIED, "modified"),
    (FileStatus.WT_DELETED, "deleted"),
    (FileStatus.WT_RENAMED, "renamed"),
    (FileStatus.WT_TYPECHANGE, "typechange"),
    (FileStatus.IGNORED, "ignored"),
)


def format_time(epoch: int) -> str:
    return datetime.fromtimestamp(epoch, tz=UTC).strftime(ISO_FORMAT)


def delta_status(status: int) -> str:
    return _DELTA_STATUS_MAP.get(status, "unknown")


def index_status(flags: int) -> str | None:
    return next((name for bit, name in _INDEX_STATUS if flags & bit), None)


def worktree_status(flags: int) -> str | None:
    return next((name for bit, name in _WORKTREE_STATUS if flags & bit), None)


def is_conflicted(flags: int) -> bool:
    return bool(flags & FileStatus.CONFLICTED)


@dataclass(frozen=True, slots=True)
class Signature:
    """Git author/committer signature."""

    name: str
    email: str
    time: str

    @classmethod
    def from_pygit2(cls, sig: pygit2.Signature) -> Signature:
        return cls(sig.name, sig.email, format_time(sig.time))


def signature_cells(sig: pygit2.Signature | None) -> tuple[str | None, str | None, str | None]:
    """(name, email, time) for a table row; all NULL when there is no signature."""
    if sig is None:
        return None, None, None
    s = Signature.from_pygit2(sig)
    return s.name, s.email, s.time
