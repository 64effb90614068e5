"""Git metadata tables.

Each producer takes an open ``RepoAccess`` and yields one dict per row in
the column order declared in ``GIT_TABLES``. ``repository_rows`` fans a
producer out over several repositories and appends the ``_repo`` column.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any

import pygit2
import structlog
from pygit2.enums import DeltaStatus, ReferenceType

from devsql.catalog.models import Column, ColumnType
from devsql.core.errors import SourceReadError
from devsql.git.access import RepoAccess
from devsql.git.errors import GitError, NotARepositoryError, git_operation
from devsql.git.models import (
    delta_status,
    index_status,
    is_conflicted,
    signature_cells,
    worktree_status,
)
from devsql.sources.jsonl import ReadReport

log = structlog.get_logger(__name__)

Row = dict[str, Any]
Producer = Callable[[RepoAccess], Iterator[Row]]

TEXT = ColumnType.TEXT
INT = ColumnType.INTEGER
BOOL = ColumnType.BOOLEAN


def _oid(value: Any) -> str | None:
    return str(value) if value is not None else None


# =============================================================================
# Producers
# =============================================================================


def commits(access: RepoAccess) -> Iterator[Row]:
    for commit in access.walk_commits():
        author_name, author_email, authored_at = signature_cells(commit.author)
        committer_name, committer_email, committed_at = signature_cells(commit.committer)
        message = commit.message
        parent_count = len(commit.parent_ids)
        yield {
            "id": str(commit.id),
            "short_id": commit.short_id,
            "tree_id": str(commit.tree_id),
            "author_name": author_name,
            "author_email": author_email,
            "authored_at": authored_at,
            "committer_name": committer_name,
            "committer_email": committer_email,
            "committed_at": committed_at,
            "summary": message.split("\n", 1)[0].strip(),
            "message": message,
            "parent_count": parent_count,
            "is_merge": parent_count > 1,
        }


def commit_parents(access: RepoAccess) -> Iterator[Row]:
    for commit in access.walk_commits():
        for index, parent_id in enumerate(commit.parent_ids):
            yield {
                "commit_id": str(commit.id),
                "parent_id": str(parent_id),
                "parent_index": index,
            }


def branches(access: RepoAccess) -> Iterator[Row]:
    detached = access.is_detached
    for is_remote, source in ((False, access.local_branches()), (True, access.remote_branches())):
        for branch in source:
            upstream = None
            if not is_remote:
                try:
                    if branch.upstream is not None:
                        upstream = branch.upstream.shorthand
                except (ValueError, KeyError, pygit2.GitError):
                    # Configured upstream that no longer exists
                    upstream = None
            yield {
                "name": branch.shorthand,
                "full_name": branch.name,
                "target_id": _oid(access.resolve_target(branch)),
                "is_head": not (is_remote or detached) and bool(branch.is_head()),
                "is_remote": is_remote,
                "upstream": upstream,
            }


def tags(access: RepoAccess) -> Iterator[Row]:
    for name, target, tag in access.iter_tags():
        tagger_name = tagger_email = tagged_at = message = None
        if tag is not None:
            tagger_name, tagger_email, tagged_at = signature_cells(tag.tagger)
            message = tag.message
        yield {
            "name": name,
            "target_id": str(target),
            "is_annotated": tag is not None,
            "tagger_name": tagger_name,
            "tagger_email": tagger_email,
            "tagged_at": tagged_at,
            "message": message,
        }


def _ref_kind(name: str) -> str:
    for prefix, kind in (
        ("refs/heads/", "branch"),
        ("refs/remotes/", "remote"),
        ("refs/tags/", "tag"),
        ("refs/notes/", "note"),
        ("refs/stash", "stash"),
    ):
        if name.startswith(prefix):
            return kind
    return "other"


def refs(access: RepoAccess) -> Iterator[Row]:
    for name in access.reference_names():
        ref = access.reference(name)
        symbolic = ref.type == ReferenceType.SYMBOLIC
        yield {
            "name": name,
            "shorthand": ref.shorthand,
            "kind": _ref_kind(name),
            "target_id": _oid(access.resolve_target(ref)),
            "is_symbolic": symbolic,
            "symbolic_target": ref.target if symbolic else None,
        }


def stashes(access: RepoAccess) -> Iterator[Row]:
    for index, stash in enumerate(access.listall_stashes()):
        yield {
            "stash_index": index,
            "stash_ref": f"stash@{{{index}}}",
            "commit_id": str(stash.commit_id),
            "message": stash.message,
        }


def reflog(access: RepoAccess) -> Iterator[Row]:
    named: list[tuple[str, pygit2.Reference]] = []
    head = access.head_reference()
    if head is not None:
        named.append(("HEAD", head))
    named.extend((name, access.reference(name)) for name in access.reference_names())

    for ref_name, ref in named:
        try:
            entries = list(ref.log())
        except (KeyError, pygit2.GitError):
            # Reference without a reflog
            continue
        for index, entry in enumerate(entries):
            committer_name, committer_email, committed_at = signature_cells(entry.committer)
            yield {
                "ref_name": ref_name,
                "entry_index": index,
                "old_id": str(entry.oid_old),
                "new_id": str(entry.oid_new),
                "committer_name": committer_name,
                "committer_email": committer_email,
                "committed_at": committed_at,
                "message": entry.message,
            }


def _commit_diff(commit: pygit2.Commit) -> pygit2.Diff:
    if commit.parents:
        diff = commit.parents[0].tree.diff_to_tree(commit.tree)
    else:
        # Root commit: everything is an addition
        diff = commit.tree.diff_to_tree(swap=True)
    diff.find_similar()
    return diff


def diffs(access: RepoAccess) -> Iterator[Row]:
    for commit in access.walk_commits():
        stats = _commit_diff(commit).stats
        yield {
            "commit_id": str(commit.id),
            "parent_id": _oid(commit.parent_ids[0]) if commit.parent_ids else None,
            "files_changed": stats.files_changed,
            "insertions": stats.insertions,
            "deletions": stats.deletions,
        }


def diff_files(access: RepoAccess) -> Iterator[Row]:
    for commit in access.walk_commits():
        for patch in _commit_diff(commit):
            delta = patch.delta
            _, insertions, deletions = patch.line_stats
            old_path = delta.old_file.path if delta.status != DeltaStatus.ADDED else None
            new_path = delta.new_file.path if delta.status != DeltaStatus.DELETED else None
            yield {
                "commit_id": str(commit.id),
                "old_path": old_path,
                "new_path": new_path,
                "path": new_path or old_path,
                "status": delta_status(delta.status),
                "insertions": insertions,
                "deletions": deletions,
                "is_binary": bool(delta.is_binary),
            }


def _iter_blobs(tree: pygit2.Tree, prefix: PurePosixPath) -> Iterator[tuple[str, pygit2.Blob]]:
    for entry in tree:
        path = prefix / entry.name
        if isinstance(entry, pygit2.Tree):
            yield from _iter_blobs(entry, path)
        elif isinstance(entry, pygit2.Blob):
            yield str(path), entry


def blame(access: RepoAccess) -> Iterator[Row]:
    tree = access.head_tree()
    if tree is None:
        return
    authors: dict[str, tuple[str | None, str | None, str | None]] = {}
    for path, blob in _iter_blobs(tree, PurePosixPath()):
        if blob.is_binary:
            continue
        text = blob.data.decode("utf-8", errors="replace")
        # git counts only \n as a line break
        lines = text.split("\n")
        if lines[-1] == "":
            lines.pop()
        owners: list[str | None] = [None] * len(lines)
        for hunk in access.blame(path):
            commit_id = str(hunk.final_commit_id)
            start = hunk.final_start_line_number - 1
            for offset in range(hunk.lines_in_hunk):
                if 0 <= start + offset < len(owners):
                    owners[start + offset] = commit_id
        for number, (content, commit_id) in enumerate(zip(lines, owners, strict=True), start=1):
            if commit_id is not None and commit_id not in authors:
                obj = access.lookup(pygit2.Oid(hex=commit_id))
                author = obj.author if isinstance(obj, pygit2.Commit) else None
                authors[commit_id] = signature_cells(author)
            name, email, at = authors[commit_id] if commit_id else (None, None, None)
            yield {
                "path": path,
                "line_number": number,
                "commit_id": commit_id,
                "author_name": name,
                "author_email": email,
                "authored_at": at,
                "content": content,
            }


def config(access: RepoAccess) -> Iterator[Row]:
    for entry in access.config_entries():
        yield {"name": entry.name, "value": entry.value, "level": int(entry.level)}


def remotes(access: RepoAccess) -> Iterator[Row]:
    for remote in access.remotes():
        yield {
            "name": remote.name,
            "url": remote.url,
            "push_url": remote.push_url,
            "fetch_refspecs": list(remote.fetch_refspecs),
        }


def submodules(access: RepoAccess) -> Iterator[Row]:
    for submodule in access.submodules():
        yield {
            "name": submodule.name,
            "path": submodule.path,
            "url": submodule.url,
            "branch": submodule.branch,
            "head_id": _oid(submodule.head_id),
        }


def status(access: RepoAccess) -> Iterator[Row]:
    for path, flags in sorted(access.status().items()):
        yield {
            "path": path,
            "index_status": index_status(flags),
            "worktree_status": worktree_status(flags),
            "is_conflicted": is_conflicted(flags),
        }


def worktrees(access: RepoAccess) -> Iterator[Row]:
    if access.repo.workdir:
        yield {
            "name": None,
            "path": str(access.path),
            "is_main": True,
            "is_prunable": False,
        }
    for name in sorted(access.list_worktrees()):
        worktree = access.lookup_worktree(name)
        yield {
            "name": worktree.name,
            "path": worktree.path,
            "is_main": False,
            "is_prunable": bool(worktree.is_prunable),
        }


def hooks(access: RepoAccess) -> Iterator[Row]:
    for path in access.iter_hooks():
        yield {
            "name": path.name,
            "path": str(path),
            "is_sample": path.name.endswith(".sample"),
            "is_executable": access.is_executable(path),
        }


def notes(access: RepoAccess) -> Iterator[Row]:
    for note in access.iter_notes():
        yield {
            "note_id": str(note.id),
            "annotated_id": str(note.annotated_id),
            "message": note.message,
        }


# =============================================================================
# Registry
# =============================================================================


@dataclass(frozen=True, slots=True)
class GitTable:
    name: str
    columns: tuple[Column, ...]
    producer: Producer
    description: str


def _cols(*defs: tuple[str, ColumnType] | str) -> tuple[Column, ...]:
    columns = [Column(s, TEXT) if isinstance(s, str) else Column(s[0], s[1]) for s in defs]
    columns.append(Column("_repo", TEXT, writable=False))
    return tuple(columns)


GIT_TABLES: tuple[GitTable, ...] = (
    GitTable(
        "commits",
        _cols(
            "id", "short_id", "tree_id",
            "author_name", "author_email", "authored_at",
            "committer_name", "committer_email", "committed_at",
            "summary", "message", ("parent_count", INT), ("is_merge", BOOL),
        ),
        commits,
        "Commits reachable from HEAD",
    ),
    GitTable(
        "commit_parents",
        _cols("commit_id", "parent_id", ("parent_index", INT)),
        commit_parents,
        "Commit to parent edges",
    ),
    GitTable(
        "branches",
        _cols("name", "full_name", "target_id", ("is_head", BOOL), ("is_remote", BOOL), "upstream"),
        branches,
        "Local and remote-tracking branches",
    ),
    GitTable(
        "tags",
        _cols(
            "name", "target_id", ("is_annotated", BOOL),
            "tagger_name", "tagger_email", "tagged_at", "message",
        ),
        tags,
        "Lightweight and annotated tags",
    ),
    GitTable(
        "refs",
        _cols("name", "shorthand", "kind", "target_id", ("is_symbolic", BOOL), "symbolic_target"),
        refs,
        "All references",
    ),
    GitTable(
        "stashes",
        _cols(("stash_index", INT), "stash_ref", "commit_id", "message"),
        stashes,
        "Stash entries",
    ),
    GitTable(
        "reflog",
        _cols(
            "ref_name", ("entry_index", INT), "old_id", "new_id",
            "committer_name", "committer_email", "committed_at", "message",
        ),
        reflog,
        "Reference logs, HEAD first",
    ),
    GitTable(
        "diffs",
        _cols("commit_id", "parent_id", ("files_changed", INT), ("insertions", INT), ("deletions", INT)),
        diffs,
        "Per-commit diff totals against the first parent",
    ),
    GitTable(
        "diff_files",
        _cols(
            "commit_id", "old_path", "new_path", "path", "status",
            ("insertions", INT), ("deletions", INT), ("is_binary", BOOL),
        ),
        diff_files,
        "Per-file changes of each commit",
    ),
    GitTable(
        "blame",
        _cols(
            "path", ("line_number", INT), "commit_id",
            "author_name", "author_email", "authored_at", "content",
        ),
        blame,
        "Line ownership of every text file at HEAD",
    ),
    GitTable(
        "config",
        _cols("name", "value", ("level", INT)),
        config,
        "Effective configuration entries",
    ),
    GitTable(
        "remotes",
        _cols("name", "url", "push_url", ("fetch_refspecs", ColumnType.JSON)),
        remotes,
        "Configured remotes",
    ),
    GitTable(
        "submodules",
        _cols("name", "path", "url", "branch", "head_id"),
        submodules,
        "Registered submodules",
    ),
    GitTable(
        "status",
        _cols("path", "index_status", "worktree_status", ("is_conflicted", BOOL)),
        status,
        "Working tree and index status",
    ),
    GitTable(
        "worktrees",
        _cols("name", "path", ("is_main", BOOL), ("is_prunable", BOOL)),
        worktrees,
        "Main and linked worktrees",
    ),
    GitTable(
        "hooks",
        _cols("name", "path", ("is_sample", BOOL), ("is_executable", BOOL)),
        hooks,
        "Files in the hooks directory",
    ),
    GitTable(
        "notes",
        _cols("note_id", "annotated_id", "message"),
        notes,
        "Notes under refs/notes/commits",
    ),
)


# =============================================================================
# Multi-repository fan-out
# =============================================================================


def open_repository(path: Path) -> RepoAccess:
    try:
        return RepoAccess(path)
    except NotARepositoryError as e:
        raise SourceReadError.git_failure(str(path), "not a git repository") from e


def repository_rows(
    table: GitTable, paths: Sequence[Path], report: ReadReport  # noqa: ARG001
) -> Iterator[Row]:
    """Ordered union of ``table`` over ``paths``, tagging each row with ``_repo``."""
    for path in paths:
        access = open_repository(path)
        label = access.label
        count = 0
        try:
            with git_operation(f"reading {table.name}"):
                for row in table.producer(access):
                    row["_repo"] = label
                    count += 1
                    yield row
        except GitError as e:
            raise SourceReadError.git_failure(str(path), str(e)) from e
        log.debug("git_table_scanned", table=table.name, repo=label, rows=count)
