"""Repository access layer - owns pygit2.Repository and exposes read-only facts."""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pygit2
from pygit2.enums import ReferenceType, SortMode

from devsql.git.errors import NotARepositoryError


class RepoAccess:
    """Owns pygit2.Repository and provides normalized access to repo state.

    All pygit2 quirks (symbolic targets, unborn HEAD, missing notes refs)
    are absorbed here so the table producers only see plain values.
    """

    def __init__(self, repo_path: Path | str) -> None:
        self._path = Path(repo_path)
        try:
            self._repo = pygit2.Repository(str(self._path))
        except pygit2.GitError as e:
            raise NotARepositoryError(str(self._path)) from e

    @property
    def repo(self) -> pygit2.Repository:
        return self._repo

    @property
    def path(self) -> Path:
        return Path(self._repo.workdir) if self._repo.workdir else self._path

    @property
    def git_dir(self) -> Path:
        return Path(self._repo.path)

    @property
    def label(self) -> str:
        """Stable identifier used for the ``_repo`` provenance column."""
        return str(self.path.resolve())

    # =========================================================================
    # Repository State Facts
    # =========================================================================

    @property
    def is_empty(self) -> bool:
        return self._repo.is_empty

    @property
    def is_unborn(self) -> bool:
        return self._repo.head_is_unborn

    @property
    def is_detached(self) -> bool:
        return self._repo.head_is_detached

    def head_commit(self) -> pygit2.Commit | None:
        if self.is_unborn:
            return None
        return self._repo.head.peel(pygit2.Commit)

    def head_tree(self) -> pygit2.Tree | None:
        if self.is_unborn:
            return None
        return self._repo.head.peel(pygit2.Tree)

    # =========================================================================
    # Resolution Helpers
    # =========================================================================

    def resolve_target(self, ref: pygit2.Reference) -> pygit2.Oid | None:
        """Direct target of a reference, following symbolic links."""
        if ref.type == ReferenceType.SYMBOLIC:
            try:
                return ref.resolve().target  # type: ignore[return-value]
            except (KeyError, pygit2.GitError):
                # Dangling symbolic ref (e.g. HEAD of an unborn branch)
                return None
        return ref.target  # type: ignore[return-value]

    def lookup(self, oid: pygit2.Oid) -> pygit2.Object | None:
        return self._repo.get(oid)

    # =========================================================================
    # Iteration
    # =========================================================================

    def walk_commits(self) -> Iterator[pygit2.Commit]:
        """Commits reachable from HEAD, newest first."""
        head = self.head_commit()
        if head is None:
            return
        yield from self._repo.walk(head.id, SortMode.TOPOLOGICAL | SortMode.TIME)

    def reference_names(self) -> list[str]:
        return sorted(self._repo.references)

    def reference(self, name: str) -> pygit2.Reference:
        return self._repo.references[name]

    def head_reference(self) -> pygit2.Reference | None:
        try:
            return self._repo.lookup_reference("HEAD")
        except (KeyError, pygit2.GitError):
            return None

    def iter_tags(self) -> Iterator[tuple[str, pygit2.Oid, pygit2.Tag | None]]:
        """
        Iterate tags as (name, target_oid, tag_object_or_none).

        Contract:
        - name: normalized tag name (no 'refs/tags/' prefix)
        - target_oid: for annotated tags, the object the tag points to;
          for lightweight tags, the direct target Oid
        - tag_obj: pygit2.Tag object for annotated tags, None for lightweight
        """
        for refname in self.reference_names():
            if not refname.startswith("refs/tags/"):
                continue
            name = refname[len("refs/tags/") :]
            target = self.resolve_target(self._repo.references[refname])
            if target is None:
                continue
            obj = self._repo.get(target)
            if isinstance(obj, pygit2.Tag):
                yield name, obj.target, obj
            else:
                yield name, target, None

    def local_branches(self) -> Iterator[pygit2.Branch]:
        for name in sorted(self._repo.branches.local):
            yield self._repo.branches.local[name]

    def remote_branches(self) -> Iterator[pygit2.Branch]:
        for name in sorted(self._repo.branches.remote):
            yield self._repo.branches.remote[name]

    def listall_stashes(self) -> list[Any]:
        return list(self._repo.listall_stashes())

    def iter_notes(self) -> Iterator[Any]:
        try:
            notes = list(self._repo.notes())
        except (KeyError, pygit2.GitError):
            # No notes ref yet
            return
        yield from notes

    def remotes(self) -> list[pygit2.Remote]:
        return list(self._repo.remotes)

    def submodules(self) -> Iterator[Any]:
        for path in self._repo.listall_submodules():
            yield self._repo.submodules[path]

    def config_entries(self) -> Iterator[Any]:
        yield from self._repo.config

    def status(self) -> dict[str, int]:
        return self._repo.status()

    def blame(self, path: str) -> pygit2.Blame:
        return self._repo.blame(path)

    def list_worktrees(self) -> list[str]:
        return list(self._repo.list_worktrees())

    def lookup_worktree(self, name: str) -> Any:
        return self._repo.lookup_worktree(name)

    def iter_hooks(self) -> Iterator[Path]:
        hooks_dir = self.git_dir / "hooks"
        if not hooks_dir.is_dir():
            return
        for entry in sorted(hooks_dir.iterdir()):
            if entry.is_file():
                yield entry

    @staticmethod
    def is_executable(path: Path) -> bool:
        return os.access(path, os.X_OK)
