"""Git module error types."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import pygit2


class GitError(Exception):
    """Base error for git operations."""

    pass


class NotARepositoryError(GitError):
    """Path is not a git repository."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Not a git repository: {path}")
        self.path = path


@contextmanager
def git_operation(operation: str) -> Iterator[None]:
    """Translate pygit2 exceptions raised inside the block into GitError."""
    try:
        yield
    except pygit2.GitError as e:
        raise GitError(f"{operation} failed: {e}") from e
