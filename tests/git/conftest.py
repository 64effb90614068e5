"""Test fixtures for git tables."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pygit2
import pytest
from pygit2.enums import ObjectType

if TYPE_CHECKING:
    from collections.abc import Generator

AUTHOR = pygit2.Signature("Test User", "test@example.com", 1700000000, 0)
LATER = pygit2.Signature("Other Dev", "other@example.com", 1700003600, 0)


def commit_file(
    repo: pygit2.Repository,
    path: str,
    content: str,
    message: str,
    signature: pygit2.Signature = AUTHOR,
) -> pygit2.Oid:
    """Write, stage and commit one file on the current branch."""
    workdir = Path(repo.workdir)
    target = workdir / path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content)
    repo.index.add(path)
    repo.index.write()
    tree = repo.index.write_tree()
    parents = [] if repo.head_is_unborn else [repo.head.target]
    return repo.create_commit("HEAD", signature, signature, message, tree, parents)


@pytest.fixture
def temp_repo(tmp_path: Path) -> Generator[pygit2.Repository, None, None]:
    """Repository with two commits on main."""
    repo_path = tmp_path / "repo"
    repo_path.mkdir()

    repo = pygit2.init_repository(str(repo_path), initial_head="main")
    repo.config["user.name"] = "Test User"
    repo.config["user.email"] = "test@example.com"

    commit_file(repo, "README.md", "# Test Repo\n", "Initial commit")
    commit_file(repo, "README.md", "# Test Repo\n\nMore docs.\n", "Expand readme\n\nWith body.", LATER)

    yield repo


@pytest.fixture
def empty_repo(tmp_path: Path) -> pygit2.Repository:
    """Freshly initialized repository with an unborn HEAD."""
    return pygit2.init_repository(str(tmp_path / "empty"), initial_head="main")


@pytest.fixture
def repo_with_refs(temp_repo: pygit2.Repository) -> pygit2.Repository:
    """Adds a branch, a lightweight tag and an annotated tag."""
    head = temp_repo.head.peel(pygit2.Commit)
    temp_repo.branches.local.create("feature", head)
    temp_repo.references.create("refs/tags/v0.1", head.id)
    temp_repo.create_tag("v1.0", head.id, ObjectType.COMMIT, AUTHOR, "Release 1.0\n")
    return temp_repo
