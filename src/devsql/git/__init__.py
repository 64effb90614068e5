"""Git metadata module."""

from devsql.git.access import RepoAccess
from devsql.git.errors import GitError, NotARepositoryError
from devsql.git.tables import GIT_TABLES, GitTable, repository_rows

__all__ = [
    "GIT_TABLES",
    "GitError",
    "GitTable",
    "NotARepositoryError",
    "RepoAccess",
    "repository_rows",
]
