"""devsql error types with typed error codes.

Error code ranges:
- 1xxx: Parse
- 2xxx: Config
- 3xxx: Catalog
- 4xxx: Type
- 5xxx: Mutation
- 6xxx: Backup
- 7xxx: Source
- 8xxx: Write
- 9xxx: Internal

Each range maps onto one process exit code (see ``EXIT_CODES``).
"""

import difflib
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Parse (1xxx)
    PARSE_SYNTAX = 1001
    PARSE_EMPTY = 1002
    PARSE_MULTIPLE_STATEMENTS = 1003
    PARSE_UNKNOWN_FUNCTION = 1004

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002

    # Catalog (3xxx)
    TABLE_NOT_FOUND = 3001
    COLUMN_NOT_FOUND = 3002
    AMBIGUOUS_COLUMN = 3003
    NAME_COLLISION = 3004
    CATALOG_FROZEN = 3005

    # Type (4xxx)
    TYPE_MISMATCH = 4001

    # Mutation (5xxx)
    MUTATION_NO_FLAG = 5001
    MUTATION_UNSUPPORTED_TABLE = 5002
    MUTATION_UNSUPPORTED_STATEMENT = 5003
    MUTATION_MISSING_WHERE = 5004
    MUTATION_READONLY_COLUMN = 5005

    # Backup (6xxx)
    BACKUP_FAILED = 6001

    # Source (7xxx)
    SOURCE_UNREADABLE = 7001
    SOURCE_GIT_FAILURE = 7002

    # Write (8xxx)
    WRITE_FAILED = 8001
    WRITE_SOURCE_CHANGED = 8002

    # Internal (9xxx)
    INTERNAL_ERROR = 9001


EXIT_CODES: dict[int, int] = {
    1: 2,  # parse
    2: 9,  # config
    3: 3,  # catalog
    4: 4,  # type
    5: 5,  # mutation rejected
    6: 6,  # backup
    7: 7,  # source read
    8: 8,  # write
    9: 1,  # internal
}


@dataclass(frozen=True)
class DevsqlError(Exception):
    """Base error with structured context."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'TABLE_NOT_FOUND')."""
        return self.code.name

    @property
    def exit_code(self) -> int:
        """Process exit code for the error's range."""
        return EXIT_CODES.get(self.code.value // 1000, 1)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ParseError(DevsqlError):
    """SQL text could not be parsed into exactly one statement."""

    @classmethod
    def syntax(cls, reason: str, fragment: str | None = None) -> "ParseError":
        message = f"Syntax error: {reason}"
        if fragment:
            message += f" near '{fragment}'"
        return cls(
            code=ErrorCode.PARSE_SYNTAX,
            message=message,
            details={"reason": reason, "fragment": fragment},
        )

    @classmethod
    def empty(cls) -> "ParseError":
        return cls(code=ErrorCode.PARSE_EMPTY, message="No SQL statement given")

    @classmethod
    def multiple_statements(cls, count: int) -> "ParseError":
        return cls(
            code=ErrorCode.PARSE_MULTIPLE_STATEMENTS,
            message=f"Expected exactly one statement, got {count}",
            details={"count": count},
        )

    @classmethod
    def unknown_function(cls, reason: str) -> "ParseError":
        return cls(
            code=ErrorCode.PARSE_UNKNOWN_FUNCTION,
            message=f"Unknown function: {reason}",
            details={"reason": reason},
        )


class ConfigError(DevsqlError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )


class CatalogError(DevsqlError):
    """Unknown tables or columns, and catalog construction conflicts."""

    @classmethod
    def table_not_found(cls, name: str, known: Iterable[str] = ()) -> "CatalogError":
        suggestions = difflib.get_close_matches(name.lower(), sorted(known), n=3, cutoff=0.6)
        message = f"Unknown table '{name}'"
        if suggestions:
            message += f"; did you mean: {', '.join(suggestions)}?"
        return cls(
            code=ErrorCode.TABLE_NOT_FOUND,
            message=message,
            details={"table": name, "suggestions": suggestions},
        )

    @classmethod
    def column_not_found(cls, reason: str) -> "CatalogError":
        return cls(
            code=ErrorCode.COLUMN_NOT_FOUND,
            message=f"Unknown column: {reason}",
            details={"reason": reason},
        )

    @classmethod
    def ambiguous_column(cls, reason: str) -> "CatalogError":
        return cls(
            code=ErrorCode.AMBIGUOUS_COLUMN,
            message=f"Ambiguous column: {reason}",
            details={"reason": reason},
        )

    @classmethod
    def name_collision(cls, name: str) -> "CatalogError":
        return cls(
            code=ErrorCode.NAME_COLLISION,
            message=f"Table name '{name}' is defined by more than one catalog",
            details={"table": name},
        )

    @classmethod
    def frozen(cls, name: str) -> "CatalogError":
        return cls(
            code=ErrorCode.CATALOG_FROZEN,
            message=f"Cannot register '{name}': catalog is frozen",
            details={"table": name},
        )


class TypeMismatchError(DevsqlError):
    """Statically detected comparison or assignment between incompatible types."""

    @classmethod
    def incompatible(
        cls, column: str, column_type: str, literal_type: str, fragment: str
    ) -> "TypeMismatchError":
        return cls(
            code=ErrorCode.TYPE_MISMATCH,
            message=(
                f"Column '{column}' is {column_type} but is used with a "
                f"{literal_type} literal in '{fragment}'"
            ),
            details={
                "column": column,
                "column_type": column_type,
                "literal_type": literal_type,
                "fragment": fragment,
            },
        )

    @classmethod
    def runtime(cls, reason: str) -> "TypeMismatchError":
        return cls(
            code=ErrorCode.TYPE_MISMATCH,
            message=f"Type mismatch: {reason}",
            details={"reason": reason},
        )


class MutationRejected(DevsqlError):
    """A mutating statement was refused before anything was written."""

    @classmethod
    def no_flag(cls, operation: str) -> "MutationRejected":
        return cls(
            code=ErrorCode.MUTATION_NO_FLAG,
            message=f"{operation} modifies data; use --dry-run or --write",
            details={"operation": operation},
        )

    @classmethod
    def unsupported_table(cls, table: str, kind: str) -> "MutationRejected":
        return cls(
            code=ErrorCode.MUTATION_UNSUPPORTED_TABLE,
            message=f"Table '{table}' ({kind}) is read-only",
            details={"table": table, "kind": kind},
        )

    @classmethod
    def unsupported_statement(cls, reason: str) -> "MutationRejected":
        return cls(
            code=ErrorCode.MUTATION_UNSUPPORTED_STATEMENT,
            message=f"Unsupported statement: {reason}",
            details={"reason": reason},
        )

    @classmethod
    def missing_where(cls, operation: str) -> "MutationRejected":
        return cls(
            code=ErrorCode.MUTATION_MISSING_WHERE,
            message=(
                f"{operation} without WHERE would affect every row; "
                "add WHERE 1=1 to confirm"
            ),
            details={"operation": operation},
        )

    @classmethod
    def readonly_column(cls, table: str, column: str) -> "MutationRejected":
        return cls(
            code=ErrorCode.MUTATION_READONLY_COLUMN,
            message=f"Column '{column}' of '{table}' cannot be written",
            details={"table": table, "column": column},
        )


class BackupFailure(DevsqlError):
    """Backup copy could not be taken; the source was not modified."""

    @classmethod
    def copy_failed(cls, path: str, reason: str) -> "BackupFailure":
        return cls(
            code=ErrorCode.BACKUP_FAILED,
            message=f"Could not back up {path}: {reason}",
            details={"path": path, "reason": reason},
        )


class SourceReadError(DevsqlError):
    """A data source could not be read."""

    @classmethod
    def unreadable(cls, path: str, reason: str) -> "SourceReadError":
        return cls(
            code=ErrorCode.SOURCE_UNREADABLE,
            message=f"Cannot read {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def git_failure(cls, path: str, reason: str) -> "SourceReadError":
        return cls(
            code=ErrorCode.SOURCE_GIT_FAILURE,
            message=f"Cannot read repository {path}: {reason}",
            details={"path": path, "reason": reason},
        )


class WriteFailure(DevsqlError):
    """Rewriting a source file failed; the original is intact."""

    @classmethod
    def write_failed(cls, path: str, reason: str, backup: str | None = None) -> "WriteFailure":
        message = f"Could not write {path}: {reason}"
        if backup:
            message += f" (backup at {backup})"
        return cls(
            code=ErrorCode.WRITE_FAILED,
            message=message,
            details={"path": path, "reason": reason, "backup": backup},
        )

    @classmethod
    def source_changed(cls, path: str) -> "WriteFailure":
        return cls(
            code=ErrorCode.WRITE_SOURCE_CHANGED,
            message=f"{path} changed while the mutation was being planned; nothing written",
            details={"path": path},
        )


class InternalError(DevsqlError):
    """Internal/unexpected errors."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )
