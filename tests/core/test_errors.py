"""Tests for error types, codes and exit codes."""

import contextlib
from collections.abc import Iterator

import pytest

from devsql.core.errors import (
    BackupFailure,
    CatalogError,
    ConfigError,
    DevsqlError,
    ErrorCode,
    InternalError,
    MutationRejected,
    ParseError,
    SourceReadError,
    TypeMismatchError,
    WriteFailure,
)


class TestErrorCode:
    """Error code value tests."""

    @pytest.mark.parametrize(
        ("code", "expected_range"),
        [
            (ErrorCode.PARSE_SYNTAX, 1000),
            (ErrorCode.CONFIG_INVALID_VALUE, 2000),
            (ErrorCode.TABLE_NOT_FOUND, 3000),
            (ErrorCode.TYPE_MISMATCH, 4000),
            (ErrorCode.MUTATION_NO_FLAG, 5000),
            (ErrorCode.BACKUP_FAILED, 6000),
            (ErrorCode.SOURCE_GIT_FAILURE, 7000),
            (ErrorCode.WRITE_SOURCE_CHANGED, 8000),
            (ErrorCode.INTERNAL_ERROR, 9000),
        ],
    )
    def test_codes_fall_in_their_range(self, code: ErrorCode, expected_range: int) -> None:
        assert expected_range <= code.value < expected_range + 1000


class TestExitCodes:
    """Each error family maps onto one process exit code."""

    @pytest.mark.parametrize(
        ("error", "exit_code"),
        [
            (InternalError.unexpected("boom"), 1),
            (ParseError.syntax("bad token"), 2),
            (CatalogError.table_not_found("nope"), 3),
            (CatalogError.name_collision("history"), 3),
            (TypeMismatchError.incompatible("ts", "INTEGER", "string", "ts = 'x'"), 4),
            (MutationRejected.no_flag("DELETE"), 5),
            (BackupFailure.copy_failed("/tmp/h.jsonl", "disk full"), 6),
            (SourceReadError.unreadable("/tmp/h.jsonl", "permission denied"), 7),
            (WriteFailure.write_failed("/tmp/h.jsonl", "disk full"), 8),
            (ConfigError.invalid_value("output.format", "xml", "bad"), 9),
        ],
    )
    def test_exit_code(self, error: DevsqlError, exit_code: int) -> None:
        assert error.exit_code == exit_code


class TestDevsqlError:
    """Base error behavior tests."""

    def test_to_dict_serializes_all_fields(self) -> None:
        error = DevsqlError(
            code=ErrorCode.TABLE_NOT_FOUND,
            message="Unknown table 'x'",
            details={"table": "x"},
        )

        assert error.to_dict() == {
            "code": 3001,
            "error": "TABLE_NOT_FOUND",
            "message": "Unknown table 'x'",
            "retryable": False,
            "details": {"table": "x"},
        }

    def test_str_is_human_readable(self) -> None:
        error = InternalError.unexpected("Something broke")
        assert str(error) == "[9001] INTERNAL_ERROR: Internal error: Something broke"

    def test_errors_are_exceptions(self) -> None:
        with pytest.raises(ParseError) as exc_info:
            raise ParseError.empty()
        assert exc_info.value.code is ErrorCode.PARSE_EMPTY

    def test_errors_propagate_through_context_managers(self) -> None:
        """contextmanager generators set __traceback__ on the way out."""

        @contextlib.contextmanager
        def scope() -> Iterator[None]:
            yield

        with pytest.raises(ParseError) as exc_info, scope():
            raise ParseError.empty()
        assert exc_info.value.__traceback__ is not None
        assert exc_info.value.exit_code == 2

    def test_errors_are_immutable(self) -> None:
        error = ParseError.empty()
        with pytest.raises(AttributeError):
            error.message = "changed"  # type: ignore[misc]


class TestFactories:
    """Factory methods carry context in message and details."""

    def test_syntax_error_includes_fragment(self) -> None:
        error = ParseError.syntax("Expecting )", "SELECT (1")
        assert "near 'SELECT (1'" in error.message
        assert error.details["fragment"] == "SELECT (1"

    def test_table_not_found_suggests_close_names(self) -> None:
        error = CatalogError.table_not_found("histroy", ["history", "jhistory", "todos"])
        assert "did you mean" in error.message
        assert "history" in error.details["suggestions"]

    def test_table_not_found_without_candidates_has_no_suggestion(self) -> None:
        error = CatalogError.table_not_found("zzz", ["history"])
        assert "did you mean" not in error.message
        assert error.details["suggestions"] == []

    def test_missing_where_explains_escape_hatch(self) -> None:
        error = MutationRejected.missing_where("DELETE")
        assert "WHERE 1=1" in error.message

    def test_write_failure_names_backup(self) -> None:
        error = WriteFailure.write_failed("/d/h.jsonl", "No space left", "/d/h.jsonl.1.bak")
        assert "/d/h.jsonl.1.bak" in error.message
        assert error.details["backup"] == "/d/h.jsonl.1.bak"

    def test_type_mismatch_names_fragment(self) -> None:
        error = TypeMismatchError.incompatible("timestamp", "INTEGER", "string", "timestamp = 'x'")
        assert "timestamp = 'x'" in error.message
        assert error.details["literal_type"] == "string"
