"""Query execution over a private in-memory SQLite database.

Only the tables a statement references are materialized, streamed from
their sources in batches through SQLAlchemy Core. The user's SQL then runs
verbatim against that database, so SQLite's own semantics apply: NULL sorts
first ascending, ``COUNT(*)`` counts every row, JSON1 functions work on
``JSON`` columns.
"""

from __future__ import annotations

import functools
import json
import re
import sqlite3
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from itertools import islice
from typing import Any

import sqlalchemy as sa
import structlog
from sqlalchemy import event
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import UserDefinedType
from sqlglot import exp

from devsql.catalog.catalog import Catalog
from devsql.catalog.models import ColumnType, TableDef, TableKind
from devsql.core.errors import (
    CatalogError,
    DevsqlError,
    InternalError,
    MutationRejected,
    ParseError,
    TypeMismatchError,
)
from devsql.query.parser import ParsedStatement, StatementKind, parse_statement
from devsql.query.typecheck import check_types
from devsql.sources.jsonl import ReadReport

log = structlog.get_logger(__name__)

BATCH_SIZE = 1000


def _convert_json(raw: bytes) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        return raw.decode("utf-8", errors="replace")


def _convert_bool(raw: bytes) -> Any:
    try:
        return bool(int(raw))
    except ValueError:
        return raw.decode("utf-8", errors="replace")


# Converters key off the first word of the declared column type
sqlite3.register_converter("JSON", _convert_json)
sqlite3.register_converter("BOOLEAN", _convert_bool)


class JsonText(UserDefinedType):  # type: ignore[type-arg]
    """Nested JSON stored as compact text; declared so results decode back."""

    cache_ok = True

    def get_col_spec(self, **kw: Any) -> str:  # noqa: ARG002
        return "JSON TEXT"

    def bind_processor(self, dialect: Any) -> Any:  # noqa: ARG002
        def process(value: Any) -> str | None:
            if value is None:
                return None
            return json.dumps(value, separators=(",", ":"), ensure_ascii=False)

        return process


_SQL_TYPES: dict[ColumnType, Any] = {
    ColumnType.TEXT: sa.Text,
    ColumnType.INTEGER: sa.Integer,
    ColumnType.REAL: sa.Float,
    ColumnType.BOOLEAN: sa.Boolean,
    ColumnType.JSON: JsonText,
}


@functools.lru_cache(maxsize=64)
def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


def _regexp(pattern: str | None, value: Any) -> bool | None:
    if pattern is None or value is None:
        return None
    return _compile(str(pattern)).search(str(value)) is not None


def check_patterns(statement: ParsedStatement) -> None:
    """Compile literal REGEXP patterns before SQLite sees them."""
    for node in statement.tree.find_all(exp.RegexpLike):
        pattern = node.expression
        if not (isinstance(pattern, exp.Literal) and pattern.is_string):
            continue
        try:
            _compile(pattern.this)
        except re.error as e:
            raise ParseError.syntax(f"invalid regular expression ({e})", pattern.this) from e


def _register_functions(dbapi_conn: Any, _connection_record: Any) -> None:
    dbapi_conn.create_function("regexp", 2, _regexp, deterministic=True)


def create_memory_engine() -> Engine:
    engine = sa.create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={
            "detect_types": sqlite3.PARSE_DECLTYPES,
            "check_same_thread": False,
        },
    )
    event.listen(engine, "connect", _register_functions)
    return engine


def quote(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def translate_error(error: Exception) -> DevsqlError:
    """Map a SQLite failure onto the error taxonomy."""
    orig = error.orig if isinstance(error, DBAPIError) else error
    message = str(orig)
    lowered = message.lower()
    if "no such column" in lowered:
        return CatalogError.column_not_found(message.split(":", 1)[-1].strip())
    if "no such table" in lowered:
        return CatalogError.table_not_found(message.split(":", 1)[-1].strip())
    if "ambiguous column" in lowered:
        return CatalogError.ambiguous_column(message.split(":", 1)[-1].strip())
    if "no such function" in lowered or "wrong number of arguments" in lowered:
        return ParseError.unknown_function(message)
    if "syntax error" in lowered or "incomplete input" in lowered or "unrecognized token" in lowered:
        return ParseError.syntax(message)
    if "values for" in lowered or "values were supplied" in lowered:
        return ParseError.syntax(message)
    # REGEXP is the only function registered on the connection
    if "user-defined function raised exception" in lowered:
        return ParseError.syntax("REGEXP pattern is not a valid regular expression")
    if "datatype mismatch" in lowered:
        return TypeMismatchError.runtime(message)
    return InternalError.unexpected(message)


@dataclass
class RowStream:
    """Column names plus a lazy row iterator; iterate once."""

    columns: list[str]
    rows: Iterator[tuple[Any, ...]] = field(default_factory=lambda: iter(()))

    def __iter__(self) -> Iterator[tuple[Any, ...]]:
        return self.rows

    @classmethod
    def of(cls, columns: list[str], rows: Iterable[Iterable[Any]]) -> RowStream:
        return cls(columns, (tuple(r) for r in rows))


class QueryEngine:
    """One invocation's database. Use as a context manager."""

    def __init__(self, catalog: Catalog, report: ReadReport | None = None) -> None:
        self.catalog = catalog
        self.report = report if report is not None else ReadReport()
        self._engine = create_memory_engine()
        self._conn: Connection = self._engine.connect()
        self._metadata = sa.MetaData()
        self._loaded: dict[str, TableDef] = {}
        self._views: set[str] = set()
        self._line_numbers: dict[str, list[int]] = {}

    def __enter__(self) -> QueryEngine:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        self._conn.close()
        self._engine.dispose()

    # =========================================================================
    # Materialization
    # =========================================================================

    def resolve(self, statement: ParsedStatement) -> dict[str, TableDef]:
        """Referenced name -> table, failing on the first unknown name."""
        return {name: self.catalog.resolve(name) for name in statement.tables}

    def is_loaded(self, table: TableDef) -> bool:
        return table.name.lower() in self._loaded

    def _create(self, table: TableDef, name: str | None = None) -> sa.Table:
        sa_table = sa.Table(
            name or table.name,
            self._metadata,
            *(sa.Column(c.name, _SQL_TYPES[c.type]) for c in table.columns),
        )
        sa_table.create(self._conn)
        return sa_table

    def _insert(self, sa_table: sa.Table, table: TableDef, records: Iterable[dict[str, Any]]) -> int:
        names = table.column_names
        rows = ({n: record.get(n) for n in names} for record in records)
        count = 0
        while batch := list(islice(rows, BATCH_SIZE)):
            self._conn.execute(sa_table.insert(), batch)
            count += len(batch)
        return count

    def load(self, table: TableDef, *, lines: list[bytes] | None = None) -> None:
        """Create and fill the physical table for ``table``.

        ``lines`` pins a JSONL_FILE table to snapshot content instead of
        reading the file again.
        """
        if self.is_loaded(table):
            return
        sa_table = self._create(table)
        if table.kind is TableKind.JSONL_FILE:
            numbers: list[int] = []

            def records() -> Iterator[dict[str, Any]]:
                for number, record in table.entries(self.report, lines):
                    numbers.append(number)
                    yield record

            count = self._insert(sa_table, table, records())
            self._line_numbers[table.name.lower()] = numbers
        else:
            count = self._insert(sa_table, table, table.rows(self.report))
        self._loaded[table.name.lower()] = table
        log.debug("table_loaded", table=table.name, kind=table.kind.value, rows=count)

    def bind(self, name: str, table: TableDef) -> None:
        """Make ``name`` queryable, loading the canonical table if needed."""
        self.load(table)
        key = name.lower()
        if key == table.name.lower() or key in self._views:
            return
        self._conn.exec_driver_sql(f"CREATE VIEW {quote(name)} AS SELECT * FROM {quote(table.name)}")
        self._views.add(key)

    def create_scratch(self, table: TableDef, name: str) -> None:
        self._create(table, name)

    def line_number(self, table: TableDef, rowid: int) -> int:
        return self._line_numbers[table.name.lower()][rowid - 1]

    # =========================================================================
    # Execution
    # =========================================================================

    def run_sql(self, sql: str, parameters: tuple[Any, ...] | None = None) -> RowStream:
        """Execute SQL as-is, mapping SQLite errors (also during iteration)."""
        try:
            if parameters:
                result = self._conn.exec_driver_sql(sql, parameters)
            else:
                result = self._conn.exec_driver_sql(sql)
        except DBAPIError as e:
            raise translate_error(e) from e
        columns = list(result.keys()) if result.returns_rows else []

        def rows() -> Iterator[tuple[Any, ...]]:
            if not result.returns_rows:
                return
            try:
                for row in result:
                    yield tuple(row)
            except (DBAPIError, sqlite3.Error) as e:
                raise translate_error(e) from e

        return RowStream(columns, rows())

    def prepare(
        self, statement: ParsedStatement, *, pinned: dict[str, list[bytes]] | None = None
    ) -> dict[str, TableDef]:
        """Resolve, type-check and materialize everything ``statement`` references."""
        tables = self.resolve(statement)
        check_types(statement, self.catalog.resolve)
        check_patterns(statement)
        pinned = pinned or {}
        for name, table in tables.items():
            if table.name.lower() in pinned:
                self.load(table, lines=pinned[table.name.lower()])
            self.bind(name, table)
        return tables

    def execute(self, sql: str | ParsedStatement) -> RowStream:
        """Run one read-only query and stream its rows."""
        statement = parse_statement(sql) if isinstance(sql, str) else sql
        if statement.kind is not StatementKind.QUERY:
            if statement.kind.mutating:
                raise MutationRejected.no_flag(statement.kind.value)
            raise MutationRejected.unsupported_statement(
                f"{type(statement.tree).__name__.upper()} statements are not supported"
            )
        self.prepare(statement)
        return self.run_sql(statement.sql)
