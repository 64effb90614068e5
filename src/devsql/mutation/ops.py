"""Guarded INSERT/UPDATE/DELETE against single-file JSONL tables.

Every statement goes through ``MutationGuard.run``:

    read-only            -> executed directly
    mutating, no flag    -> MutationRejected
    mutating, --dry-run  -> plan, preview, nothing written
    mutating, --write    -> plan, backup, atomic rewrite

The plan is computed once, against a byte snapshot of the file, and both
the preview and the rewrite are derived from that same plan object.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
from sqlglot import exp

from devsql.catalog.catalog import Catalog
from devsql.catalog.models import TableDef
from devsql.core.errors import CatalogError, MutationRejected
from devsql.mutation.writer import atomic_write, render, take_backup
from devsql.query.engine import QueryEngine, RowStream, quote
from devsql.query.parser import DIALECT, ParsedStatement, StatementKind, parse_statement
from devsql.query.typecheck import check_types
from devsql.sources.jsonl import FileSnapshot, ReadReport

log = structlog.get_logger(__name__)

LINE_COLUMN = "_line"
SUMMARY_COLUMNS = ["operation", "table", "rows_affected", "backup_path", "source_path"]

_ROWID = "__devsql_rowid"
_PENDING_PREFIX = "__devsql_pending_"


@dataclass(frozen=True)
class AffectedRow:
    """One line the mutation touches.

    ``before`` is the original JSON object (None for inserts), ``after`` the
    object that will be written (None for deletes), ``record`` the row as
    the table would show it once the mutation is applied (for deletes, the
    row being removed).
    """

    line: int
    before: dict[str, Any] | None
    after: dict[str, Any] | None
    record: dict[str, Any]


@dataclass(frozen=True)
class MutationPlan:
    operation: str
    name: str
    table: TableDef
    snapshot: FileSnapshot
    rows: tuple[AffectedRow, ...]

    @property
    def rows_affected(self) -> int:
        return len(self.rows)

    @property
    def path(self) -> Path:
        return self.snapshot.path

    def preview(self) -> RowStream:
        names = self.table.column_names
        rows = ([row.line, *(row.record.get(c) for c in names)] for row in self.rows)
        return RowStream.of([LINE_COLUMN, *names], rows)


@dataclass(frozen=True)
class MutationResult:
    """Outcome of a guarded mutation."""

    operation: str
    table: str
    rows_affected: int
    dry_run: bool
    applied: bool
    source_path: Path
    backup_path: Path | None = None

    def summary(self) -> RowStream:
        return RowStream.of(
            SUMMARY_COLUMNS,
            [
                [
                    self.operation,
                    self.table,
                    self.rows_affected,
                    str(self.backup_path) if self.backup_path else None,
                    str(self.source_path),
                ]
            ],
        )


@dataclass
class Outcome:
    """What ``MutationGuard.run`` hands back for rendering."""

    stream: RowStream
    mutation: MutationResult | None = None
    plan: MutationPlan | None = None


def _with_prefix(tree: exp.Expression) -> str:
    """The statement's leading WITH clause, ready to prefix generated SQL."""
    clause = tree.args.get("with") or tree.args.get("with_")
    return f"{clause.sql(dialect=DIALECT)} " if clause is not None else ""


def _reject_unsupported_clauses(statement: ParsedStatement) -> None:
    tree = statement.tree
    if tree.args.get("returning"):
        raise MutationRejected.unsupported_statement("RETURNING is not supported")
    if isinstance(tree, exp.Insert) and tree.args.get("conflict"):
        raise MutationRejected.unsupported_statement("ON CONFLICT is not supported")
    if isinstance(tree, exp.Update) and (tree.args.get("from") or tree.args.get("from_")):
        raise MutationRejected.unsupported_statement("UPDATE ... FROM is not supported")
    if isinstance(tree, (exp.Update, exp.Delete)) and (
        tree.args.get("limit") or tree.args.get("order")
    ):
        raise MutationRejected.unsupported_statement(
            f"ORDER BY/LIMIT on {statement.kind.value} is not supported"
        )
    if isinstance(tree, (exp.Update, exp.Delete)) and tree.args.get("joins"):
        raise MutationRejected.unsupported_statement(f"joins in {statement.kind.value}")


class MutationGuard:
    """Entry point for every statement; owns the invocation's QueryEngine."""

    def __init__(
        self,
        catalog: Catalog,
        *,
        require_where: bool = True,
        report: ReadReport | None = None,
    ) -> None:
        self.catalog = catalog
        self.require_where = require_where
        self.engine = QueryEngine(catalog, report)

    @property
    def report(self) -> ReadReport:
        return self.engine.report

    def __enter__(self) -> MutationGuard:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        self.engine.close()

    def run(self, sql: str, *, dry_run: bool = False, write: bool = False) -> Outcome:
        statement = parse_statement(sql)
        if statement.kind is StatementKind.QUERY:
            return Outcome(self.engine.execute(statement))
        if not statement.kind.mutating:
            raise MutationRejected.unsupported_statement(
                f"{type(statement.tree).__name__.upper()} statements are not supported"
            )

        name, table = self.check(statement)
        if not dry_run and not write:
            raise MutationRejected.no_flag(statement.kind.value)

        plan = self.plan(statement, name, table)
        if dry_run:
            if write:
                log.warning("dry_run_overrides_write", table=table.name)
            result = MutationResult(
                statement.kind.value, name, plan.rows_affected, True, False, plan.path
            )
            return Outcome(plan.preview(), result, plan)
        result = self.apply(plan)
        return Outcome(result.summary(), result, plan)

    # =========================================================================
    # Validation
    # =========================================================================

    def check(self, statement: ParsedStatement) -> tuple[str, TableDef]:
        """Reject statements that may never run, before any flag is considered."""
        target = statement.target
        if target is None:
            raise MutationRejected.unsupported_statement("mutation target is not a plain table")
        name = target.name
        table = self.catalog.resolve(name)
        if not table.mutable:
            raise MutationRejected.unsupported_table(name, table.kind.value)
        _reject_unsupported_clauses(statement)
        if (
            self.require_where
            and statement.kind in (StatementKind.UPDATE, StatementKind.DELETE)
            and statement.where is None
        ):
            raise MutationRejected.missing_where(statement.kind.value)
        self._check_columns(statement, table)
        self.engine.resolve(statement)
        check_types(statement, self.catalog.resolve)
        return name, table

    def _check_columns(self, statement: ParsedStatement, table: TableDef) -> None:
        for column_name in self._written_columns(statement, table):
            column = table.column(column_name)
            if column is None:
                raise CatalogError.column_not_found(f"{table.name}.{column_name}")
            if not column.writable:
                raise MutationRejected.readonly_column(table.name, column.name)

    @staticmethod
    def _written_columns(statement: ParsedStatement, table: TableDef) -> list[str]:
        tree = statement.tree
        if isinstance(tree, exp.Update):
            return [eq.this.name for eq in tree.expressions]
        if isinstance(tree, exp.Insert) and isinstance(tree.this, exp.Schema):
            return [ident.name for ident in tree.this.expressions]
        return []

    # =========================================================================
    # Planning
    # =========================================================================

    def plan(self, statement: ParsedStatement, name: str, table: TableDef) -> MutationPlan:
        assert table.path is not None
        snapshot = FileSnapshot.capture(table.path)
        self.engine.prepare(statement, pinned={table.name.lower(): snapshot.lines})

        if statement.kind is StatementKind.INSERT:
            rows = self._plan_insert(statement, table, snapshot)
        else:
            rows = self._plan_existing(statement, name, table, snapshot)
        plan = MutationPlan(statement.kind.value, name, table, snapshot, tuple(rows))
        log.debug(
            "mutation_planned",
            operation=plan.operation,
            table=table.name,
            rows=plan.rows_affected,
            digest=snapshot.digest[:12],
        )
        return plan

    def _plan_existing(
        self, statement: ParsedStatement, name: str, table: TableDef, snapshot: FileSnapshot
    ) -> list[AffectedRow]:
        tree = statement.tree
        target = statement.target
        alias = target.alias_or_name if target is not None else name
        assignments: list[tuple[str, str]] = []
        if isinstance(tree, exp.Update):
            assignments = [
                (eq.this.name, eq.expression.sql(dialect=DIALECT)) for eq in tree.expressions
            ]

        select = [f"{quote(alias)}.rowid AS {_ROWID}", f"{quote(alias)}.*"]
        select += [f"{expr} AS __devsql_set_{i}" for i, (_, expr) in enumerate(assignments)]
        sql = (
            f"{_with_prefix(tree)}SELECT {', '.join(select)} "
            f"FROM {quote(table.name)} AS {quote(alias)}"
        )
        if statement.where is not None:
            sql += f" WHERE {statement.where.sql(dialect=DIALECT)}"
        sql += f" ORDER BY {quote(alias)}.rowid"

        lines = snapshot.lines
        rows: list[AffectedRow] = []
        width = len(table.columns)
        for values in self.engine.run_sql(sql):
            line = self.engine.line_number(table, values[0])
            before = json.loads(lines[line - 1])
            if assignments:
                new_values = {col: values[1 + width + i] for i, (col, _) in enumerate(assignments)}
                after = table.encode(before, new_values)
                rows.append(AffectedRow(line, before, after, table.decode(after)))
            else:
                record = dict(zip(table.column_names, values[1 : 1 + width], strict=True))
                rows.append(AffectedRow(line, before, None, record))
        return rows

    def _plan_insert(
        self, statement: ParsedStatement, table: TableDef, snapshot: FileSnapshot
    ) -> list[AffectedRow]:
        tree = statement.tree
        assert isinstance(tree, exp.Insert)
        pending = f"{_PENDING_PREFIX}{table.name}"
        self.engine.create_scratch(table, pending)

        writable = [c.name for c in table.columns if c.writable]
        named = self._written_columns(statement, table)
        source = tree.expression
        if source is None:
            sql = f"INSERT INTO {quote(pending)} DEFAULT VALUES"
        else:
            # Without a column list, values line up with the writable columns only
            columns = ", ".join(quote(c) for c in named or writable)
            sql = (
                f"{_with_prefix(tree)}INSERT INTO {quote(pending)} ({columns}) "
                f"{source.sql(dialect=DIALECT)}"
            )
        self.engine.run_sql(sql)

        keep = {c.lower() for c in named or writable}
        start = len(snapshot.lines)
        rows: list[AffectedRow] = []
        pending_rows = self.engine.run_sql(f"SELECT * FROM {quote(pending)} ORDER BY rowid")
        for offset, values in enumerate(pending_rows):
            provided = {
                column: value
                for column, value in zip(table.column_names, values, strict=True)
                if column.lower() in keep
            }
            after = table.encode({}, provided, omit_null=True)
            rows.append(AffectedRow(start + offset + 1, None, after, table.decode(after)))
        return rows

    # =========================================================================
    # Apply
    # =========================================================================

    def apply(self, plan: MutationPlan) -> MutationResult:
        """Back up, then atomically rewrite. Empty plans write nothing."""
        backup: Path | None = None
        if plan.rows_affected:
            if plan.snapshot.exists:
                backup = take_backup(plan.snapshot)
            atomic_write(plan.snapshot, render(plan), backup)
        log.info(
            "mutation_applied",
            operation=plan.operation,
            table=plan.table.name,
            rows=plan.rows_affected,
            backup=str(backup) if backup else None,
        )
        return MutationResult(
            plan.operation, plan.name, plan.rows_affected, False, True, plan.path, backup
        )
