"""Statement parsing and classification with sqlglot."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

import sqlglot
from sqlglot import exp
from sqlglot.errors import ParseError as SqlglotParseError
from sqlglot.errors import TokenError

from devsql.core.errors import ParseError

DIALECT = "sqlite"


class StatementKind(StrEnum):
    QUERY = "QUERY"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    OTHER = "OTHER"

    @property
    def mutating(self) -> bool:
        return self in (StatementKind.INSERT, StatementKind.UPDATE, StatementKind.DELETE)


_QUERY_TYPES = (exp.Select, exp.Union, exp.Intersect, exp.Except, exp.Subquery, exp.Values)


@dataclass(frozen=True)
class ParsedStatement:
    """One SQL statement plus what the engine needs to know about it."""

    sql: str
    tree: exp.Expression
    kind: StatementKind
    tables: tuple[str, ...]
    cte_names: frozenset[str]

    @property
    def target(self) -> exp.Table | None:
        """Table written by INSERT/UPDATE/DELETE."""
        if not self.kind.mutating:
            return None
        node = self.tree.this
        if isinstance(node, exp.Schema):
            node = node.this
        return node if isinstance(node, exp.Table) else None

    @property
    def where(self) -> exp.Expression | None:
        clause = self.tree.args.get("where")
        return clause.this if clause is not None else None


def classify(tree: exp.Expression) -> StatementKind:
    if isinstance(tree, _QUERY_TYPES):
        return StatementKind.QUERY
    if isinstance(tree, exp.Insert):
        return StatementKind.INSERT
    if isinstance(tree, exp.Update):
        return StatementKind.UPDATE
    if isinstance(tree, exp.Delete):
        return StatementKind.DELETE
    return StatementKind.OTHER


def cte_names(tree: exp.Expression) -> frozenset[str]:
    return frozenset(cte.alias_or_name.lower() for cte in tree.find_all(exp.CTE))


def is_catalog_reference(table: exp.Table) -> bool:
    """False for table-valued functions and SQLite's own schema tables."""
    if not isinstance(table.this, exp.Identifier):
        return False
    return not table.name.lower().startswith("sqlite_")


def referenced_tables(tree: exp.Expression, ctes: frozenset[str]) -> tuple[str, ...]:
    """Table names the statement reads or writes, in first-seen order."""
    seen: dict[str, str] = {}
    for table in tree.find_all(exp.Table):
        if not is_catalog_reference(table):
            continue
        name = table.name
        if name.lower() in ctes:
            continue
        seen.setdefault(name.lower(), name)
    return tuple(seen.values())


def parse_statement(sql: str) -> ParsedStatement:
    """Parse exactly one statement.

    Raises:
        ParseError: empty input, more than one statement, or a syntax error.
    """
    if not sql or not sql.strip():
        raise ParseError.empty()
    try:
        statements = [s for s in sqlglot.parse(sql, read=DIALECT) if s is not None]
    except SqlglotParseError as e:
        first = e.errors[0] if e.errors else {}
        raise ParseError.syntax(
            first.get("description") or str(e), first.get("highlight") or None
        ) from e
    except TokenError as e:
        raise ParseError.syntax(str(e)) from e

    if not statements:
        raise ParseError.empty()
    if len(statements) > 1:
        raise ParseError.multiple_statements(len(statements))

    tree = statements[0]
    ctes = cte_names(tree)
    return ParsedStatement(
        sql=sql,
        tree=tree,
        kind=classify(tree),
        tables=referenced_tables(tree, ctes),
        cte_names=ctes,
    )
