"""Static detection of column/literal type conflicts.

SQLite would happily compare an INTEGER column with ``'abc'`` and return no
rows. Catching that before execution turns a silent empty result into an
error that names the offending fragment.

Only direct ``column <op> literal`` pairs are checked, plus UPDATE
assignments and INSERT ... VALUES tuples. Anything the checker cannot
resolve to a single catalog column is left to SQLite.
"""

from __future__ import annotations

from collections.abc import Callable

from sqlglot import exp

from devsql.catalog.models import ColumnType, TableDef
from devsql.core.errors import TypeMismatchError
from devsql.query.parser import DIALECT, ParsedStatement, is_catalog_reference

Resolver = Callable[[str], TableDef]

_COMPARISONS = (exp.EQ, exp.NEQ, exp.GT, exp.GTE, exp.LT, exp.LTE)

_NUMERIC = (ColumnType.INTEGER, ColumnType.REAL, ColumnType.BOOLEAN)


def literal_type(node: exp.Expression) -> str | None:
    """'string', 'number', 'boolean' or None for non-literals."""
    if isinstance(node, exp.Neg):
        node = node.this
    if isinstance(node, exp.Boolean):
        return "boolean"
    if isinstance(node, exp.Literal):
        return "string" if node.is_string else "number"
    return None


def compatible(column_type: ColumnType, literal: str) -> bool:
    if column_type is ColumnType.JSON:
        return True
    if column_type in _NUMERIC:
        return literal != "string"
    return literal == "string"


class _Scope:
    """Tables visible to column references inside one SELECT/UPDATE/DELETE."""

    def __init__(self, sources: list[tuple[str, TableDef | None]]) -> None:
        self.sources = sources
        self.by_alias = {alias.lower(): table for alias, table in sources}

    def column_type(self, column: exp.Column) -> ColumnType | None:
        name = column.name
        if column.table:
            table = self.by_alias.get(column.table.lower())
            found = table.column(name) if table is not None else None
            return found.type if found is not None else None
        if not self.sources or any(table is None for _, table in self.sources):
            return None
        matches = [c for _, t in self.sources if t is not None and (c := t.column(name))]
        return matches[0].type if len(matches) == 1 else None


def _source_nodes(scope: exp.Expression) -> list[exp.Expression]:
    nodes: list[exp.Expression] = []
    if isinstance(scope, (exp.Update, exp.Delete)) and scope.this is not None:
        nodes.append(scope.this)
    from_ = scope.args.get("from") or scope.args.get("from_")
    if from_ is not None:
        nodes.append(from_.this)
    for join in scope.args.get("joins") or []:
        nodes.append(join.this)
    return nodes


class TypeChecker:
    def __init__(self, resolve: Resolver, cte_names: frozenset[str]) -> None:
        self._resolve = resolve
        self._ctes = cte_names
        self._scopes: dict[int, _Scope] = {}

    def _scope_for(self, node: exp.Expression) -> _Scope | None:
        owner = node.find_ancestor(exp.Select, exp.Update, exp.Delete)
        if owner is None:
            return None
        key = id(owner)
        if key not in self._scopes:
            sources: list[tuple[str, TableDef | None]] = []
            for source in _source_nodes(owner):
                table: TableDef | None = None
                if (
                    isinstance(source, exp.Table)
                    and is_catalog_reference(source)
                    and source.name.lower() not in self._ctes
                ):
                    table = self._resolve(source.name)
                sources.append((source.alias_or_name, table))
            self._scopes[key] = _Scope(sources)
        return self._scopes[key]

    def _check_pair(self, column: exp.Column, value: exp.Expression, fragment: exp.Expression) -> None:
        kind = literal_type(value)
        if kind is None:
            return
        scope = self._scope_for(column)
        if scope is None:
            return
        column_type = scope.column_type(column)
        if column_type is not None and not compatible(column_type, kind):
            raise TypeMismatchError.incompatible(
                column.name, column_type.value, kind, fragment.sql(dialect=DIALECT)
            )

    def check(self, statement: ParsedStatement) -> None:
        tree = statement.tree
        for node in tree.find_all(*_COMPARISONS):
            left, right = node.left, node.right
            if isinstance(left, exp.Column):
                self._check_pair(left, right, node)
            elif isinstance(right, exp.Column):
                self._check_pair(right, left, node)
        if isinstance(tree, exp.Insert):
            self._check_insert(tree)

    def _check_insert(self, tree: exp.Insert) -> None:
        values = tree.expression
        target = tree.this
        if not isinstance(values, exp.Values):
            return
        table_node = target.this if isinstance(target, exp.Schema) else target
        if not isinstance(table_node, exp.Table) or not is_catalog_reference(table_node):
            return
        table = self._resolve(table_node.name)
        if isinstance(target, exp.Schema) and target.expressions:
            names = [ident.name for ident in target.expressions]
        else:
            names = [c.name for c in table.columns if c.writable]
        for row in values.expressions:
            items = row.expressions if isinstance(row, exp.Tuple) else [row]
            for name, value in zip(names, items, strict=False):
                column = table.column(name)
                kind = literal_type(value)
                if column is None or kind is None:
                    continue
                if not compatible(column.type, kind):
                    raise TypeMismatchError.incompatible(
                        column.name, column.type.value, kind, value.sql(dialect=DIALECT)
                    )


def check_types(statement: ParsedStatement, resolve: Resolver) -> None:
    """Raise TypeMismatchError for the first incompatible column/literal pair."""
    TypeChecker(resolve, statement.cte_names).check(statement)
