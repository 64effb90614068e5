"""SQL parsing, static checks and execution."""

from devsql.query.engine import QueryEngine, RowStream, translate_error
from devsql.query.parser import ParsedStatement, StatementKind, parse_statement
from devsql.query.typecheck import check_types

__all__ = [
    "ParsedStatement",
    "QueryEngine",
    "RowStream",
    "StatementKind",
    "check_types",
    "parse_statement",
    "translate_error",
]
