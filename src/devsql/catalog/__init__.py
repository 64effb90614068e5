"""Virtual table catalog."""

from devsql.catalog.catalog import Catalog, unify
from devsql.catalog.models import Column, ColumnType, TableDef, TableKind

__all__ = ["Catalog", "Column", "ColumnType", "TableDef", "TableKind", "unify"]
