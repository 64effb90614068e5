"""Name -> table resolution."""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from devsql.catalog.models import TableDef
from devsql.core.errors import CatalogError

log = structlog.get_logger(__name__)


class Catalog:
    """Case-insensitive mapping of table names (and aliases) to definitions.

    Built once per invocation, then frozen. An alias is simply a second name
    bound to the same ``TableDef`` instance.
    """

    def __init__(self, tables: Iterable[TableDef] = ()) -> None:
        self._tables: dict[str, TableDef] = {}
        self._canonical: dict[str, str] = {}
        self._frozen = False
        for table in tables:
            self.register(table)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> Catalog:
        self._frozen = True
        return self

    def _check_open(self, name: str) -> None:
        if self._frozen:
            raise CatalogError.frozen(name)

    def register(self, table: TableDef) -> None:
        self._check_open(table.name)
        key = table.name.lower()
        if key in self._tables:
            raise CatalogError.name_collision(table.name)
        self._tables[key] = table
        self._canonical[key] = table.name

    def alias(self, new: str, existing: str) -> None:
        self._check_open(new)
        key = new.lower()
        if key in self._tables:
            raise CatalogError.name_collision(new)
        self._tables[key] = self.resolve(existing)
        self._canonical[key] = new

    def resolve(self, name: str) -> TableDef:
        table = self._tables.get(name.lower())
        if table is None:
            raise CatalogError.table_not_found(name, self._canonical.values())
        return table

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._tables

    def names(self) -> list[str]:
        """Every bound name, aliases included, in registration order."""
        return list(self._canonical.values())

    def is_alias(self, name: str) -> bool:
        return self.resolve(name).name.lower() != name.lower()

    def entries(self) -> list[tuple[str, TableDef]]:
        return [(self._canonical[key], table) for key, table in self._tables.items()]

    def list(self) -> list[TableDef]:  # noqa: A003
        """Distinct tables in registration order (aliases not repeated)."""
        seen: dict[int, TableDef] = {}
        for table in self._tables.values():
            seen.setdefault(id(table), table)
        return [*seen.values()]


def unify(left: Catalog, right: Catalog) -> Catalog:
    """Merge two catalogs into a frozen union.

    A name bound in both is only accepted when both bindings are the very
    same ``TableDef``.
    """
    merged = Catalog()
    for name, table in left.entries():
        merged._tables[name.lower()] = table
        merged._canonical[name.lower()] = name
    for name, table in right.entries():
        key = name.lower()
        existing = merged._tables.get(key)
        if existing is not None and existing is not table:
            raise CatalogError.name_collision(name)
        merged._tables[key] = table
        merged._canonical.setdefault(key, name)
    log.debug("catalogs_unified", tables=len(merged.names()))
    return merged.freeze()
