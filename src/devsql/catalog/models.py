"""Table and column definitions for the virtual catalog."""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any

from devsql.sources.jsonl import ReadReport, iter_jsonl, parse_lines


class ColumnType(StrEnum):
    """Declared SQL type of a virtual column."""

    TEXT = "TEXT"
    INTEGER = "INTEGER"
    REAL = "REAL"
    BOOLEAN = "BOOLEAN"
    JSON = "JSON"

    def coerce(self, value: Any) -> Any:
        """Fit a decoded JSON value into this column type.

        Values that do not fit are passed through so SQLite's affinity
        rules decide; an unrecognized boolean becomes NULL.
        """
        if value is None:
            return None
        if self is ColumnType.JSON:
            return value
        if isinstance(value, (dict, list)):
            return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
        if self is ColumnType.TEXT:
            if isinstance(value, bool):
                return "true" if value else "false"
            return value if isinstance(value, str) else str(value)
        if self is ColumnType.BOOLEAN:
            if isinstance(value, (bool, int, float)):
                return bool(value)
            if isinstance(value, str) and value.lower() in ("true", "false"):
                return value.lower() == "true"
            return None
        if self is ColumnType.INTEGER:
            if isinstance(value, bool):
                return int(value)
            if isinstance(value, float) and value.is_integer():
                return int(value)
            return value
        if self is ColumnType.REAL:
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return float(value)
            return value
        return value


@dataclass(frozen=True, slots=True)
class Column:
    """One column of a virtual table.

    ``keys`` lists the JSON object keys the value is read from, in order of
    preference. Writes go to the first key present in the object, else to
    the first key listed.
    """

    name: str
    type: ColumnType = ColumnType.TEXT
    keys: tuple[str, ...] = ()
    writable: bool = True
    description: str = ""

    @property
    def json_keys(self) -> tuple[str, ...]:
        return self.keys or (self.name,)

    def read(self, obj: dict[str, Any]) -> Any:
        for key in self.json_keys:
            if key in obj:
                return self.type.coerce(obj[key])
        return None


class TableKind(StrEnum):
    """How a table's rows are produced."""

    JSONL_FILE = "jsonl_file"
    JSON_DOCUMENT = "json_document"
    MULTI_FILE = "multi_file"
    REPOSITORY = "repository"


RowSource = Callable[[ReadReport], Iterator[dict[str, Any]]]
Decoder = Callable[[dict[str, Any]], dict[str, Any]]


def _no_rows(_report: ReadReport) -> Iterator[dict[str, Any]]:
    return iter(())


@dataclass(frozen=True, eq=False)
class TableDef:
    """Schema plus source for one virtual table.

    Identity matters: aliases resolve to the same instance, and that is how
    the catalog tells an alias apart from a name collision.
    """

    name: str
    kind: TableKind
    columns: tuple[Column, ...]
    source: RowSource = _no_rows
    path: Path | None = None
    decoder: Decoder | None = None
    description: str = ""
    _index: dict[str, Column] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_index", {c.name.lower(): c for c in self.columns})

    @property
    def mutable(self) -> bool:
        return self.kind is TableKind.JSONL_FILE

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def column(self, name: str) -> Column | None:
        return self._index.get(name.lower())

    def decode(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Map one JSON object to a record in column order."""
        if self.decoder is not None:
            return self.decoder(obj)
        return {c.name: c.read(obj) for c in self.columns}

    def encode(
        self, obj: dict[str, Any], values: dict[str, Any], *, omit_null: bool = False
    ) -> dict[str, Any]:
        """Apply column values to a copy of ``obj``.

        Existing keys keep their position; new keys are appended. Keys no
        column maps are carried through untouched.
        """
        result = dict(obj)
        for name, value in values.items():
            column = self.column(name)
            if column is None or not column.writable:
                continue
            if value is None and omit_null:
                continue
            key = next((k for k in column.json_keys if k in result), column.json_keys[0])
            result[key] = _to_json_value(column.type, value)
        return result

    def entries(
        self, report: ReadReport, lines: list[bytes] | None = None
    ) -> Iterator[tuple[int, dict[str, Any]]]:
        """Yield ``(line_number, record)`` for a JSONL_FILE table."""
        if self.path is None:
            raise ValueError(f"{self.name} is not file-backed")
        raw = parse_lines(lines, self.path, report) if lines is not None else iter_jsonl(
            self.path, report
        )
        for number, obj in raw:
            yield number, self.decode(obj)

    def rows(self, report: ReadReport) -> Iterator[dict[str, Any]]:
        if self.kind is TableKind.JSONL_FILE:
            return (record for _, record in self.entries(report))
        return self.source(report)


def _to_json_value(column_type: ColumnType, value: Any) -> Any:
    if column_type is ColumnType.JSON and isinstance(value, (str, bytes)):
        try:
            return json.loads(value)
        except ValueError:
            return value
    if column_type is ColumnType.BOOLEAN and isinstance(value, int):
        return bool(value)
    return value
