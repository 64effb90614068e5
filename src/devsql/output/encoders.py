"""Result encoders: table, json, jsonl, csv, raw.

Every encoder consumes a ``RowStream`` once. ``jsonl``, ``csv`` and ``raw``
write row by row; ``table`` has to see every row to size its columns.
"""

from __future__ import annotations

import base64
import csv
import json
import textwrap
from collections.abc import Callable, Iterable
from typing import Any, TextIO

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from devsql.query.engine import RowStream

FORMATS = ("table", "json", "jsonl", "csv", "raw")


def unique_names(columns: Iterable[str]) -> list[str]:
    """Disambiguate repeated column names as ``name``, ``name_2``, ``name_3``."""
    seen: set[str] = set()
    counts: dict[str, int] = {}
    result: list[str] = []
    for name in columns:
        candidate = name
        if candidate in seen:
            n = counts.get(name, 1)
            while candidate in seen:
                n += 1
                candidate = f"{name}_{n}"
            counts[name] = n
        seen.add(candidate)
        result.append(candidate)
    return result


def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _compact(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=_json_default)


def scalar_text(value: Any, null_display: str = "") -> str:
    """Flatten one value for the text formats (table, csv, raw)."""
    if value is None:
        return null_display
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return _json_default(value)
    if isinstance(value, (dict, list)):
        return _compact(value)
    if isinstance(value, float):
        return repr(value)
    return str(value)


def _records(stream: RowStream) -> Iterable[dict[str, Any]]:
    names = unique_names(stream.columns)
    for row in stream:
        yield dict(zip(names, row, strict=True))


def encode_json(stream: RowStream, out: TextIO, **_: Any) -> None:
    first = True
    for record in _records(stream):
        body = json.dumps(record, indent=2, ensure_ascii=False, default=_json_default)
        out.write("[\n" if first else ",\n")
        out.write(textwrap.indent(body, "  "))
        first = False
    out.write("[]\n" if first else "\n]\n")


def encode_jsonl(stream: RowStream, out: TextIO, **_: Any) -> None:
    for record in _records(stream):
        out.write(_compact(record))
        out.write("\n")


def encode_csv(stream: RowStream, out: TextIO, *, header: bool = True, **_: Any) -> None:
    writer = csv.writer(out, quoting=csv.QUOTE_MINIMAL, lineterminator="\r\n")
    if header and stream.columns:
        writer.writerow(stream.columns)
    for row in stream:
        writer.writerow([scalar_text(v) for v in row])


def encode_raw(stream: RowStream, out: TextIO, **_: Any) -> None:
    for row in stream:
        out.write("\t".join(scalar_text(v) for v in row))
        out.write("\n")


def encode_table(
    stream: RowStream,
    out: TextIO,
    *,
    header: bool = True,
    null_display: str = "NULL",
    **_: Any,
) -> None:
    if not stream.columns:
        return
    rows = [[scalar_text(v, null_display) for v in row] for row in stream]

    widths = [len(name) if header else 0 for name in stream.columns]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], max((len(part) for part in cell.split("\n")), default=0))

    table = Table(box=box.SIMPLE_HEAD, show_header=header, pad_edge=False, show_edge=False)
    for name in stream.columns:
        table.add_column(Text(name), no_wrap=True, overflow="ignore")
    for row in rows:
        table.add_row(*(Text(cell) for cell in row))

    # Wide enough that rich never wraps; output is the same on any terminal
    width = sum(widths) + 3 * len(widths) + 2
    console = Console(
        file=out,
        width=width,
        color_system=None,
        force_terminal=False,
        highlight=False,
        markup=False,
        emoji=False,
        soft_wrap=False,
    )
    console.print(table)


_ENCODERS: dict[str, Callable[..., None]] = {
    "table": encode_table,
    "json": encode_json,
    "jsonl": encode_jsonl,
    "csv": encode_csv,
    "raw": encode_raw,
}


def encode(
    stream: RowStream,
    fmt: str,
    out: TextIO,
    *,
    header: bool = True,
    null_display: str = "NULL",
) -> None:
    """Render ``stream`` to ``out`` in ``fmt``."""
    try:
        encoder = _ENCODERS[fmt]
    except KeyError:
        raise ValueError(f"Unknown output format: {fmt}") from None
    encoder(stream, out, header=header, null_display=null_display)
