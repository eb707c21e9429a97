"""Rendering of result collections and status messages."""

from __future__ import annotations

import csv
import json
import sys
from typing import Dict, List, Mapping, Sequence, TextIO

from .errors import ArgumentError

FORMATS = ("table", "csv", "json", "count")


def success(message: str) -> None:
    print(f"Success: {message}")


def warning(message: str) -> None:
    print(f"Warning: {message}")


def error(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)


def report(level: str, message: str) -> int:
    """Print ``message`` at ``level`` and return the matching exit code."""

    if level == "error":
        error(message)
        return 1
    if level == "warning":
        warning(message)
    else:
        success(message)
    return 0


def render_table(rows: Sequence[Mapping[str, str]], fields: Sequence[str], stream: TextIO) -> None:
    if not rows:
        return
    widths = {
        field: max([len(field)] + [len(str(row.get(field, ""))) for row in rows])
        for field in fields
    }
    border = "+" + "+".join("-" * (widths[field] + 2) for field in fields) + "+"

    def line(values: Mapping[str, str]) -> str:
        cells = (f" {str(values.get(field, '')).ljust(widths[field])} " for field in fields)
        return "|" + "|".join(cells) + "|"

    print(border, file=stream)
    print(line({field: field for field in fields}), file=stream)
    print(border, file=stream)
    for row in rows:
        print(line(row), file=stream)
    print(border, file=stream)


def display_items(
    rows: Sequence[Mapping[str, str]],
    fields: Sequence[str],
    *,
    output_format: str = "table",
    field: str | None = None,
    stream: TextIO | None = None,
) -> None:
    """Render ``rows`` restricted to ``fields`` in the requested format."""

    out = stream or sys.stdout
    if field:
        for row in rows:
            if field not in row:
                raise ArgumentError(f"Invalid field: {field}.")
            print(row[field], file=out)
        return

    projected: List[Dict[str, str]] = [
        {name: str(row.get(name, "")) for name in fields} for row in rows
    ]
    if output_format == "table":
        render_table(projected, fields, out)
    elif output_format == "csv":
        writer = csv.DictWriter(out, fieldnames=list(fields), lineterminator="\n")
        writer.writeheader()
        writer.writerows(projected)
    elif output_format == "json":
        print(json.dumps(projected, ensure_ascii=False), file=out)
    elif output_format == "count":
        print(len(projected), file=out)
    else:
        raise ArgumentError(
            f"Invalid format '{output_format}'. Must be one of: {', '.join(FORMATS)}"
        )
