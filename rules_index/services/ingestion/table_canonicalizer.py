"""Convert raw or parsed tables into the canonical ``{columns, rows}`` form.

Two inputs are accepted:

* raw markdown pipe-table text, validated strictly (header row, dash/colon
  separator row, at least one data row).  Anything else returns ``None``;
  there is no best-effort partial parse.
* an already-parsed list of row records.  The column set comes from the
  first row's keys and every row is coerced to exactly that set.

When a table record carries both, the parsed rows win and the raw text is
never looked at.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from typing import Any

from rules_index.models.rules import RulesTable, TableData
from rules_index.utils.text_patterns import PIPE_SEPARATOR


def dedupe_columns(names: Sequence[str]) -> list[str]:
    """Fill blank column names with ``Column N`` and suffix duplicates."""
    columns: list[str] = []
    for position, name in enumerate(names, start=1):
        base = name.strip() or f"Column {position}"
        candidate = base
        suffix = 2
        while candidate in columns:
            candidate = f"{base} ({suffix})"
            suffix += 1
        columns.append(candidate)
    return columns


def _split_pipe_row(line: str) -> list[str]:
    return [cell.strip() for cell in line.strip()[1:-1].split("|")]


def parse_markdown_pipe_table(text: str) -> TableData | None:
    """Parse a markdown pipe table, or return ``None`` if it is malformed.

    Only lines that start and end with ``|`` take part.  At least three
    such lines are required, the second must match the separator pattern,
    and at least one data row must have a non-empty cell.
    """
    if not text:
        return None
    pipe_lines = [
        line.strip()
        for line in text.split("\n")
        if line.strip().startswith("|") and line.strip().endswith("|") and len(line.strip()) > 1
    ]
    if len(pipe_lines) < 3:
        return None
    if not PIPE_SEPARATOR.match(pipe_lines[1]):
        return None

    columns = dedupe_columns(_split_pipe_row(pipe_lines[0]))
    rows: list[dict[str, str]] = []
    for line in pipe_lines[2:]:
        cells = _split_pipe_row(line)
        if not any(cells):
            continue
        cells = (cells + [""] * len(columns))[: len(columns)]
        rows.append(dict(zip(columns, cells)))

    if not rows:
        return None
    return TableData(columns=columns, rows=rows)


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def canonicalize_rows(
    rows: Sequence[Mapping[str, Any] | Sequence[Any]],
    columns: Sequence[str] | None = None,
) -> TableData | None:
    """Coerce parsed rows to one column set with string values.

    Parameters
    ----------
    rows:
        Mapping rows, or positional rows when *columns* is given.
    columns:
        Explicit column names.  Without them the first mapping row's keys
        define the column set.

    Returns
    -------
    TableData | None
        ``None`` when there are no rows or no columns can be derived.
    """
    if not rows:
        return None

    if columns:
        column_set = dedupe_columns([str(c) for c in columns])
    elif isinstance(rows[0], Mapping):
        column_set = [str(key) for key in rows[0].keys()]
    else:
        column_set = [f"Column {i}" for i in range(1, len(rows[0]) + 1)]
    if not column_set:
        return None

    canonical: list[dict[str, str]] = []
    for row in rows:
        if isinstance(row, Mapping):
            canonical.append({column: _stringify(row.get(column)) for column in column_set})
        else:
            values = list(row) + [None] * len(column_set)
            canonical.append(
                {column: _stringify(value) for column, value in zip(column_set, values)}
            )
    return TableData(columns=column_set, rows=canonical)


def table_data_from_record(
    parsed_rows: Sequence[Mapping[str, Any]] | None,
    raw_text: str | None,
) -> TableData | None:
    """Canonical data for a stored table: parsed rows first, raw text second."""
    if parsed_rows:
        return canonicalize_rows(parsed_rows)
    if raw_text:
        return parse_markdown_pipe_table(raw_text)
    return None


def canonicalize_table(table: RulesTable) -> TableData | None:
    """Shortcut for :func:`table_data_from_record` on a :class:`RulesTable`."""
    return table_data_from_record(table.parsed_rows, table.raw_text)
