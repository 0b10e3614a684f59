"""Unit tests for canonical {columns, rows} conversion."""

from __future__ import annotations

from rules_index.models.rules import RulesTable
from rules_index.services.ingestion.table_canonicalizer import (
    canonicalize_rows,
    canonicalize_table,
    dedupe_columns,
    parse_markdown_pipe_table,
    table_data_from_record,
)


class TestParseMarkdownPipeTable:
    def test_valid_table(self) -> None:
        data = parse_markdown_pipe_table("| Skill | Effect |\n|:---|---:|\n| Dodge | Avoid hits |")
        assert data is not None
        assert data.columns == ["Skill", "Effect"]
        assert data.rows == [{"Skill": "Dodge", "Effect": "Avoid hits"}]

    def test_short_rows_are_padded_and_long_rows_truncated(self) -> None:
        text = "| A | B |\n|---|---|\n| 1 |\n| 2 | 3 | 4 |"
        data = parse_markdown_pipe_table(text)
        assert data.rows == [{"A": "1", "B": ""}, {"A": "2", "B": "3"}]

    def test_blank_data_rows_are_skipped(self) -> None:
        data = parse_markdown_pipe_table("| A | B |\n|---|---|\n|  |  |\n| x | y |")
        assert data.rows == [{"A": "x", "B": "y"}]

    def test_invalid_inputs(self) -> None:
        assert parse_markdown_pipe_table("") is None
        assert parse_markdown_pipe_table("| A | B |\n|---|---|") is None
        assert parse_markdown_pipe_table("| A | B |\n| x | y |\n| z | w |") is None
        assert parse_markdown_pipe_table("| A | B |\n|---|---|\n|  |  |") is None


class TestCanonicalizeRows:
    def test_first_row_keys_define_columns(self) -> None:
        data = canonicalize_rows([{"Name": "Sword", "Cost": 10}, {"Name": "Bow", "Range": 24}])
        assert data.columns == ["Name", "Cost"]
        assert data.rows == [{"Name": "Sword", "Cost": "10"}, {"Name": "Bow", "Cost": ""}]

    def test_positional_rows_with_columns(self) -> None:
        data = canonicalize_rows([["1-2", "Dead"], ["3-6"]], ["Roll", "Result"])
        assert data.rows == [{"Roll": "1-2", "Result": "Dead"}, {"Roll": "3-6", "Result": ""}]

    def test_values_are_stringified(self) -> None:
        data = canonicalize_rows([{"a": None, "b": True, "c": [1, 2], "d": 2.5}])
        assert data.rows == [{"a": "", "b": "true", "c": "[1, 2]", "d": "2.5"}]

    def test_empty_rows(self) -> None:
        assert canonicalize_rows([]) is None
        assert canonicalize_rows([{}]) is None

    def test_every_row_has_exactly_the_columns(self) -> None:
        data = canonicalize_rows([{"x": 1, "y": 2}, {"y": 3, "z": 4}, {}])
        assert all(list(row) == data.columns for row in data.rows)


class TestDedupeColumns:
    def test_blank_and_duplicate_names(self) -> None:
        assert dedupe_columns(["Cost", "", "Cost", "Cost"]) == ["Cost", "Column 2", "Cost (2)", "Cost (3)"]


class TestTableRecords:
    def test_parsed_rows_win_over_raw_text(self) -> None:
        table = RulesTable(
            source_id="s",
            raw_text="| A |\n|---|\n| from text |",
            parsed_rows=[{"A": "from rows"}],
        )
        assert canonicalize_table(table).rows == [{"A": "from rows"}]

    def test_raw_text_fallback(self) -> None:
        data = table_data_from_record(None, "| A | B |\n|---|---|\n| from | text |")
        assert data.rows == [{"A": "from", "B": "text"}]

    def test_nothing_to_read(self) -> None:
        assert table_data_from_record(None, None) is None
        assert table_data_from_record([], "not a table") is None
