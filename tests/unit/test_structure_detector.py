"""Unit tests for table and heading detection."""

from __future__ import annotations

import pytest

from rules_index.models.detection import DetectedHeading
from rules_index.models.indexing import ExtractedHeading
from rules_index.models.rules import Confidence
from rules_index.services.ingestion.structure_detector import (
    StructureDetector,
    assign_heading_paths,
    classify_heading,
    detect_dice_roll_tables,
    detect_pipe_tables,
    detect_structure,
    detect_whitespace_tables,
    extract_table_keywords,
    infer_dice_type,
)
from rules_index.utils.errors import DetectionError
from tests.conftest import make_pages

INJURY_LINES = [
    "Roll on the Injury Table:",
    "1-2 Dead",
    "3-4 Captured",
    "5-6 Full Recovery",
]


# ======================================================================
# Dice / roll-range tables
# ======================================================================


class TestDiceRollTables:
    def test_injury_table(self) -> None:
        tables = detect_dice_roll_tables(INJURY_LINES, page_number=4)

        assert len(tables) == 1
        table = tables[0]
        assert table.kind == "dice_roll"
        assert table.title == "Injury Table"
        assert table.header_context == "Roll on the Injury Table:"
        assert table.dice_type == "d6"
        assert table.confidence == Confidence.MEDIUM
        assert table.page_number == 4
        assert (table.start_line, table.end_line) == (1, 4)
        assert table.rows == [
            {"Roll": "1-2", "Result": "Dead"},
            {"Roll": "3-4", "Result": "Captured"},
            {"Roll": "5-6", "Result": "Full Recovery"},
        ]

    def test_two_rows_is_not_a_table(self) -> None:
        lines = ["Roll a D6:", "1-3 Nothing happens", "4-6 Find a wyrdstone shard"]
        assert detect_dice_roll_tables(lines) == []

    def test_d66_table_is_high_confidence(self) -> None:
        lines = ["Roll a D66 on the Exploration Table"]
        lines += [f"{tens}1-{tens}6 Result {tens}" for tens in range(1, 7)]
        tables = detect_dice_roll_tables(lines)

        assert len(tables) == 1
        assert tables[0].dice_type == "d66"
        assert tables[0].confidence == Confidence.HIGH
        assert len(tables[0].rows) == 6

    def test_2d6_spread(self) -> None:
        lines = ["2-4 Ambush", "5-7 Quiet streets", "8-10 Loot", "11-12 Treasure"]
        tables = detect_dice_roll_tables(lines)
        assert len(tables) == 1
        assert tables[0].dice_type == "2d6"
        assert tables[0].confidence == Confidence.MEDIUM

    def test_plain_numbered_list_is_not_a_table(self) -> None:
        lines = ["1. Deploy warbands", "2. Move models", "3. Resolve combat"]
        assert detect_dice_roll_tables(lines) == []

    def test_non_increasing_rolls_break_the_run(self) -> None:
        lines = ["Roll a D6", "1-2 Dead", "3-4 Captured", "1-2 Dead again"]
        assert detect_dice_roll_tables(lines) == []

    def test_continuation_lines_join_the_previous_result(self) -> None:
        lines = [
            "Roll on the Injury Table:",
            "1-2 Dead",
            "3-4 Captured and held",
            "    for ransom",
            "5-6 Full Recovery",
        ]
        tables = detect_dice_roll_tables(lines)
        assert tables[0].rows[1]["Result"] == "Captured and held for ransom"

    def test_result_may_start_with_a_digit(self) -> None:
        lines = ["Roll on the Loot Table", "1 Nothing", "2 2 gold crowns", "3 D3 shards", "4-5 3 Wyrdstone shards"]
        tables = detect_dice_roll_tables(lines)

        assert len(tables) == 1
        assert tables[0].title == "Loot Table"
        assert tables[0].rows == [
            {"Roll": "1", "Result": "Nothing"},
            {"Roll": "2", "Result": "2 gold crowns"},
            {"Roll": "3", "Result": "D3 shards"},
            {"Roll": "4-5", "Result": "3 Wyrdstone shards"},
        ]

    def test_result_without_letters_is_not_a_row(self) -> None:
        lines = ["Roll a D6", "1 12 34", "2 56 78", "3 90 12"]
        assert detect_dice_roll_tables(lines) == []


class TestInferDiceType:
    @pytest.mark.parametrize(
        ("values", "expected"),
        [
            ([1, 2, 3, 4, 5, 6], "d6"),
            ([2, 12], "2d6"),
            ([11, 16, 21, 66], "d66"),
            ([1, 20], "d20"),
            ([3, 9], None),
            ([], None),
        ],
    )
    def test_infer(self, values: list[int], expected: str | None) -> None:
        assert infer_dice_type(values) == expected


# ======================================================================
# Pipe and whitespace tables
# ======================================================================


class TestPipeTables:
    def test_valid_pipe_table(self) -> None:
        lines = [
            "Weapons List",
            "| Weapon | Cost |",
            "|---|---|",
            "| Sword | 10 |",
            "| Bow | 15 |",
            "| Axe | 5 |",
        ]
        tables = detect_pipe_tables(lines)

        assert len(tables) == 1
        assert tables[0].columns == ["Weapon", "Cost"]
        assert tables[0].rows[0] == {"Weapon": "Sword", "Cost": "10"}
        assert tables[0].confidence == Confidence.HIGH
        assert tables[0].title == "Weapons List"

    def test_short_pipe_table_is_medium(self) -> None:
        lines = ["| Weapon | Cost |", "| :-- | --: |", "| Sword | 10 |"]
        tables = detect_pipe_tables(lines)
        assert tables[0].confidence == Confidence.MEDIUM

    def test_missing_separator_is_rejected(self) -> None:
        lines = ["| a | b |", "| c | d |", "| e | f |"]
        assert detect_pipe_tables(lines) == []


class TestWhitespaceTables:
    def test_aligned_columns(self) -> None:
        lines = [
            f"{'Name':<10}{'Cost':<7}Range",
            f"{'Sword':<10}{'10':<7}Close",
            f"{'Bow':<10}{'15':<7}24in",
        ]
        tables = detect_whitespace_tables(lines)

        assert len(tables) == 1
        assert tables[0].columns == ["Name", "Cost", "Range"]
        assert tables[0].rows[1] == {"Name": "Bow", "Cost": "15", "Range": "24in"}
        assert tables[0].confidence == Confidence.LOW

    def test_long_run_is_capped_at_medium(self) -> None:
        lines = [f"{'Name':<10}{'Cost':<7}Range"]
        lines += [f"{'Item' + str(n):<10}{str(n):<7}Close" for n in range(8)]
        tables = detect_whitespace_tables(lines)
        assert tables[0].confidence == Confidence.MEDIUM

    def test_misaligned_lines_are_not_a_table(self) -> None:
        lines = ["Name  Cost", "Sword         10", "Bow   15   Extra"]
        assert detect_whitespace_tables(lines) == []


class TestDetectStructure:
    def test_dice_table_wins_over_whitespace_reading(self) -> None:
        text = "Roll a D6:\n1-2    Dead\n3-4    Captured\n5-6    Full Recovery"
        result = detect_structure(text, page_number=1)

        assert len(result.tables) == 1
        assert result.tables[0].kind == "dice_roll"

    def test_tables_are_ordered_by_position(self) -> None:
        text = "\n".join(
            [
                "| Weapon | Cost |",
                "|---|---|",
                "| Sword | 10 |",
                "",
                *INJURY_LINES,
            ]
        )
        result = detect_structure(text)
        assert [table.kind for table in result.tables] == ["pipe", "dice_roll"]

    def test_digit_leading_result_keeps_the_table_whole(self) -> None:
        text = "Roll on the Loot Table\n1 Nothing\n2 2 gold crowns\n3 D3 shards\n4 Sword"
        result = detect_structure(text, page_number=1)

        assert len(result.tables) == 1
        assert len(result.tables[0].rows) == 4
        assert result.headings == []

    def test_table_lines_are_not_headings(self) -> None:
        text = "\n".join(["", "WEAPONS", "", "| NAME | COST |", "|---|---|", "| SWORD | 10 |"])
        result = detect_structure(text)
        assert [heading.title for heading in result.headings] == ["WEAPONS"]


# ======================================================================
# Headings
# ======================================================================


class TestHeadings:
    def test_markdown_heading(self) -> None:
        assert classify_heading(["## Movement"], 0) == ("Movement", 2)

    def test_numbered_heading_level_follows_depth(self) -> None:
        lines = ["1.2 Movement Phase", "", "Models move up to their movement value in inches."]
        assert classify_heading(lines, 0) == ("1.2 Movement Phase", 2)

    def test_numbered_list_item_is_not_a_heading(self) -> None:
        lines = ["1 Deploy Warbands", "2. Move models", "3. Resolve combat"]
        assert classify_heading(lines, 0) is None

    def test_chapter_heading(self) -> None:
        assert classify_heading(["Chapter 3: Campaigns"], 0) == ("Chapter 3: Campaigns", 1)

    def test_wargame_section_name(self) -> None:
        assert classify_heading(["Serious Injuries"], 0) == ("Serious Injuries", 2)

    def test_all_caps_heading(self) -> None:
        assert classify_heading(["HIRED SWORDS"], 0) == ("HIRED SWORDS", 2)

    def test_sentence_is_not_a_heading(self) -> None:
        assert classify_heading(["Warriors who survive gain experience."], 0) is None

    def test_title_case_needs_body_text_after_it(self) -> None:
        lines = ["", "Hired Swords", "Mercenaries can be recruited by paying their hire fee."]
        assert classify_heading(lines, 1) == ("Hired Swords", 3)
        assert classify_heading(["", "Hired Swords"], 1) is None

    def test_assign_paths_uses_level_stack(self) -> None:
        headings = [
            DetectedHeading(title="Campaign Rules", level=1, line_index=0),
            DetectedHeading(title="Experience", level=2, line_index=5),
            DetectedHeading(title="Advances", level=3, line_index=9),
            DetectedHeading(title="Injuries", level=2, line_index=14),
            DetectedHeading(title="Appendix", level=1, line_index=20),
        ]
        paths = [heading.path for heading in assign_heading_paths(headings)]

        assert paths == [
            ["Campaign Rules"],
            ["Campaign Rules", "Experience"],
            ["Campaign Rules", "Experience", "Advances"],
            ["Campaign Rules", "Injuries"],
            ["Appendix"],
        ]


class TestExtractTableKeywords:
    def test_kind_title_words_and_domain_terms(self) -> None:
        keywords = extract_table_keywords("dice_roll", "Injury Table", "1-2 Dead\nweapon lost")
        assert keywords == ["dice_roll", "injury", "table", "weapon"]


# ======================================================================
# StructureDetector
# ======================================================================


class TestStructureDetector:
    def test_duplicate_page_numbers_raise(self) -> None:
        pages = make_pages("one", "two")
        pages = [pages[0], pages[0]]
        with pytest.raises(DetectionError):
            StructureDetector().detect_document(pages)

    def test_paths_span_pages(self, rulebook_pages) -> None:
        from rules_index.services.ingestion.page_normalizer import PageNormalizer

        normalized = PageNormalizer().normalize(rulebook_pages)
        result = StructureDetector().detect_document(normalized.pages)

        assert [heading.path for heading in result.headings] == [
            ["CAMPAIGN RULES"],
            ["CAMPAIGN RULES", "Serious Injuries"],
            ["CAMPAIGN RULES", "Weapons List"],
        ]
        assert [table.kind for table in result.tables] == ["dice_roll", "pipe"]
        assert result.tables[0].page_number == 2

    def test_hint_headings_are_merged(self) -> None:
        text = "Hired swords of the realm\nMercenaries can be recruited by paying their hire fee."
        hints = [ExtractedHeading(page_number=1, title="Hired swords of the realm", level=1)]

        plain = StructureDetector().detect_document(make_pages(text))
        hinted = StructureDetector().detect_document(make_pages(text), hint_headings=hints)

        assert plain.headings == []
        assert len(hinted.headings) == 1
        assert hinted.headings[0].title == "Hired swords of the realm"
        assert hinted.headings[0].level == 1

    def test_hint_without_matching_line_is_ignored(self) -> None:
        hints = [ExtractedHeading(page_number=1, title="Not On Page", level=1)]
        result = StructureDetector().detect_document(
            make_pages("plain words only here."), hint_headings=hints
        )
        assert result.headings == []
