"""Unit tests for query-term extraction and keyword scoring."""

from __future__ import annotations

import pytest

from rules_index.models.rules import ScoreHints
from rules_index.services.retrieval.retrieval_scorer import (
    MAX_QUERY_TERMS,
    extract_query_terms,
    rank_candidates,
    score_hint_bonus,
    score_text,
)


class TestExtractQueryTerms:
    def test_drops_stopwords_and_short_tokens(self) -> None:
        assert extract_query_terms("Make me an injury table widget!") == ["injury"]

    def test_keeps_hyphenated_terms(self) -> None:
        assert extract_query_terms("Post-game sequence, please") == ["post-game", "sequence"]

    def test_deduplicates_in_first_seen_order(self) -> None:
        assert extract_query_terms("skills Skills weapons SKILLS") == ["skills", "weapons"]

    def test_caps_term_count(self) -> None:
        query = " ".join(f"term{n:02d}" for n in range(20))
        assert len(extract_query_terms(query)) == MAX_QUERY_TERMS

    def test_empty(self) -> None:
        assert extract_query_terms("") == []
        assert extract_query_terms("the a to") == []


class TestScoreText:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("Roll a D6 for combat", 4),
            ("combative notes", 2),
            ("Nothing to see", 0),
            ("", 0),
            (None, 0),
        ],
    )
    def test_combat(self, text: str | None, expected: int) -> None:
        assert score_text(text, ["combat"]) == expected

    def test_terms_are_additive(self) -> None:
        assert score_text("Combat skills for heroes", ["combat", "skills", "dragons"]) == 8

    def test_no_terms(self) -> None:
        assert score_text("Roll a D6 for combat", []) == 0


class TestScoreHintBonus:
    def test_roll_and_table_cues(self) -> None:
        hints = ScoreHints(has_roll_ranges=True, has_table_pattern=True)
        assert score_hint_bonus(hints, "roll on the injury table") == 2

    def test_equipment_and_skill_cues(self) -> None:
        hints = ScoreHints(has_equipment_list=True, has_skill_list=True)
        assert score_hint_bonus(hints, "weapons") == 1
        assert score_hint_bonus(hints, "skills and weapons") == 2

    def test_no_matching_flags(self) -> None:
        assert score_hint_bonus(ScoreHints(), "roll on the injury table") == 0


class TestRankCandidates:
    def test_sorted_descending_with_stable_ties(self) -> None:
        ranked = rank_candidates(["b1", "a3", "c1", "d0", "e3"], lambda s: int(s[1]))
        assert ranked == [("a3", 3), ("e3", 3), ("b1", 1), ("c1", 1)]

    def test_min_score(self) -> None:
        ranked = rank_candidates([1, 2, 3], lambda n: n, min_score=2)
        assert [candidate for candidate, _ in ranked] == [3, 2]
