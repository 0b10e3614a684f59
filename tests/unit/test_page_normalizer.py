"""Unit tests for page cleaning, header/footer removal and extraction-quality flags."""

from __future__ import annotations

from rules_index.models.indexing import ExtractedPage
from rules_index.services.ingestion.page_normalizer import (
    PageNormalizer,
    clean_page_text,
    get_extraction_stats,
    should_flag_scanned_pdf,
    should_use_ocr_fallback,
    split_into_pseudo_pages,
    strip_repeated_headers_footers,
)
from tests.conftest import make_pages

_BODY = "Warbands gather in the ruins to fight over wyrdstone shards and the favour of patrons."


def _body(n: int) -> str:
    return f"Body paragraph number {n}. {_BODY}"


# ======================================================================
# clean_page_text
# ======================================================================


class TestCleanPageText:
    def test_normalizes_line_endings(self) -> None:
        assert clean_page_text("one\r\ntwo\rthree") == "one\ntwo\nthree"

    def test_rejoins_hyphenated_words(self) -> None:
        assert clean_page_text("the warrior recov-\nered quickly") == "the warrior recovered quickly"

    def test_collapses_excess_blank_lines(self) -> None:
        assert clean_page_text("a\n\n\n\n\nb") == "a\n\nb"

    def test_strips_control_characters(self) -> None:
        assert clean_page_text("dead\x00ly\x07") == "deadly"

    def test_preserves_internal_space_runs(self) -> None:
        assert clean_page_text("Sword     10  \nBow") == "Sword     10\nBow"

    def test_empty_text(self) -> None:
        assert clean_page_text("") == ""


# ======================================================================
# Header / footer removal
# ======================================================================


class TestStripRepeatedHeadersFooters:
    def test_strips_page_number_footer_on_every_page(self) -> None:
        pages = make_pages(*[f"{_body(n)}\nPage {n}" for n in range(1, 6)])
        stripped, removed = strip_repeated_headers_footers(pages)

        assert removed == [f"Page {n}" for n in range(1, 6)]
        for page in stripped:
            assert "Page" not in page.text
            assert page.text.startswith("Body paragraph")
            assert page.char_count == len(page.text)

    def test_minority_line_is_preserved(self) -> None:
        texts = [f"Welcome, warband leaders\n{_body(n)}\nPage {n}" for n in (1, 2)]
        texts += [f"{_body(n)}\nPage {n}" for n in (3, 4, 5)]
        stripped, _ = strip_repeated_headers_footers(make_pages(*texts))

        assert stripped[0].text.startswith("Welcome, warband leaders")
        assert stripped[1].text.startswith("Welcome, warband leaders")

    def test_line_on_exactly_half_the_pages_is_preserved(self) -> None:
        texts = [f"Chapter Notes\n{_body(n)}" for n in (1, 2)]
        texts += [f"{_body(n)}" for n in (3, 4)]
        stripped, removed = strip_repeated_headers_footers(make_pages(*texts))

        assert removed == []
        assert stripped[0].text.startswith("Chapter Notes")

    def test_running_header_on_strict_majority_is_removed(self) -> None:
        texts = [f"Core Rules\n{_body(n)}" for n in (1, 2, 3)]
        texts.append(_body(4))
        stripped, removed = strip_repeated_headers_footers(make_pages(*texts))

        assert removed == ["Core Rules"]
        assert all(not page.text.startswith("Core Rules") for page in stripped)

    def test_single_page_is_untouched(self) -> None:
        pages = make_pages("Core Rules\nSome body\nPage 1")
        stripped, removed = strip_repeated_headers_footers(pages)
        assert removed == []
        assert stripped[0].text == pages[0].text

    def test_long_lines_are_never_headers(self) -> None:
        long_line = "x" * 120
        pages = make_pages(*[f"{long_line}\n{_body(n)}" for n in range(1, 4)])
        stripped, removed = strip_repeated_headers_footers(pages, max_line_length=100)
        assert removed == []
        assert stripped[0].text.startswith(long_line)


# ======================================================================
# Quality flags
# ======================================================================


class TestQualityFlags:
    def test_scanned_when_majority_blank(self) -> None:
        pages = make_pages("", "   \n  ", _body(1))
        assert should_flag_scanned_pdf(pages) is True

    def test_not_scanned_when_minority_blank(self) -> None:
        pages = make_pages("", _body(1), _body(2))
        assert should_flag_scanned_pdf(pages) is False

    def test_not_scanned_when_exactly_half_blank(self) -> None:
        pages = make_pages("", "", _body(1), _body(2))
        assert should_flag_scanned_pdf(pages) is False

    def test_ocr_fallback_for_sparse_but_not_blank_pages(self) -> None:
        pages = make_pages("3 ~", "ab", _body(1))
        assert should_use_ocr_fallback(pages) is True
        assert should_flag_scanned_pdf(pages) is False

    def test_no_ocr_fallback_for_healthy_pages(self) -> None:
        pages = make_pages(_body(1) * 2, _body(2) * 2, "short")
        assert should_use_ocr_fallback(pages) is False

    def test_min_chars_threshold_is_configurable(self) -> None:
        pages = make_pages("twenty characters ok", "twenty characters ok")
        assert should_use_ocr_fallback(pages, min_chars_per_page=10) is False
        assert should_use_ocr_fallback(pages, min_chars_per_page=100) is True

    def test_empty_page_list_is_unflagged(self) -> None:
        assert should_flag_scanned_pdf([]) is False
        assert should_use_ocr_fallback([]) is False


# ======================================================================
# Stats and pseudo-pages
# ======================================================================


class TestExtractionStats:
    def test_counts_empty_pages_and_average(self) -> None:
        pages = make_pages("", "abcd", "abcdef")
        stats = get_extraction_stats(pages)
        assert stats == {"pages": 3, "empty_pages": 1, "avg_chars_per_page": 3, "total_chars": 10}

    def test_no_pages(self) -> None:
        assert get_extraction_stats([])["avg_chars_per_page"] == 0


class TestSplitIntoPseudoPages:
    def test_splits_on_paragraph_boundaries(self) -> None:
        paragraphs = ["a" * 50, "b" * 50, "c" * 50]
        pages = split_into_pseudo_pages("\n\n".join(paragraphs), max_chars=120)

        assert [p.page_number for p in pages] == [1, 2]
        assert pages[0].text == f"{'a' * 50}\n\n{'b' * 50}"
        assert pages[1].text == "c" * 50

    def test_hard_splits_oversized_paragraph(self) -> None:
        text = " ".join(["word"] * 100)
        pages = split_into_pseudo_pages(text, max_chars=60)
        assert len(pages) > 1
        assert all(len(p.text) <= 60 for p in pages)
        assert " ".join(p.text for p in pages).split() == text.split()

    def test_blank_text_has_no_pages(self) -> None:
        assert split_into_pseudo_pages("  \n\n ") == []


# ======================================================================
# PageNormalizer
# ======================================================================


class TestPageNormalizer:
    def test_empty_input(self) -> None:
        result = PageNormalizer().normalize([])
        assert result.pages == []
        assert result.is_likely_scanned is False
        assert result.needs_ocr_fallback is False

    def test_normalizes_rulebook(self, rulebook_pages: list[ExtractedPage]) -> None:
        result = PageNormalizer().normalize(rulebook_pages)

        assert [p.page_number for p in result.pages] == [1, 2, 3]
        assert result.pages[0].text.startswith("CAMPAIGN RULES")
        assert result.pages[2].text.startswith("Weapons List")
        assert "Mordheim Campaign Rules" in result.removed_lines
        assert "Page 1" in result.removed_lines
        assert result.needs_ocr_fallback is False
        assert result.is_likely_scanned is False
        assert result.empty_pages == 0

    def test_sorts_pages_by_number(self) -> None:
        pages = [
            ExtractedPage(page_number=2, text="second", char_count=6),
            ExtractedPage(page_number=1, text="first", char_count=5),
        ]
        result = PageNormalizer().normalize(pages)
        assert [p.text for p in result.pages] == ["first", "second"]
