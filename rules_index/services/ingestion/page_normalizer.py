"""Page cleaning, running header/footer removal and extraction-quality flags.

The normalizer is the first stage after extraction.  It works on the
ordered ``{page_number, text, char_count}`` pages every extractor returns
and produces a cleaned copy plus two independent flags:

* **likely scanned** -- most pages are blank or whitespace-only, the shape a
  PDF without a text layer produces.
* **needs OCR fallback** -- most pages fall under a minimum character yield.
  This is the flag the orchestrator acts on; it is also true for the fully
  blank case, but additionally catches documents with a thin, broken text
  layer (a few stray glyphs per page).

Header/footer removal compares the first and last non-blank line of every
page.  Digit runs are replaced with ``#`` before comparison so
``Page 3`` and ``Page 4`` count as the same running footer.  A line is only
stripped when its normalized form recurs on a strict majority of pages.
"""

from __future__ import annotations

import re
from collections import Counter

import structlog

from rules_index.models.indexing import ExtractedPage, NormalizationResult

logger = structlog.get_logger(logger_name=__name__)

# Fewer pages than this cannot establish a "repeated" line.
_MIN_PAGES_FOR_REPEATS = 3

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_HYPHEN_BREAK = re.compile(r"([a-z])-\n([a-z])")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_DIGIT_RUN = re.compile(r"\d+")
_SPACE_RUN = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def clean_page_text(text: str) -> str:
    """Normalise line endings, drop control characters, re-join hyphenation.

    Runs of internal spaces are preserved; whitespace-aligned tables need
    them to survive until structure detection.
    """
    if not text:
        return ""
    cleaned = text.replace("\r\n", "\n").replace("\r", "\n")
    cleaned = cleaned.replace("\u00a0", " ").replace("\f", "\n")
    cleaned = _CONTROL_CHARS.sub("", cleaned)
    cleaned = _HYPHEN_BREAK.sub(r"\1\2", cleaned)
    cleaned = "\n".join(line.rstrip() for line in cleaned.split("\n"))
    cleaned = _EXCESS_NEWLINES.sub("\n\n", cleaned)
    return cleaned.strip("\n")


def _line_key(line: str) -> str:
    """Comparison key for a candidate header/footer line."""
    key = _DIGIT_RUN.sub("#", line.strip().lower())
    return _SPACE_RUN.sub(" ", key)


def _edge_line_indices(lines: list[str]) -> tuple[int | None, int | None]:
    """Return indices of the first and last non-blank lines."""
    non_blank = [i for i, line in enumerate(lines) if line.strip()]
    if not non_blank:
        return None, None
    return non_blank[0], non_blank[-1]


def strip_repeated_headers_footers(
    pages: list[ExtractedPage],
    max_line_length: int = 100,
) -> tuple[list[ExtractedPage], list[str]]:
    """Remove running headers/footers shared by a strict majority of pages.

    Parameters
    ----------
    pages:
        Cleaned pages in page order.
    max_line_length:
        Lines this long or longer are body text, never headers/footers.

    Returns
    -------
    tuple[list[ExtractedPage], list[str]]
        The stripped pages and the distinct lines that were removed.
    """
    if len(pages) < _MIN_PAGES_FOR_REPEATS:
        return list(pages), []

    header_counts: Counter[str] = Counter()
    footer_counts: Counter[str] = Counter()
    split_pages: list[list[str]] = []

    for page in pages:
        lines = page.text.split("\n")
        split_pages.append(lines)
        first, last = _edge_line_indices(lines)
        if first is None:
            continue
        header_counts[_line_key(lines[first])] += 1
        footer_counts[_line_key(lines[last])] += 1

    def _repeated(counts: Counter[str]) -> set[str]:
        return {
            key
            for key, count in counts.items()
            if count * 2 > len(pages) and len(key) < max_line_length
        }

    repeated_headers = _repeated(header_counts)
    repeated_footers = _repeated(footer_counts)
    if not repeated_headers and not repeated_footers:
        return list(pages), []

    removed: list[str] = []
    result: list[ExtractedPage] = []
    for page, lines in zip(pages, split_pages):
        first, last = _edge_line_indices(lines)
        drop: set[int] = set()
        if first is not None and _line_key(lines[first]) in repeated_headers:
            drop.add(first)
        if last is not None and _line_key(lines[last]) in repeated_footers:
            drop.add(last)
        if not drop:
            result.append(page)
            continue
        for index in sorted(drop):
            stripped_line = lines[index].strip()
            if stripped_line not in removed:
                removed.append(stripped_line)
        text = "\n".join(line for i, line in enumerate(lines) if i not in drop).strip("\n")
        result.append(page.model_copy(update={"text": text, "char_count": len(text)}))

    return result, removed


def should_flag_scanned_pdf(pages: list[ExtractedPage]) -> bool:
    """True iff a strict majority of pages are empty or whitespace-only."""
    if not pages:
        return False
    blank = sum(1 for page in pages if not page.text.strip())
    return blank * 2 > len(pages)


def should_use_ocr_fallback(pages: list[ExtractedPage], min_chars_per_page: int = 100) -> bool:
    """True when most pages yield fewer than *min_chars_per_page* characters.

    Unlike :func:`should_flag_scanned_pdf` a page with a handful of stray
    characters still counts as low-yield.
    """
    if not pages:
        return False
    low_yield = sum(1 for page in pages if len(page.text.strip()) < min_chars_per_page)
    return low_yield * 2 > len(pages)


def get_extraction_stats(pages: list[ExtractedPage]) -> dict[str, int]:
    """Page count, empty-page count, average and total characters."""
    total_chars = sum(len(page.text.strip()) for page in pages)
    return {
        "pages": len(pages),
        "empty_pages": sum(1 for page in pages if not page.text.strip()),
        "avg_chars_per_page": round(total_chars / len(pages)) if pages else 0,
        "total_chars": total_chars,
    }


def split_into_pseudo_pages(text: str, max_chars: int = 8000) -> list[ExtractedPage]:
    """Cut pasted text into page-sized pieces on paragraph boundaries.

    A single paragraph longer than *max_chars* is hard-split at the last
    line break (or space) before the limit.
    """
    cleaned = clean_page_text(text)
    if not cleaned.strip():
        return []

    pieces: list[str] = []
    current = ""
    for paragraph in re.split(r"\n\s*\n", cleaned):
        if not paragraph.strip():
            continue
        candidate = f"{current}\n\n{paragraph}" if current else paragraph
        if len(candidate) <= max_chars:
            current = candidate
            continue
        if current:
            pieces.append(current)
        current = paragraph
        while len(current) > max_chars:
            cut = current.rfind("\n", 0, max_chars)
            if cut <= 0:
                cut = current.rfind(" ", 0, max_chars)
            if cut <= 0:
                cut = max_chars
            pieces.append(current[:cut].rstrip())
            current = current[cut:].lstrip()
    if current.strip():
        pieces.append(current)

    return [
        ExtractedPage(page_number=number, text=piece, char_count=len(piece))
        for number, piece in enumerate(pieces, start=1)
    ]


# ---------------------------------------------------------------------------
# PageNormalizer
# ---------------------------------------------------------------------------

class PageNormalizer:
    """Cleans extracted pages and classifies extraction quality.

    Parameters
    ----------
    header_footer_max_line_length:
        Lines at least this long are never considered headers/footers.
    ocr_min_chars_per_page:
        Per-page character yield under which a page counts as low-yield.
    """

    def __init__(
        self,
        header_footer_max_line_length: int = 100,
        ocr_min_chars_per_page: int = 100,
    ) -> None:
        self._max_line_length = header_footer_max_line_length
        self._ocr_min_chars = ocr_min_chars_per_page

    def normalize(self, pages: list[ExtractedPage]) -> NormalizationResult:
        """Return cleaned pages plus the scanned / OCR-fallback flags.

        An empty page list yields an empty, unflagged result.
        """
        if not pages:
            return NormalizationResult()

        cleaned = []
        for page in sorted(pages, key=lambda p: p.page_number):
            text = clean_page_text(page.text)
            cleaned.append(ExtractedPage(page_number=page.page_number, text=text, char_count=len(text)))

        stripped, removed = strip_repeated_headers_footers(cleaned, self._max_line_length)
        stats = get_extraction_stats(stripped)
        result = NormalizationResult(
            pages=stripped,
            is_likely_scanned=should_flag_scanned_pdf(stripped),
            needs_ocr_fallback=should_use_ocr_fallback(stripped, self._ocr_min_chars),
            empty_pages=stats["empty_pages"],
            avg_chars_per_page=stats["avg_chars_per_page"],
            total_chars=stats["total_chars"],
            removed_lines=removed,
        )

        logger.debug(
            "pages_normalized",
            pages=len(stripped),
            removed_lines=len(removed),
            empty_pages=result.empty_pages,
            is_likely_scanned=result.is_likely_scanned,
            needs_ocr_fallback=result.needs_ocr_fallback,
        )
        return result
