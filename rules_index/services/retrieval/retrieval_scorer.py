"""Query-term extraction and additive keyword relevance scoring.

Everything here is pure and safe to call concurrently with indexing runs:
the scorer only ever sees text that has already been committed.

Scoring is deliberately simple and unnormalized.  For each query term a
case-insensitive substring hit is worth 2 points and a whole-word hit 2
more, so "combat" scores 4 against "Roll a D6 for combat" but only 2
against "combative notes".  Long, term-dense candidates are not penalized.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Sequence
from typing import TypeVar

from rules_index.models.rules import ScoreHints

T = TypeVar("T")

MAX_QUERY_TERMS = 12
MIN_TERM_LENGTH = 3
SUBSTRING_POINTS = 2
WHOLE_WORD_POINTS = 2

STOPWORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "to", "of", "in", "on", "for", "with",
        "from", "at", "by", "as", "is", "are", "was", "were",
        "make", "create", "build", "generate", "show", "me", "please",
        "table", "tables", "card", "cards", "widget", "widgets",
        "into", "within", "about", "using", "use",
        "rules", "pdf", "rulebook", "content", "containing", "contains",
    }
)

_NON_TERM_CHARS = re.compile(r"[^a-z0-9\s-]")

# Raw-query cues that a request is after tabular / list-shaped content.
# "table" is a stopword for term extraction, so these look at the raw text.
_ROLL_CUES = re.compile(r"\b(?:roll|rolls|dice|d6|d66|2d6|d\d+|random)\b", re.IGNORECASE)
_TABLE_CUES = re.compile(r"\b(?:tables?|chart|results?)\b", re.IGNORECASE)
_EQUIPMENT_CUES = re.compile(r"\b(?:equipment|weapons?|armou?r|gear|items?|shop|price)\b", re.IGNORECASE)
_SKILL_CUES = re.compile(r"\b(?:skills?|abilit(?:y|ies)|talents?|advances?)\b", re.IGNORECASE)


def extract_query_terms(text: str) -> list[str]:
    """Meaningful lower-case terms of a free-text request.

    Punctuation other than ``-`` becomes whitespace; tokens shorter than
    three characters and stopwords are dropped; duplicates are removed
    preserving first-seen order; at most twelve terms are returned.
    """
    if not text:
        return []
    normalized = _NON_TERM_CHARS.sub(" ", text.lower())
    terms: list[str] = []
    for token in normalized.split():
        if len(token) < MIN_TERM_LENGTH or token in STOPWORDS or token in terms:
            continue
        terms.append(token)
        if len(terms) == MAX_QUERY_TERMS:
            break
    return terms


def score_text(text: str | None, terms: Sequence[str]) -> int:
    """Additive relevance of *text* for *terms* (2 substring + 2 whole word)."""
    if not text or not terms:
        return 0
    haystack = text.lower()
    score = 0
    for term in terms:
        needle = term.lower()
        if not needle or needle not in haystack:
            continue
        score += SUBSTRING_POINTS
        if re.search(rf"\b{re.escape(needle)}\b", haystack):
            score += WHOLE_WORD_POINTS
    return score


def score_hint_bonus(hints: ScoreHints, query: str) -> int:
    """Extra points when a chunk's content flags match what the raw query asks for."""
    bonus = 0
    if _ROLL_CUES.search(query) and (hints.has_roll_ranges or hints.has_dice_notation):
        bonus += 1
    if _TABLE_CUES.search(query) and hints.has_table_pattern:
        bonus += 1
    if _EQUIPMENT_CUES.search(query) and hints.has_equipment_list:
        bonus += 1
    if _SKILL_CUES.search(query) and hints.has_skill_list:
        bonus += 1
    return bonus


def rank_candidates(
    candidates: Iterable[T],
    score: Callable[[T], int],
    min_score: int = 1,
) -> list[tuple[T, int]]:
    """Score candidates and sort descending, keeping natural order on ties.

    ``sorted`` is stable, so equal scores stay in the order the candidates
    were given (their creation/display order).
    """
    scored = [(candidate, score(candidate)) for candidate in candidates]
    kept = [(candidate, value) for candidate, value in scored if value >= min_score]
    return sorted(kept, key=lambda pair: pair[1], reverse=True)
