"""Heuristic detection of tables and section headings in normalized text.

Detection is a set of independent pure functions over an immutable list of
lines.  Each table detector returns the tagged-union models from
:mod:`rules_index.models.detection` and marks the lines it used so that
later, more generic detectors skip them:

    dice/roll-range  →  pipe-delimited  →  whitespace-aligned

Dice detection runs first because it is the narrowest and most
semantically precise shape; a run of roll rows that also happens to be
whitespace-aligned is reported once, as a dice table.

A region that *almost* matches a shape (two roll rows, a pipe block with a
broken separator) is not an error.  It is left out of the output and its
lines stay available to the next detector and to heading detection.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import structlog

from rules_index.models.detection import (
    DetectedHeading,
    DetectionResult,
    DiceRollTable,
    PipeTable,
    WhitespaceTable,
)
from rules_index.models.indexing import ExtractedHeading, ExtractedPage
from rules_index.models.rules import Confidence
from rules_index.services.ingestion.table_canonicalizer import (
    dedupe_columns,
    parse_markdown_pipe_table,
)
from rules_index.utils.confidence import points_to_confidence
from rules_index.utils.errors import DetectionError
from rules_index.utils.text_patterns import (
    ALL_CAPS_HEADING,
    CHAPTER_HEADING,
    COLUMN_GAP,
    MARKDOWN_HEADING,
    NUMBERED_HEADING,
    NUMBERED_LINE,
    PIPE_LINE,
    ROLL_CONTEXT,
    ROLL_ROW,
    ROLL_TABLE_TITLE,
)

logger = structlog.get_logger(logger_name=__name__)

MIN_TABLE_ROWS = 3
CONTEXT_LOOKBACK = 3
MAX_HEADING_LENGTH = 80
_COLUMN_TOLERANCE = 2
_MAX_WHITESPACE_CELL = 40

_KNOWN_DICE = frozenset({"d6", "d66", "2d6"})
_SINGLE_DIE_SIZES = frozenset({3, 4, 6, 8, 10, 12, 20, 100})

_TABLE_KEYWORD_TERMS = (
    "injury",
    "exploration",
    "advancement",
    "skill",
    "loot",
    "encounter",
    "event",
    "critical",
    "fumble",
    "misfire",
    "weapon",
    "armour",
    "armor",
    "equipment",
    "spell",
)

# Section names common enough in skirmish wargame rulebooks to count as
# headings even when set in mixed case.
_WARGAME_SECTIONS: list[tuple[re.Pattern[str], int]] = [
    (re.compile(r"^(?:campaign\s+rules|campaign\s+play)$", re.IGNORECASE), 1),
    (re.compile(r"^(?:post[- ]?game\s+sequence|post[- ]?battle(?:\s+sequence)?)$", re.IGNORECASE), 2),
    (re.compile(r"^exploration(?:\s+phase)?$", re.IGNORECASE), 2),
    (re.compile(r"^(?:skills|skill\s+lists?|skills\s+&\s+abilities)$", re.IGNORECASE), 2),
    (re.compile(r"^(?:equipment|weapons?\s+list|armou?r\s+list)$", re.IGNORECASE), 2),
    (re.compile(r"^(?:injuries|injury\s+table|serious\s+injuries)$", re.IGNORECASE), 2),
    (re.compile(r"^(?:warbands?|gangs?|warband\s+creation)$", re.IGNORECASE), 2),
    (re.compile(r"^(?:scenarios?|missions?)$", re.IGNORECASE), 2),
    (re.compile(r"^(?:abilities|special\s+rules?)$", re.IGNORECASE), 2),
]


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def _strip_title(text: str) -> str:
    return text.strip().rstrip(":-–— ").strip()


def find_table_context(
    lines: list[str],
    start: int,
    consumed: set[int] | frozenset[int] = frozenset(),
) -> tuple[str | None, str | None, bool]:
    """Look back a few lines from *start* for a table's title and context.

    Returns
    -------
    tuple[str | None, str | None, bool]
        ``(title, header_context, has_roll_context)``.  ``header_context``
        is the non-blank lookback lines joined with newlines; the title is
        ``"X Table"`` from a "Roll on the X Table" line when present, else
        the nearest short line that is not itself a row.
    """
    context: list[str] = []
    for index in range(start - 1, max(-1, start - 1 - CONTEXT_LOOKBACK), -1):
        if index in consumed:
            break
        line = lines[index]
        stripped = line.strip()
        if not stripped:
            continue
        if PIPE_LINE.match(line) or ROLL_ROW.match(line):
            break
        context.insert(0, stripped)

    if not context:
        return None, None, False

    has_roll_context = any(ROLL_CONTEXT.search(line) for line in context)

    title: str | None = None
    for line in reversed(context):
        match = ROLL_TABLE_TITLE.search(line)
        if match:
            title = _strip_title(match.group("title"))
            break
    if title is None:
        for line in reversed(context):
            candidate = _strip_title(line)
            if candidate and len(candidate) <= MAX_HEADING_LENGTH and not candidate[0].isdigit():
                title = candidate
                break

    return title or None, "\n".join(context), has_roll_context


def infer_dice_type(values: list[int]) -> str | None:
    """Guess the dice notation from every roll value seen in a table.

    ``d66`` when every value is a two-digit pair of 1-6 digits, ``2d6`` for a
    2..12 span, ``d6`` for 1..6, ``d{n}`` for other common single-die spans.
    """
    if not values:
        return None
    low, high = min(values), max(values)
    if high >= 11 and all(
        10 <= v <= 66 and 1 <= v // 10 <= 6 and 1 <= v % 10 <= 6 for v in values
    ):
        return "d66"
    if low == 2 and high == 12:
        return "2d6"
    if low == 1 and high in _SINGLE_DIE_SIZES:
        return f"d{high}"
    return None


def extract_table_keywords(kind: str, title: str | None, raw_text: str) -> list[str]:
    """Keywords for a table: its kind, title words, and domain terms in its text."""
    keywords: list[str] = [kind]
    if title:
        for word in re.findall(r"[a-z0-9']+", title.lower()):
            if len(word) > 3 and word not in keywords:
                keywords.append(word)
    lower = raw_text.lower()
    for term in _TABLE_KEYWORD_TERMS:
        if term in lower and term not in keywords:
            keywords.append(term)
    return keywords


# ---------------------------------------------------------------------------
# Dice / roll-range tables
# ---------------------------------------------------------------------------

@dataclass
class _RollRow:
    label: str
    low: int
    high: int
    result: str


def _is_continuation(line: str) -> bool:
    """An indented or lower-case line that continues the previous roll result."""
    stripped = line.strip()
    if not stripped or stripped[0].isdigit() or PIPE_LINE.match(line):
        return False
    return line[0].isspace() or stripped[0].islower()


def detect_dice_roll_tables(
    lines: list[str],
    page_number: int | None = None,
    consumed: set[int] | None = None,
) -> list[DiceRollTable]:
    """Find runs of at least three consecutive roll-range rows.

    Roll values must strictly increase down the run.  A run is reported
    when it has roll context in the lookback window, uses ranges, or maps
    onto a common dice type; otherwise a plain numbered list would qualify.

    Lines of reported tables are added to *consumed*.
    """
    consumed = consumed if consumed is not None else set()
    tables: list[DiceRollTable] = []
    index = 0
    total = len(lines)

    while index < total:
        if index in consumed or not ROLL_ROW.match(lines[index]):
            index += 1
            continue

        rows: list[_RollRow] = []
        cursor = index
        previous_high: int | None = None
        while cursor < total and cursor not in consumed:
            line = lines[cursor]
            match = ROLL_ROW.match(line)
            if match:
                low = int(match.group("low"))
                high = int(match.group("high") or low)
                if high < low or (previous_high is not None and low <= previous_high):
                    break
                label = f"{low}-{high}" if match.group("high") else str(low)
                rows.append(_RollRow(label=label, low=low, high=high, result=match.group("result")))
                previous_high = high
                cursor += 1
                continue
            if rows and _is_continuation(line):
                rows[-1].result = f"{rows[-1].result} {line.strip()}"
                cursor += 1
                continue
            break

        if len(rows) < MIN_TABLE_ROWS:
            index += 1
            continue

        values = [v for row in rows for v in (row.low, row.high)]
        dice_type = infer_dice_type(values)
        has_ranges = any(row.low != row.high for row in rows)
        title, header_context, has_roll_context = find_table_context(lines, index, consumed)

        if not (has_roll_context or has_ranges or dice_type in _KNOWN_DICE):
            index = cursor
            continue

        points = 0
        if len(rows) >= 6:
            points += 2
        elif len(rows) >= 4:
            points += 1
        if dice_type in _KNOWN_DICE:
            points += 2
        elif dice_type:
            points += 1
        if has_roll_context:
            points += 1

        raw_text = "\n".join(line.rstrip() for line in lines[index:cursor])
        tables.append(
            DiceRollTable(
                title=title,
                header_context=header_context,
                page_number=page_number,
                start_line=index,
                end_line=cursor,
                dice_type=dice_type,
                columns=["Roll", "Result"],
                rows=[{"Roll": row.label, "Result": row.result} for row in rows],
                raw_text=raw_text,
                confidence=points_to_confidence(points, high_at=4, medium_at=2),
            )
        )
        consumed.update(range(index, cursor))
        index = cursor

    return tables


# ---------------------------------------------------------------------------
# Pipe-delimited tables
# ---------------------------------------------------------------------------

def detect_pipe_tables(
    lines: list[str],
    page_number: int | None = None,
    consumed: set[int] | None = None,
) -> list[PipeTable]:
    """Find contiguous ``|...|`` blocks with a header, separator and data rows."""
    consumed = consumed if consumed is not None else set()
    tables: list[PipeTable] = []
    index = 0
    total = len(lines)

    while index < total:
        if index in consumed or not PIPE_LINE.match(lines[index]):
            index += 1
            continue
        cursor = index
        while cursor < total and cursor not in consumed and PIPE_LINE.match(lines[cursor]):
            cursor += 1

        raw_text = "\n".join(line.strip() for line in lines[index:cursor])
        parsed = parse_markdown_pipe_table(raw_text)
        if parsed is not None:
            title, header_context, _ = find_table_context(lines, index, consumed)
            tables.append(
                PipeTable(
                    title=title,
                    header_context=header_context,
                    page_number=page_number,
                    start_line=index,
                    end_line=cursor,
                    columns=parsed.columns,
                    rows=parsed.rows,
                    raw_text=raw_text,
                    confidence=Confidence.HIGH if len(parsed.rows) >= 3 else Confidence.MEDIUM,
                )
            )
            consumed.update(range(index, cursor))
        index = cursor

    return tables


# ---------------------------------------------------------------------------
# Whitespace-aligned tables
# ---------------------------------------------------------------------------

_CELL = re.compile(r"\S+(?: \S+)*")


def _split_cells(line: str) -> list[tuple[int, str]]:
    """Cells separated by two-plus spaces or tabs, with their start columns."""
    expanded = line.expandtabs(8)
    if not COLUMN_GAP.search(expanded.strip()):
        return []
    return [(match.start(), match.group()) for match in _CELL.finditer(expanded)]


def _aligned(starts: list[int], reference: list[int]) -> bool:
    return len(starts) == len(reference) and all(
        abs(a - b) <= _COLUMN_TOLERANCE for a, b in zip(starts, reference)
    )


def detect_whitespace_tables(
    lines: list[str],
    page_number: int | None = None,
    consumed: set[int] | None = None,
) -> list[WhitespaceTable]:
    """Find runs of lines whose cells line up in the same columns.

    The first line of a run is the header; at least two aligned data lines
    must follow.  Confidence never exceeds ``medium``.
    """
    consumed = consumed if consumed is not None else set()
    tables: list[WhitespaceTable] = []
    index = 0
    total = len(lines)

    while index < total:
        header_cells = [] if index in consumed or PIPE_LINE.match(lines[index]) else _split_cells(lines[index])
        if len(header_cells) < 2 or any(len(text) > _MAX_WHITESPACE_CELL for _, text in header_cells):
            index += 1
            continue

        reference = [start for start, _ in header_cells]
        body: list[list[str]] = []
        cursor = index + 1
        while cursor < total and cursor not in consumed and not PIPE_LINE.match(lines[cursor]):
            cells = _split_cells(lines[cursor])
            if not _aligned([start for start, _ in cells], reference):
                break
            if any(len(text) > _MAX_WHITESPACE_CELL for _, text in cells):
                break
            body.append([text for _, text in cells])
            cursor += 1

        if len(body) + 1 < MIN_TABLE_ROWS:
            index += 1
            continue

        columns = dedupe_columns([text for _, text in header_cells])
        raw_text = "\n".join(line.rstrip() for line in lines[index:cursor])
        title, header_context, _ = find_table_context(lines, index, consumed)
        tables.append(
            WhitespaceTable(
                title=title,
                header_context=header_context,
                page_number=page_number,
                start_line=index,
                end_line=cursor,
                columns=columns,
                rows=[dict(zip(columns, cells)) for cells in body],
                raw_text=raw_text,
                confidence=Confidence.MEDIUM if len(body) >= 5 else Confidence.LOW,
            )
        )
        consumed.update(range(index, cursor))
        index = cursor

    return tables


# ---------------------------------------------------------------------------
# Headings
# ---------------------------------------------------------------------------

def _next_non_blank(lines: list[str], index: int) -> str | None:
    for line in lines[index + 1:]:
        if line.strip():
            return line
    return None


def _previous_non_blank(lines: list[str], index: int) -> str | None:
    for line in reversed(lines[:index]):
        if line.strip():
            return line
    return None


def _is_list_neighbour(line: str | None) -> bool:
    return line is not None and bool(NUMBERED_LINE.match(line) or ROLL_ROW.match(line))


def _is_body_text(line: str | None, heading: str) -> bool:
    """Body text is a longer line, or one that reads like a sentence."""
    if line is None:
        return False
    stripped = line.strip()
    return len(stripped) > len(heading) or stripped.endswith((".", ":", ","))


def _is_title_case(text: str) -> bool:
    words = [w for w in re.findall(r"[A-Za-z][A-Za-z'’-]*", text)]
    if not words or len(words) > 8 or not text[0].isupper():
        return False
    significant = [w for w in words if len(w) > 3]
    if not significant:
        return all(w[0].isupper() for w in words)
    capitalised = sum(1 for w in significant if w[0].isupper())
    return capitalised / len(significant) >= 0.6


def classify_heading(lines: list[str], index: int) -> tuple[str, int] | None:
    """Return ``(title, level)`` if ``lines[index]`` is heading-shaped."""
    stripped = lines[index].strip()
    if len(stripped) < 3 or len(stripped) > MAX_HEADING_LENGTH:
        return None
    if PIPE_LINE.match(stripped) or stripped.endswith((".", ",", ";")):
        return None

    match = MARKDOWN_HEADING.match(stripped)
    if match:
        return _strip_title(match.group("title")), len(match.group("hashes"))

    if CHAPTER_HEADING.match(stripped):
        return _strip_title(stripped), 1

    for pattern, level in _WARGAME_SECTIONS:
        if pattern.match(_strip_title(stripped)):
            return _strip_title(stripped), level

    match = NUMBERED_HEADING.match(stripped)
    if match:
        following = _next_non_blank(lines, index)
        preceding = _previous_non_blank(lines, index)
        if (
            len(match.group("title").split()) <= 8
            and not _is_list_neighbour(following)
            and not _is_list_neighbour(preceding)
        ):
            return _strip_title(stripped), match.group("number").count(".") + 1
        return None

    if ROLL_ROW.match(stripped) or stripped[0].isdigit():
        return None

    if ALL_CAPS_HEADING.match(stripped) and sum(c.isalpha() for c in stripped) >= 3:
        return _strip_title(stripped), 2

    if _is_title_case(stripped) and not stripped.endswith(("!", "?")):
        preceding_line = lines[index - 1].strip() if index > 0 else ""
        following = _next_non_blank(lines, index)
        if not preceding_line and _is_body_text(following, stripped):
            return _strip_title(stripped), 3

    return None


def detect_headings(
    lines: list[str],
    page_number: int | None = None,
    excluded: set[int] | frozenset[int] = frozenset(),
) -> list[DetectedHeading]:
    """Detect heading lines; ``path`` holds only the heading's own title.

    Use :func:`assign_heading_paths` to build ancestor paths across a whole
    document.
    """
    headings: list[DetectedHeading] = []
    for index in range(len(lines)):
        if index in excluded:
            continue
        classified = classify_heading(lines, index)
        if classified is None:
            continue
        title, level = classified
        if not title:
            continue
        headings.append(
            DetectedHeading(
                title=title,
                level=level,
                page_number=page_number,
                line_index=index,
                path=[title],
            )
        )
    return headings


def assign_heading_paths(headings: list[DetectedHeading]) -> list[DetectedHeading]:
    """Attach ancestor-title paths using a level stack, in document order."""
    stack: list[tuple[int, str]] = []
    result: list[DetectedHeading] = []
    for heading in headings:
        while stack and stack[-1][0] >= heading.level:
            stack.pop()
        path = [title for _, title in stack] + [heading.title]
        stack.append((heading.level, heading.title))
        result.append(heading.model_copy(update={"path": path}))
    return result


# ---------------------------------------------------------------------------
# Facade
# ---------------------------------------------------------------------------

def detect_structure(text: str, page_number: int | None = None) -> DetectionResult:
    """Detect tables and headings in a single text (typically one page)."""
    lines = text.split("\n")
    consumed: set[int] = set()
    tables = [
        *detect_dice_roll_tables(lines, page_number, consumed),
        *detect_pipe_tables(lines, page_number, consumed),
        *detect_whitespace_tables(lines, page_number, consumed),
    ]
    tables.sort(key=lambda table: table.start_line)
    headings = assign_heading_paths(detect_headings(lines, page_number, consumed))
    return DetectionResult(tables=tables, headings=headings)


class StructureDetector:
    """Runs structure detection over every page of a normalized document.

    Headings found by the extraction service (e.g. from font sizes) can be
    passed as hints; they are added when their title is found as a whole
    line on the page and no detected heading or table already covers it.
    """

    def detect_document(
        self,
        pages: list[ExtractedPage],
        hint_headings: list[ExtractedHeading] | None = None,
    ) -> DetectionResult:
        """Detect tables and headings page by page, with document-wide paths.

        Raises
        ------
        DetectionError
            If the page list is malformed (duplicate page numbers).
        """
        seen: set[int] = set()
        for page in pages:
            if page.page_number in seen:
                raise DetectionError(f"Duplicate page number {page.page_number} in normalized pages")
            seen.add(page.page_number)

        hints_by_page: dict[int, list[ExtractedHeading]] = {}
        for hint in hint_headings or []:
            hints_by_page.setdefault(hint.page_number, []).append(hint)

        tables = []
        headings: list[DetectedHeading] = []
        for page in sorted(pages, key=lambda p: p.page_number):
            result = detect_structure(page.text, page.page_number)
            tables.extend(result.tables)
            page_headings = list(result.headings)
            hints = hints_by_page.get(page.page_number)
            if hints:
                page_headings = self._merge_hints(page.text, page.page_number, page_headings, result, hints)
            headings.extend(page_headings)

        headings = assign_heading_paths(headings)
        logger.debug(
            "structure_detected",
            pages=len(pages),
            tables=len(tables),
            headings=len(headings),
        )
        return DetectionResult(tables=tables, headings=headings)

    @staticmethod
    def _merge_hints(
        text: str,
        page_number: int,
        headings: list[DetectedHeading],
        result: DetectionResult,
        hints: list[ExtractedHeading],
    ) -> list[DetectedHeading]:
        lines = text.split("\n")
        covered = {heading.line_index for heading in headings}
        for table in result.tables:
            covered.update(range(table.start_line, table.end_line))
        merged = list(headings)
        for hint in hints:
            wanted = _strip_title(hint.title).lower()
            for index, line in enumerate(lines):
                if index not in covered and _strip_title(line).lower() == wanted:
                    merged.append(
                        DetectedHeading(
                            title=_strip_title(line),
                            level=hint.level,
                            page_number=page_number,
                            line_index=index,
                            path=[_strip_title(line)],
                        )
                    )
                    covered.add(index)
                    break
        merged.sort(key=lambda heading: heading.line_index)
        return merged
