"""Section-scoped chunking with atomic tables and overlapping windows.

Splits normalized pages into :class:`~rules_index.models.rules.RulesChunk`
objects sized for retrieval (~1800 characters with ~200 characters of
overlap by default), and builds the :class:`RulesSection` records the
chunks belong to.

The chunking strategy has four rules:

1. **Section-scoped** -- a chunk never spans two detected headings.  Text
   before the first heading becomes an "Introduction" section.  A document
   with no headings at all is chunked page by page without sections.

2. **Tables are atomic** -- every line of a detected table goes into one
   block that is never split, even if it exceeds the maximum size.

3. **Paragraph-preserving with overlap** -- blocks accumulate until the
   target size is reached; the next chunk starts with trailing prose
   blocks of the previous one (up to the overlap size).  An oversized
   paragraph is split at sentence boundaries.

4. **No fragments** -- a chunk shorter than the minimum size is merged
   into its predecessor in the same section when the result stays under
   the maximum size.

Each chunk is re-scanned for the same light patterns the structure
detector uses, producing :class:`ScoreHints` and a keyword list.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

import structlog

from rules_index.models.detection import DetectionResult
from rules_index.models.indexing import ExtractedPage
from rules_index.models.rules import RulesChunk, RulesSection, ScoreHints
from rules_index.utils.text_patterns import (
    ALIGNED_NUMBER_LINE,
    BULLET_LINE,
    DICE_NOTATION,
    EQUIPMENT_TERMS,
    NUMBERED_LINE,
    PIPE_LINE,
    ROLL_RANGE_INLINE,
    SKILL_TERMS,
)

logger = structlog.get_logger(logger_name=__name__)

INTRODUCTION_TITLE = "Introduction"

# Abbreviations that should NOT trigger a sentence split.
_ABBREVIATIONS = frozenset(
    {
        "e.g",
        "i.e",
        "vs",
        "etc",
        "approx",
        "max",
        "min",
        "pts",
        "pp",
        "p",
        "ch",
        "cf",
        "No",
        "Vol",
        "St",
        "Mr",
        "Mrs",
        "Dr",
    }
)

# Wargaming vocabulary recorded as chunk keywords when present.
_IMPORTANT_TERMS = (
    "injury", "wound", "damage", "attack", "defense", "armour", "armor",
    "skill", "ability", "trait", "equipment", "weapon", "item",
    "exploration", "loot", "treasure", "encounter", "event",
    "advancement", "experience", "level", "upgrade",
    "warband", "unit", "model", "hero", "henchman",
    "deployment", "scenario", "mission", "objective",
    "movement", "shooting", "combat", "melee", "ranged",
    "morale", "rout", "flee", "recovery",
    "d6", "d66", "d3", "d10", "d20", "dice", "roll",
    "table", "chart", "list",
)


# ---------------------------------------------------------------------------
# Content analysis (shared with retrieval)
# ---------------------------------------------------------------------------

def extract_keywords(text: str) -> list[str]:
    """Return the wargaming terms that occur in *text*, in vocabulary order."""
    lower = text.lower()
    return [term for term in _IMPORTANT_TERMS if term in lower]


def analyze_score_hints(text: str) -> ScoreHints:
    """Flag roll ranges, table/list shapes, dice notation and equipment/skill lists."""
    lines = [line for line in text.split("\n") if line.strip()]

    has_roll_ranges = bool(ROLL_RANGE_INLINE.search(text))
    has_table_pattern = (
        any("\t" in line for line in lines)
        or sum(1 for line in lines if ALIGNED_NUMBER_LINE.match(line)) > 3
        or sum(1 for line in lines if PIPE_LINE.match(line)) >= 3
    )
    has_list_pattern = (
        sum(1 for line in lines if BULLET_LINE.match(line) or NUMBERED_LINE.match(line)) > 3
    )
    structured = has_table_pattern or has_list_pattern

    return ScoreHints(
        has_roll_ranges=has_roll_ranges,
        has_table_pattern=has_table_pattern,
        has_list_pattern=has_list_pattern,
        has_dice_notation=bool(DICE_NOTATION.search(text)),
        has_equipment_list=structured and bool(EQUIPMENT_TERMS.search(text)),
        has_skill_list=structured and bool(SKILL_TERMS.search(text)),
    )


# ---------------------------------------------------------------------------
# Internal structures
# ---------------------------------------------------------------------------

@dataclass
class _Block:
    text: str
    page_start: int | None
    page_end: int | None
    is_table: bool = False


@dataclass
class _Segment:
    """A run of lines belonging to one section (or one page, without headings)."""

    title: str | None
    level: int = 1
    path: list[str] = field(default_factory=list)
    # (page_number, line_index, text)
    lines: list[tuple[int | None, int, str]] = field(default_factory=list)


@dataclass
class _Draft:
    blocks: list[_Block]
    # Leading blocks copied from the previous chunk as overlap.
    overlap_count: int = 0

    @property
    def text(self) -> str:
        return "\n\n".join(block.text for block in self.blocks)


@dataclass
class ChunkingOutput:
    """Sections, chunks and the section each detected table landed in."""

    sections: list[RulesSection] = field(default_factory=list)
    chunks: list[RulesChunk] = field(default_factory=list)
    # Keyed by (page_number, start_line) of a detected table.
    table_sections: dict[tuple[int | None, int], str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# RulesChunker
# ---------------------------------------------------------------------------

class RulesChunker:
    """Splits normalized, structure-annotated text into ordered chunks.

    Parameters
    ----------
    target_size:
        Characters at which a chunk is flushed (default 1800).
    overlap:
        Characters of trailing prose carried into the next chunk (default 200).
    min_size:
        Chunks shorter than this are merged into their predecessor.
    max_size:
        Upper bound for merges and the threshold for sentence splitting.
    """

    def __init__(
        self,
        target_size: int = 1800,
        overlap: int = 200,
        min_size: int = 500,
        max_size: int = 2500,
    ) -> None:
        self._target_size = target_size
        self._overlap = overlap
        self._min_size = min_size
        self._max_size = max(max_size, target_size)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk_document(
        self,
        source_id: str,
        pages: list[ExtractedPage],
        structure: DetectionResult,
    ) -> ChunkingOutput:
        """Build sections and chunks for a whole normalized document.

        Parameters
        ----------
        source_id:
            Owning Source identifier, copied onto every record.
        pages:
            Normalized pages.
        structure:
            Detector output for the same pages; line indices in it refer
            to ``page.text.split("\\n")``.
        """
        output = ChunkingOutput()
        segments = self._build_segments(pages, structure)

        table_spans: dict[tuple[int | None, int], tuple[int, int]] = {}
        for table in structure.tables:
            table_spans[(table.page_number, table.start_line)] = (table.start_line, table.end_line)

        order_index = 0
        for segment in segments:
            section: RulesSection | None = None
            if segment.title is not None:
                pages_seen = [p for p, _, _ in segment.lines if p is not None]
                section = RulesSection(
                    source_id=source_id,
                    title=segment.title,
                    level=segment.level,
                    path=segment.path,
                    page_start=min(pages_seen) if pages_seen else None,
                    page_end=max(pages_seen) if pages_seen else None,
                    text="\n".join(text for _, _, text in segment.lines).strip() or None,
                    order_index=len(output.sections),
                )
                output.sections.append(section)

            blocks = self._segment_blocks(segment, table_spans)
            for page, start in self._tables_in_segment(segment, table_spans):
                if section is not None:
                    output.table_sections[(page, start)] = section.id

            for draft in self._assemble(blocks):
                output.chunks.append(
                    self._make_chunk(source_id, section, segment.path, draft, order_index)
                )
                order_index += 1

        logger.debug(
            "chunking_complete",
            source_id=source_id,
            sections=len(output.sections),
            chunks=len(output.chunks),
            avg_chars=self._avg_chars(output.chunks),
        )
        return output

    def chunk_sections(
        self,
        source_id: str,
        sections: list[RulesSection],
        start_index: int = 0,
    ) -> list[RulesChunk]:
        """Chunk the ``text`` of pre-built sections (structured imports).

        Order indices continue from *start_index*.
        """
        chunks: list[RulesChunk] = []
        order_index = start_index
        for section in sections:
            if not section.text or not section.text.strip():
                continue
            blocks = [
                _Block(text=paragraph, page_start=section.page_start, page_end=section.page_end)
                for paragraph in self._split_paragraphs(section.text)
            ]
            for draft in self._assemble(self._expand_long_blocks(blocks)):
                chunks.append(self._make_chunk(source_id, section, section.path, draft, order_index))
                order_index += 1
        return chunks

    # ------------------------------------------------------------------
    # Segmentation
    # ------------------------------------------------------------------

    @staticmethod
    def _build_segments(pages: list[ExtractedPage], structure: DetectionResult) -> list[_Segment]:
        headings = {(h.page_number, h.line_index): h for h in structure.headings}
        ordered = sorted(pages, key=lambda p: p.page_number)

        if not headings:
            return [
                _Segment(
                    title=None,
                    lines=[(page.page_number, i, line) for i, line in enumerate(page.text.split("\n"))],
                )
                for page in ordered
                if page.text.strip()
            ]

        segments: list[_Segment] = []
        current = _Segment(title=INTRODUCTION_TITLE, level=1, path=[INTRODUCTION_TITLE])
        for page in ordered:
            for index, line in enumerate(page.text.split("\n")):
                heading = headings.get((page.page_number, index))
                if heading is not None:
                    segments.append(current)
                    current = _Segment(title=heading.title, level=heading.level, path=list(heading.path))
                current.lines.append((page.page_number, index, line))
            # Page break acts as a paragraph break.
            current.lines.append((page.page_number, -1, ""))
        segments.append(current)

        introduction, *rest = segments
        if not any(text.strip() for _, _, text in introduction.lines):
            return rest
        return segments

    @staticmethod
    def _tables_in_segment(
        segment: _Segment,
        table_spans: dict[tuple[int | None, int], tuple[int, int]],
    ) -> list[tuple[int | None, int]]:
        return [(page, index) for page, index, _ in segment.lines if (page, index) in table_spans]

    def _segment_blocks(
        self,
        segment: _Segment,
        table_spans: dict[tuple[int | None, int], tuple[int, int]],
    ) -> list[_Block]:
        """Group a segment's lines into paragraph blocks and atomic table blocks."""
        blocks: list[_Block] = []
        paragraph: list[tuple[int | None, str]] = []
        table_lines: list[tuple[int | None, str]] = []
        table_end: tuple[int | None, int] | None = None

        def _flush(parts: list[tuple[int | None, str]], is_table: bool) -> None:
            text = "\n".join(line for _, line in parts).strip("\n")
            if not text.strip():
                return
            page_numbers = [p for p, _ in parts if p is not None]
            blocks.append(
                _Block(
                    text=text if is_table else text.strip(),
                    page_start=min(page_numbers) if page_numbers else None,
                    page_end=max(page_numbers) if page_numbers else None,
                    is_table=is_table,
                )
            )

        for page, index, line in segment.lines:
            if table_end is not None:
                if page == table_end[0] and 0 <= index < table_end[1]:
                    table_lines.append((page, line))
                    continue
                _flush(table_lines, is_table=True)
                table_lines, table_end = [], None

            span = table_spans.get((page, index))
            if span is not None:
                _flush(paragraph, is_table=False)
                paragraph = []
                table_lines = [(page, line)]
                table_end = (page, span[1])
                continue

            if not line.strip():
                _flush(paragraph, is_table=False)
                paragraph = []
                continue
            paragraph.append((page, line))

        if table_lines:
            _flush(table_lines, is_table=True)
        _flush(paragraph, is_table=False)

        return self._expand_long_blocks(blocks)

    def _expand_long_blocks(self, blocks: list[_Block]) -> list[_Block]:
        """Split prose blocks longer than *max_size* at sentence boundaries."""
        expanded: list[_Block] = []
        for block in blocks:
            if block.is_table or len(block.text) <= self._max_size:
                expanded.append(block)
                continue
            for piece in self._chunk_long_paragraph(block.text):
                expanded.append(_Block(text=piece, page_start=block.page_start, page_end=block.page_end))
        return expanded

    # ------------------------------------------------------------------
    # Paragraph / sentence splitting
    # ------------------------------------------------------------------

    @staticmethod
    def _split_paragraphs(text: str) -> list[str]:
        """Split *text* on double-newlines, discarding blanks."""
        parts = re.split(r"\n\s*\n", text)
        return [p.strip() for p in parts if p.strip()]

    @staticmethod
    def _split_sentences(text: str) -> list[str]:
        """Split *text* at sentence boundaries while respecting abbreviations.

        Periods after known abbreviations are masked with ``\\x00`` (same
        length, so indices stay aligned) before scanning for ``.``, ``!``
        and ``?`` followed by whitespace.
        """
        masked = text
        for abbr in _ABBREVIATIONS:
            masked = re.sub(rf"\b{re.escape(abbr)}\.", f"{abbr}\x00", masked)

        sentences: list[str] = []
        last = 0
        for match in re.finditer(r"[.!?](?:\s|$)", masked):
            end = match.end()
            sentence = text[last:end].strip()
            if sentence:
                sentences.append(sentence)
            last = end

        remainder = text[last:].strip()
        if remainder:
            sentences.append(remainder)
        return sentences if sentences else [text]

    def _chunk_long_paragraph(self, paragraph: str) -> list[str]:
        """Pack sentences into pieces of at most *target_size* characters."""
        pieces: list[str] = []
        current = ""
        for sentence in self._split_sentences(paragraph):
            for part in self._hard_split(sentence):
                candidate = f"{current} {part}" if current else part
                if len(candidate) > self._target_size and current:
                    pieces.append(current)
                    current = part
                else:
                    current = candidate
        if current:
            pieces.append(current)
        return pieces

    def _hard_split(self, sentence: str) -> list[str]:
        """Break a single run-on sentence on word boundaries."""
        if len(sentence) <= self._target_size:
            return [sentence]
        parts: list[str] = []
        current = ""
        for word in sentence.split():
            candidate = f"{current} {word}" if current else word
            if len(candidate) > self._target_size and current:
                parts.append(current)
                current = word
            else:
                current = candidate
        if current:
            parts.append(current)
        return parts

    # ------------------------------------------------------------------
    # Chunk accumulation
    # ------------------------------------------------------------------

    def _assemble(self, blocks: list[_Block]) -> list[_Draft]:
        """Greedily pack blocks into drafts, add overlap, merge tiny drafts."""
        drafts: list[_Draft] = []
        current: list[_Block] = []
        overlap_count = 0

        def _length(parts: list[_Block]) -> int:
            return sum(len(b.text) for b in parts) + 2 * max(0, len(parts) - 1)

        for block in blocks:
            has_own_content = len(current) > overlap_count
            projected = _length([*current, block])
            limit = self._max_size if block.is_table else self._target_size
            if has_own_content and projected > limit:
                drafts.append(_Draft(blocks=current, overlap_count=overlap_count))
                current = self._build_overlap(current)
                overlap_count = len(current)
            elif not has_own_content and current and projected > self._max_size:
                # Overlap alone would push an atomic table past the max size.
                current, overlap_count = [], 0
            current.append(block)

        if len(current) > overlap_count:
            drafts.append(_Draft(blocks=current, overlap_count=overlap_count))

        return self._merge_tiny(drafts)

    def _build_overlap(self, parts: list[_Block]) -> list[_Block]:
        """Return tail prose blocks whose combined length is <= *overlap*."""
        overlap_parts: list[_Block] = []
        total = 0
        for block in reversed(parts):
            if block.is_table or total + len(block.text) > self._overlap:
                break
            overlap_parts.insert(0, block)
            total += len(block.text)
        return overlap_parts

    def _merge_tiny(self, drafts: list[_Draft]) -> list[_Draft]:
        merged: list[_Draft] = []
        for draft in drafts:
            if merged and len(draft.text) < self._min_size:
                previous = merged[-1]
                own_blocks = draft.blocks[draft.overlap_count:]
                combined = _Draft(blocks=[*previous.blocks, *own_blocks], overlap_count=previous.overlap_count)
                if len(combined.text) <= self._max_size:
                    merged[-1] = combined
                    continue
            merged.append(draft)
        return merged

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _make_chunk(
        source_id: str,
        section: RulesSection | None,
        path: list[str],
        draft: _Draft,
        order_index: int,
    ) -> RulesChunk:
        text = draft.text
        starts = [b.page_start for b in draft.blocks if b.page_start is not None]
        ends = [b.page_end for b in draft.blocks if b.page_end is not None]
        return RulesChunk(
            source_id=source_id,
            section_id=section.id if section is not None else None,
            section_path=list(path),
            order_index=order_index,
            text=text,
            page_start=min(starts) if starts else None,
            page_end=max(ends) if ends else None,
            keywords=extract_keywords(text),
            score_hints=analyze_score_hints(text),
        )

    @staticmethod
    def _avg_chars(chunks: list[RulesChunk]) -> int:
        if not chunks:
            return 0
        return sum(len(c.text) for c in chunks) // len(chunks)
