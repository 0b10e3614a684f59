"""Indexing-run models: extraction I/O, normalization output, progress events.

Architecture note:
    These models flow between the orchestrator and its collaborators.
    The text extractor and the OCR fallback both return an
    :class:`ExtractionResult`; the page normalizer returns a
    :class:`NormalizationResult`; a run ends in an :class:`IndexingResult`.
    Progress is reported as :class:`ProgressEvent` values whose ``percent``
    never decreases within one run.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from rules_index.models.rules import IndexErrorRecord, IndexStats, IndexStatus


# ---------------------------------------------------------------------------
# IndexingStage: the progress-stream vocabulary
# ---------------------------------------------------------------------------
class IndexingStage(str, Enum):  # noqa: UP042
    """Stages reported on the progress stream, in run order.

        EXTRACTING → NORMALIZING → [OCR_FALLBACK → NORMALIZING] →
        DETECTING → CHUNKING → SAVING → COMPLETE

    FAILED and CANCELLED are terminal alternatives to COMPLETE.
    """

    EXTRACTING = "extracting"
    NORMALIZING = "normalizing"
    OCR_FALLBACK = "ocr_fallback"
    DETECTING = "detecting"
    CHUNKING = "chunking"
    SAVING = "saving"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (IndexingStage.COMPLETE, IndexingStage.FAILED, IndexingStage.CANCELLED)


class ProgressEvent(BaseModel):
    """One ``{stage, percent, message}`` event on a Source's progress stream."""

    model_config = ConfigDict(frozen=True)

    source_id: str
    stage: IndexingStage
    percent: float = Field(ge=0.0, le=100.0)
    message: str = ""
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )


# ---------------------------------------------------------------------------
# Extraction collaborator I/O
# ---------------------------------------------------------------------------
class ExtractedPage(BaseModel):
    """One page of text as returned by an extractor or produced by the normalizer."""

    model_config = ConfigDict(frozen=True)

    page_number: int = Field(ge=1)
    text: str = ""
    char_count: int = Field(default=0, ge=0)


class ExtractedTable(BaseModel):
    """A table the extraction service recognised on its own."""

    model_config = ConfigDict(frozen=True)

    page_number: int = Field(ge=1)
    title: str | None = None
    columns: list[str] = Field(default_factory=list)
    rows: list[dict[str, str]] = Field(default_factory=list)
    raw_text: str = ""


class ExtractedHeading(BaseModel):
    """A heading the extraction service recognised (e.g. from font size)."""

    model_config = ConfigDict(frozen=True)

    page_number: int = Field(ge=1)
    title: str
    level: int = Field(default=1, ge=1)


class PageError(BaseModel):
    model_config = ConfigDict(frozen=True)

    page_number: int = Field(ge=1)
    message: str


class ExtractionResult(BaseModel):
    """Ordered pages plus whatever structure the extractor found opportunistically."""

    model_config = ConfigDict(frozen=True)

    pages: list[ExtractedPage] = Field(default_factory=list)
    tables: list[ExtractedTable] = Field(default_factory=list)
    headings: list[ExtractedHeading] = Field(default_factory=list)
    page_errors: list[PageError] = Field(default_factory=list)
    provider_name: str = ""


# ---------------------------------------------------------------------------
# Normalizer output
# ---------------------------------------------------------------------------
class NormalizationResult(BaseModel):
    """Cleaned pages plus the two independent extraction-quality flags."""

    model_config = ConfigDict(frozen=True)

    pages: list[ExtractedPage] = Field(default_factory=list)
    # Most pages are blank or whitespace-only.
    is_likely_scanned: bool = False
    # Most pages are non-blank but short: the actionable OCR trigger.
    needs_ocr_fallback: bool = False
    empty_pages: int = Field(default=0, ge=0)
    avg_chars_per_page: int = Field(default=0, ge=0)
    total_chars: int = Field(default=0, ge=0)
    removed_lines: list[str] = Field(
        default_factory=list,
        description="Distinct header/footer lines stripped as repeated.",
    )


# ---------------------------------------------------------------------------
# Run result
# ---------------------------------------------------------------------------
class IndexingResult(BaseModel):
    """Final outcome of ``start_indexing``: status plus stats or a structured error."""

    model_config = ConfigDict(frozen=True)

    source_id: str
    status: IndexStatus
    stats: IndexStats | None = None
    error: IndexErrorRecord | None = None

    @property
    def success(self) -> bool:
        return self.status == IndexStatus.INDEXED
