"""Persistent rules-knowledge-base models.

Defines Pydantic v2 models for a rules Source and everything derived from
it during indexing: Pages, Sections, Chunks, Tables, Datasets and Dataset
Rows.  All models use frozen config; status changes on a Source produce a
new instance via ``model_copy(update={...})``.

Ownership:
    Every Page, Section, Chunk, Table and Dataset carries the ``source_id``
    of exactly one :class:`RulesSource`.  Stores delete them wholesale when
    that Source is deleted or re-indexed, so nothing here is ever merged
    incrementally.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _new_id() -> str:
    return str(uuid.uuid4())


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class IndexStatus(str, Enum):  # noqa: UP042
    """Indexing lifecycle of a Source.

        NOT_INDEXED → INDEXING → {INDEXED | FAILED}

    Re-entry to INDEXING is allowed from either terminal state.  Only the
    indexing orchestrator writes this field.
    """

    NOT_INDEXED = "not_indexed"
    INDEXING = "indexing"
    INDEXED = "indexed"
    FAILED = "failed"


class SourceOrigin(str, Enum):  # noqa: UP042
    """Where a Source's content comes from."""

    DOCUMENT = "document"                    # uploaded PDF (text layer or scanned)
    PASTED_TEXT = "pasted_text"              # free text pasted by a user
    STRUCTURED_IMPORT = "structured_import"  # JSON groups/sections/tables/datasets


class Confidence(str, Enum):  # noqa: UP042
    """How reliably a detected table or dataset matches its expected shape."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class DatasetType(str, Enum):  # noqa: UP042
    EQUIPMENT = "equipment"
    SKILLS = "skills"
    SPELLS = "spells"
    TABLES = "tables"
    INJURIES = "injuries"
    OTHER = "other"


# ---------------------------------------------------------------------------
# Source status records
# ---------------------------------------------------------------------------
class IndexErrorRecord(BaseModel):
    """The last indexing failure of a Source: which stage, and what went wrong."""

    model_config = ConfigDict(frozen=True)

    stage: str = Field(min_length=1, description="Stage label, e.g. 'extraction' or 'persistence'.")
    message: str = Field(min_length=1, description="Human-readable failure description.")
    timestamp: datetime = Field(default_factory=_utc_now)


class IndexStats(BaseModel):
    """Aggregate statistics from the last successful indexing run."""

    model_config = ConfigDict(frozen=True)

    pages: int = Field(default=0, ge=0)
    empty_pages: int = Field(default=0, ge=0)
    avg_chars_per_page: int = Field(default=0, ge=0)
    sections: int = Field(default=0, ge=0)
    chunks: int = Field(default=0, ge=0)
    tables_high: int = Field(default=0, ge=0)
    tables_medium: int = Field(default=0, ge=0)
    tables_low: int = Field(default=0, ge=0)
    datasets: int = Field(default=0, ge=0)
    dataset_rows: int = Field(default=0, ge=0)
    page_errors: int = Field(default=0, ge=0, description="Pages the extractor failed to read.")
    ocr_fallback_used: bool = False
    time_ms_by_stage: dict[str, int] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# RulesSource: the unit of indexing
# ---------------------------------------------------------------------------
class RulesSource(BaseModel):
    """One ingested rulebook: an uploaded document, pasted text or an import.

    Exactly one of ``document_ref``, ``pasted_text`` or ``structured_payload``
    is expected to be set, matching ``origin``.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    campaign_id: str = Field(description="Owning campaign identifier.")
    origin: SourceOrigin
    title: str = Field(min_length=1)
    tags: list[str] = Field(default_factory=list)
    # Storage path/key of the uploaded document (DOCUMENT origin).
    document_ref: str | None = None
    pasted_text: str | None = None
    structured_payload: dict[str, Any] | None = None
    index_status: IndexStatus = IndexStatus.NOT_INDEXED
    index_error: IndexErrorRecord | None = None
    index_stats: IndexStats | None = None
    last_indexed_at: datetime | None = None
    created_at: datetime = Field(default_factory=_utc_now)


# ---------------------------------------------------------------------------
# Derived entities
# ---------------------------------------------------------------------------
class RulesPage(BaseModel):
    """One page of raw extracted text, replaced wholesale on re-index."""

    model_config = ConfigDict(frozen=True)

    source_id: str
    page_number: int = Field(ge=1)
    text: str = ""
    char_count: int = Field(default=0, ge=0)


class RulesSection(BaseModel):
    """A heading unit with its ancestor path and the page range it spans."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    source_id: str
    title: str
    level: int = Field(default=1, ge=1)
    # Ancestor titles followed by this section's own title.
    path: list[str] = Field(default_factory=list)
    page_start: int | None = None
    page_end: int | None = None
    text: str | None = None
    order_index: int = Field(default=0, ge=0)


class ScoreHints(BaseModel):
    """Content-pattern flags that let retrieval up-rank a chunk."""

    model_config = ConfigDict(frozen=True)

    has_roll_ranges: bool = False
    has_table_pattern: bool = False
    has_list_pattern: bool = False
    has_dice_notation: bool = False
    has_equipment_list: bool = False
    has_skill_list: bool = False


class RulesChunk(BaseModel):
    """A retrieval-sized slice of section-scoped text.

    ``order_index`` is unique and dense (0..n-1) within a Source.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    source_id: str
    section_id: str | None = None
    section_path: list[str] = Field(default_factory=list)
    order_index: int = Field(ge=0)
    text: str
    page_start: int | None = None
    page_end: int | None = None
    keywords: list[str] = Field(default_factory=list)
    score_hints: ScoreHints = Field(default_factory=ScoreHints)


class RulesTable(BaseModel):
    """A detected or imported tabular region.

    ``parsed_rows`` is authoritative when present; ``raw_text`` is only
    parsed when no rows were stored.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    source_id: str
    section_id: str | None = None
    title: str | None = None
    header_context: str | None = None
    page_number: int | None = None
    raw_text: str = ""
    parsed_rows: list[dict[str, str]] | None = None
    # Detected shape: "dice_roll", "pipe", "whitespace", "extracted" or "imported".
    kind: str = "imported"
    dice_type: str | None = None
    confidence: Confidence = Confidence.LOW
    keywords: list[str] = Field(default_factory=list)


class RulesDataset(BaseModel):
    """A named collection of uniformly shaped records (equipment, skills...)."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    source_id: str
    name: str
    dataset_type: DatasetType = DatasetType.OTHER
    fields: list[str] = Field(default_factory=list)
    confidence: Confidence = Confidence.MEDIUM


class DatasetRow(BaseModel):
    """One record of a Dataset with optional page/path provenance."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    dataset_id: str
    source_id: str
    row_index: int = Field(ge=0)
    data: dict[str, str] = Field(default_factory=dict)
    page_number: int | None = None
    source_path: str | None = None


class TableData(BaseModel):
    """Canonical ``{columns, rows}`` form of a table.

    Every row has exactly the keys in ``columns``, all string-valued.
    """

    model_config = ConfigDict(frozen=True)

    columns: list[str] = Field(default_factory=list)
    rows: list[dict[str, str]] = Field(default_factory=list)
