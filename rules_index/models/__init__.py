"""Pydantic v2 models for rules sources, detection output and indexing state."""

from rules_index.models.detection import (
    DetectedHeading,
    DetectedTable,
    DetectionResult,
    DiceRollTable,
    PipeTable,
    WhitespaceTable,
)
from rules_index.models.indexing import (
    ExtractedHeading,
    ExtractedPage,
    ExtractedTable,
    ExtractionResult,
    IndexingResult,
    IndexingStage,
    NormalizationResult,
    PageError,
    ProgressEvent,
)
from rules_index.models.retrieval import DataSourceMatch, SearchHit
from rules_index.models.rules import (
    Confidence,
    DatasetRow,
    DatasetType,
    IndexErrorRecord,
    IndexStats,
    IndexStatus,
    RulesChunk,
    RulesDataset,
    RulesPage,
    RulesSection,
    RulesSource,
    RulesTable,
    ScoreHints,
    SourceOrigin,
    TableData,
)

__all__ = [
    "Confidence",
    "DatasetRow",
    "DataSourceMatch",
    "DatasetType",
    "DetectedHeading",
    "DetectedTable",
    "DetectionResult",
    "DiceRollTable",
    "ExtractedHeading",
    "ExtractedPage",
    "ExtractedTable",
    "ExtractionResult",
    "IndexErrorRecord",
    "IndexStats",
    "IndexStatus",
    "IndexingResult",
    "IndexingStage",
    "NormalizationResult",
    "PageError",
    "PipeTable",
    "ProgressEvent",
    "RulesChunk",
    "RulesDataset",
    "RulesPage",
    "RulesSection",
    "RulesSource",
    "RulesTable",
    "ScoreHints",
    "SearchHit",
    "SourceOrigin",
    "TableData",
    "WhitespaceTable",
]
