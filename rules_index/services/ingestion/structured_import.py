"""Map a structured rules payload straight into sections, tables and datasets.

Structured imports skip page normalization and structure detection
entirely.  The payload shape is::

    {
      "name": "...", "version": "...",
      "groups": [
        {"name": "...", "description": "...",
         "sections": [
           {"title": "...", "text": "...",
            "subsections": [...], "tables": [...], "datasets": [...]}
         ]}
      ],
      "tables":   [{"name": "...", "diceType": "d6", "columns": [...], "rows": [...]}],
      "datasets": [{"name": "...", "type": "equipment", "fields": [...], "rows": [...]}]
    }

Table ``rows`` may be positional lists (paired with ``columns``) or
records.  Imported tables and datasets are trusted: both get ``high``
confidence.  Section ``text`` is chunked afterwards by the chunker.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from rules_index.models.rules import (
    Confidence,
    DatasetRow,
    DatasetType,
    RulesDataset,
    RulesSection,
    RulesTable,
)
from rules_index.services.ingestion.structure_detector import extract_table_keywords
from rules_index.services.ingestion.table_canonicalizer import canonicalize_rows
from rules_index.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)

PATH_SEPARATOR = " > "


# ---------------------------------------------------------------------------
# Payload schema
# ---------------------------------------------------------------------------
class StructuredTableDef(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    dice_type: str | None = Field(default=None, alias="diceType")
    columns: list[str] | None = None
    rows: list[list[Any] | dict[str, Any]] = Field(default_factory=list)


class StructuredDatasetDef(BaseModel):
    name: str
    type: str | None = None
    fields: list[str] | None = None
    rows: list[dict[str, Any]] = Field(default_factory=list)


class StructuredSection(BaseModel):
    title: str
    text: str | None = None
    subsections: list[StructuredSection] = Field(default_factory=list)
    tables: list[StructuredTableDef] = Field(default_factory=list)
    datasets: list[StructuredDatasetDef] = Field(default_factory=list)


StructuredSection.model_rebuild()


class StructuredGroup(BaseModel):
    name: str
    description: str | None = None
    sections: list[StructuredSection] = Field(default_factory=list)


class StructuredRules(BaseModel):
    name: str | None = None
    version: str | None = None
    groups: list[StructuredGroup] = Field(default_factory=list)
    tables: list[StructuredTableDef] = Field(default_factory=list)
    datasets: list[StructuredDatasetDef] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------
@dataclass
class StructuredImportResult:
    sections: list[RulesSection] = field(default_factory=list)
    tables: list[RulesTable] = field(default_factory=list)
    datasets: list[tuple[RulesDataset, list[DatasetRow]]] = field(default_factory=list)


class _ImportBuilder:
    """Walks the validated payload, accumulating records in document order."""

    def __init__(self, source_id: str) -> None:
        self._source_id = source_id
        self.result = StructuredImportResult()

    def add_section(
        self,
        title: str,
        level: int,
        path: list[str],
        text: str | None,
    ) -> RulesSection:
        section = RulesSection(
            source_id=self._source_id,
            title=title,
            level=level,
            path=path,
            text=text.strip() if text and text.strip() else None,
            order_index=len(self.result.sections),
        )
        self.result.sections.append(section)
        return section

    def walk_section(self, node: StructuredSection, parent_path: list[str], level: int) -> None:
        path = [*parent_path, node.title]
        section = self.add_section(node.title, level, path, node.text)
        for table in node.tables:
            self.add_table(table, section)
        for dataset in node.datasets:
            self.add_dataset(dataset, section)
        for child in node.subsections:
            self.walk_section(child, path, level + 1)

    def add_table(self, node: StructuredTableDef, section: RulesSection | None) -> None:
        data = canonicalize_rows(node.rows, node.columns) if node.rows else None
        if data is None:
            logger.debug("structured_table_skipped", table=node.name, reason="no rows")
            return
        raw_text = "\n".join(" | ".join(row.values()) for row in data.rows)
        self.result.tables.append(
            RulesTable(
                source_id=self._source_id,
                section_id=section.id if section else None,
                title=node.name,
                header_context=section.title if section else None,
                raw_text=raw_text,
                parsed_rows=data.rows,
                kind="imported",
                dice_type=node.dice_type,
                confidence=Confidence.HIGH,
                keywords=extract_table_keywords("imported", node.name, f"{node.name}\n{raw_text}"),
            )
        )

    def add_dataset(self, node: StructuredDatasetDef, section: RulesSection | None) -> None:
        data = canonicalize_rows(node.rows, node.fields) if node.rows else None
        fields = data.columns if data else list(node.fields or [])
        try:
            dataset_type = DatasetType(node.type.lower()) if node.type else DatasetType.OTHER
        except ValueError:
            dataset_type = DatasetType.OTHER

        dataset = RulesDataset(
            source_id=self._source_id,
            name=node.name,
            dataset_type=dataset_type,
            fields=fields,
            confidence=Confidence.HIGH,
        )
        source_path = PATH_SEPARATOR.join(section.path) if section else None
        rows = [
            DatasetRow(
                dataset_id=dataset.id,
                source_id=self._source_id,
                row_index=index,
                data=row,
                source_path=source_path,
            )
            for index, row in enumerate(data.rows if data else [])
        ]
        self.result.datasets.append((dataset, rows))


def import_structured_rules(source_id: str, payload: dict[str, Any]) -> StructuredImportResult:
    """Map a structured payload onto Section/Table/Dataset records.

    Raises
    ------
    ExtractionError
        If the payload does not match the expected schema or contains
        nothing importable.
    """
    try:
        rules = StructuredRules.model_validate(payload)
    except ValidationError as exc:
        raise ExtractionError(f"Structured import payload is invalid: {exc.error_count()} error(s)") from exc

    builder = _ImportBuilder(source_id)
    for group in rules.groups:
        builder.add_section(group.name, 1, [group.name], group.description)
        for section in group.sections:
            builder.walk_section(section, [group.name], 2)
    for table in rules.tables:
        builder.add_table(table, None)
    for dataset in rules.datasets:
        builder.add_dataset(dataset, None)

    result = builder.result
    if not (result.sections or result.tables or result.datasets):
        raise ExtractionError("Structured import payload contains no groups, tables or datasets")

    logger.info(
        "structured_import_mapped",
        source_id=source_id,
        name=rules.name,
        version=rules.version,
        sections=len(result.sections),
        tables=len(result.tables),
        datasets=len(result.datasets),
    )
    return result
