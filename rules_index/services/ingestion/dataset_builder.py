"""Group detected tables into typed datasets (equipment, skills, injuries).

A dataset is a flat collection of uniform records pulled from every table
that carries the matching keyword.  Rows keep the page number and section
path of the table they came from.

    Equipment  <- equipment/weapon/armour tables, confidence above low  (high)
    Skills     <- skill tables, any confidence                          (medium)
    Injuries   <- injury tables, confidence above low                   (high)
"""

from __future__ import annotations

from dataclasses import dataclass

from rules_index.models.rules import (
    Confidence,
    DatasetRow,
    DatasetType,
    RulesDataset,
    RulesTable,
)
from rules_index.services.ingestion.table_canonicalizer import canonicalize_table
from rules_index.utils.confidence import at_least


@dataclass(frozen=True)
class _DatasetRule:
    name: str
    dataset_type: DatasetType
    keywords: frozenset[str]
    min_table_confidence: Confidence
    confidence: Confidence


_RULES = (
    _DatasetRule(
        name="Equipment",
        dataset_type=DatasetType.EQUIPMENT,
        keywords=frozenset({"equipment", "weapon", "armour", "armor"}),
        min_table_confidence=Confidence.MEDIUM,
        confidence=Confidence.HIGH,
    ),
    _DatasetRule(
        name="Skills",
        dataset_type=DatasetType.SKILLS,
        keywords=frozenset({"skill"}),
        min_table_confidence=Confidence.LOW,
        confidence=Confidence.MEDIUM,
    ),
    _DatasetRule(
        name="Injuries",
        dataset_type=DatasetType.INJURIES,
        keywords=frozenset({"injury"}),
        min_table_confidence=Confidence.MEDIUM,
        confidence=Confidence.HIGH,
    ),
)


def build_datasets(
    tables: list[RulesTable],
    section_paths: dict[str, str] | None = None,
) -> list[tuple[RulesDataset, list[DatasetRow]]]:
    """Build datasets and their rows from a Source's tables.

    Parameters
    ----------
    tables:
        Tables of one Source, in document order.
    section_paths:
        Optional ``section_id -> "A > B"`` map used for row provenance.

    Returns
    -------
    list[tuple[RulesDataset, list[DatasetRow]]]
        One entry per dataset that ended up with at least one row.
    """
    if not tables:
        return []
    section_paths = section_paths or {}
    source_id = tables[0].source_id
    results: list[tuple[RulesDataset, list[DatasetRow]]] = []

    for rule in _RULES:
        matching = [
            table
            for table in tables
            if rule.keywords.intersection(table.keywords)
            and at_least(table.confidence, rule.min_table_confidence)
        ]
        if not matching:
            continue

        fields: list[str] = []
        collected: list[tuple[dict[str, str], RulesTable]] = []
        for table in matching:
            data = canonicalize_table(table)
            if data is None:
                continue
            for column in data.columns:
                if column not in fields:
                    fields.append(column)
            collected.extend((row, table) for row in data.rows)

        if not collected:
            continue

        dataset = RulesDataset(
            source_id=source_id,
            name=rule.name,
            dataset_type=rule.dataset_type,
            fields=fields,
            confidence=rule.confidence,
        )
        rows = [
            DatasetRow(
                dataset_id=dataset.id,
                source_id=source_id,
                row_index=index,
                data={name: row.get(name, "") for name in fields},
                page_number=table.page_number,
                source_path=section_paths.get(table.section_id) if table.section_id else None,
            )
            for index, (row, table) in enumerate(collected)
        ]
        results.append((dataset, rows))

    return results
