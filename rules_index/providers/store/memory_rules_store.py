"""In-memory rules store.

Simple, fast store suitable for tests and single-process tooling.  Can be
swapped for the SQLite store (or any other backend) via the
:class:`IRulesStore` interface.
"""

from __future__ import annotations

from datetime import datetime

import structlog

from rules_index.interfaces.rules_store import IRulesStore
from rules_index.models.rules import (
    DatasetRow,
    IndexErrorRecord,
    IndexStats,
    IndexStatus,
    RulesChunk,
    RulesDataset,
    RulesPage,
    RulesSection,
    RulesSource,
    RulesTable,
)
from rules_index.utils.errors import SourceNotFoundError

logger = structlog.get_logger(logger_name=__name__)


class MemoryRulesStore(IRulesStore):
    """Dict-backed rules store keyed by source identifier."""

    def __init__(self) -> None:
        self._sources: dict[str, RulesSource] = {}
        self._pages: dict[str, list[RulesPage]] = {}
        self._sections: dict[str, list[RulesSection]] = {}
        self._chunks: dict[str, list[RulesChunk]] = {}
        self._tables: dict[str, list[RulesTable]] = {}
        self._datasets: dict[str, list[RulesDataset]] = {}
        self._rows: dict[str, list[DatasetRow]] = {}

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    async def save_source(self, source: RulesSource) -> None:
        self._sources[source.id] = source

    async def get_source(self, source_id: str) -> RulesSource | None:
        return self._sources.get(source_id)

    async def list_sources(self, campaign_id: str | None = None) -> list[RulesSource]:
        sources = sorted(self._sources.values(), key=lambda s: s.created_at)
        if campaign_id is None:
            return sources
        return [s for s in sources if s.campaign_id == campaign_id]

    async def update_index_state(
        self,
        source_id: str,
        status: IndexStatus,
        error: IndexErrorRecord | None = None,
        stats: IndexStats | None = None,
        last_indexed_at: datetime | None = None,
    ) -> None:
        source = self._sources.get(source_id)
        if source is None:
            raise SourceNotFoundError(f"Rules source {source_id} not found")
        self._sources[source_id] = source.model_copy(
            update={
                "index_status": status,
                "index_error": error,
                "index_stats": stats,
                "last_indexed_at": last_indexed_at,
            }
        )

    async def delete_source(self, source_id: str) -> None:
        await self.delete_derived(source_id)
        self._sources.pop(source_id, None)
        logger.debug("source_deleted", source_id=source_id)

    # ------------------------------------------------------------------
    # Derived entities
    # ------------------------------------------------------------------

    async def delete_derived(self, source_id: str) -> None:
        for dataset in self._datasets.pop(source_id, []):
            self._rows.pop(dataset.id, None)
        for bucket in (self._pages, self._sections, self._chunks, self._tables):
            bucket.pop(source_id, None)

    async def insert_pages(self, pages: list[RulesPage]) -> None:
        for page in pages:
            self._pages.setdefault(page.source_id, []).append(page)

    async def insert_sections(self, sections: list[RulesSection]) -> None:
        for section in sections:
            self._sections.setdefault(section.source_id, []).append(section)

    async def insert_chunks(self, chunks: list[RulesChunk]) -> None:
        for chunk in chunks:
            self._chunks.setdefault(chunk.source_id, []).append(chunk)

    async def insert_tables(self, tables: list[RulesTable]) -> None:
        for table in tables:
            self._tables.setdefault(table.source_id, []).append(table)

    async def insert_datasets(self, datasets: list[RulesDataset]) -> None:
        for dataset in datasets:
            self._datasets.setdefault(dataset.source_id, []).append(dataset)

    async def insert_dataset_rows(self, rows: list[DatasetRow]) -> None:
        for row in rows:
            self._rows.setdefault(row.dataset_id, []).append(row)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_pages(self, source_id: str) -> list[RulesPage]:
        return sorted(self._pages.get(source_id, []), key=lambda p: p.page_number)

    async def list_sections(self, source_id: str) -> list[RulesSection]:
        return sorted(self._sections.get(source_id, []), key=lambda s: s.order_index)

    async def list_chunks(self, source_id: str) -> list[RulesChunk]:
        return sorted(self._chunks.get(source_id, []), key=lambda c: c.order_index)

    async def list_tables(self, source_id: str) -> list[RulesTable]:
        return list(self._tables.get(source_id, []))

    async def list_datasets(self, source_id: str) -> list[RulesDataset]:
        return list(self._datasets.get(source_id, []))

    async def list_dataset_rows(self, dataset_id: str) -> list[DatasetRow]:
        return sorted(self._rows.get(dataset_id, []), key=lambda r: r.row_index)
