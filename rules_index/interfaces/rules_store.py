"""Abstract base class for rules knowledge-base persistence.

The store holds Sources and everything derived from them.  Derived
entities are always written in batches scoped to one ``source_id`` and are
removed wholesale with :meth:`IRulesStore.delete_derived`; there is no
incremental update path, which is what makes re-indexing a full replace.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

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


# Concrete implementations: MemoryRulesStore, SQLiteRulesStore
# Located in: rules_index/providers/store/
class IRulesStore(ABC):
    """Contract for async persistence of rules sources and derived data.

    Batch insert methods may be called many times per run; each call is
    independent (not transactional with its siblings).  Implementations
    raise :class:`~rules_index.utils.errors.PersistenceError` when a batch
    is rejected.
    """

    # -- Sources -------------------------------------------------------

    @abstractmethod
    async def save_source(self, source: RulesSource) -> None:
        """Insert or replace a Source record."""

    @abstractmethod
    async def get_source(self, source_id: str) -> RulesSource | None:
        """Return the Source with *source_id*, or ``None``."""

    @abstractmethod
    async def list_sources(self, campaign_id: str | None = None) -> list[RulesSource]:
        """Return Sources in creation order, optionally for one campaign."""

    @abstractmethod
    async def update_index_state(
        self,
        source_id: str,
        status: IndexStatus,
        error: IndexErrorRecord | None = None,
        stats: IndexStats | None = None,
        last_indexed_at: datetime | None = None,
    ) -> None:
        """Write the status fields of a Source.

        ``error``, ``stats`` and ``last_indexed_at`` replace the stored
        values as given (``None`` clears them).
        """

    @abstractmethod
    async def delete_source(self, source_id: str) -> None:
        """Delete a Source and cascade to all its derived entities."""

    # -- Derived entities ----------------------------------------------

    @abstractmethod
    async def delete_derived(self, source_id: str) -> None:
        """Remove every Page/Section/Chunk/Table/Dataset/Row of a Source."""

    @abstractmethod
    async def insert_pages(self, pages: list[RulesPage]) -> None:
        """Insert a batch of pages."""

    @abstractmethod
    async def insert_sections(self, sections: list[RulesSection]) -> None:
        """Insert a batch of sections."""

    @abstractmethod
    async def insert_chunks(self, chunks: list[RulesChunk]) -> None:
        """Insert a batch of chunks."""

    @abstractmethod
    async def insert_tables(self, tables: list[RulesTable]) -> None:
        """Insert a batch of tables."""

    @abstractmethod
    async def insert_datasets(self, datasets: list[RulesDataset]) -> None:
        """Insert a batch of datasets."""

    @abstractmethod
    async def insert_dataset_rows(self, rows: list[DatasetRow]) -> None:
        """Insert a batch of dataset rows."""

    # -- Reads ---------------------------------------------------------

    @abstractmethod
    async def list_pages(self, source_id: str) -> list[RulesPage]:
        """Return pages ordered by page number."""

    @abstractmethod
    async def list_sections(self, source_id: str) -> list[RulesSection]:
        """Return sections in document order."""

    @abstractmethod
    async def list_chunks(self, source_id: str) -> list[RulesChunk]:
        """Return chunks ordered by ``order_index``."""

    @abstractmethod
    async def list_tables(self, source_id: str) -> list[RulesTable]:
        """Return tables in insertion order."""

    @abstractmethod
    async def list_datasets(self, source_id: str) -> list[RulesDataset]:
        """Return datasets in insertion order."""

    @abstractmethod
    async def list_dataset_rows(self, dataset_id: str) -> list[DatasetRow]:
        """Return rows of a dataset ordered by ``row_index``."""
