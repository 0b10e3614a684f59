"""SQLite-backed rules store.

Persists Sources and their derived Pages, Sections, Chunks, Tables,
Datasets and Dataset Rows to a local SQLite database at
``data/rules_index.db``.  Uses ``aiosqlite`` for async I/O.

Each record is stored as its Pydantic JSON dump in a ``body`` column next
to the handful of columns the store filters and orders by.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import TypeVar

import aiosqlite
import structlog
from pydantic import BaseModel

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
from rules_index.utils.errors import PersistenceError, SourceNotFoundError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/rules_index.db")

_ModelT = TypeVar("_ModelT", bound=BaseModel)

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS rules_sources (
    id           TEXT PRIMARY KEY,
    campaign_id  TEXT NOT NULL,
    created_at   TEXT NOT NULL,
    body         TEXT NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS rules_pages (
    source_id    TEXT    NOT NULL,
    page_number  INTEGER NOT NULL,
    body         TEXT    NOT NULL,
    PRIMARY KEY (source_id, page_number)
);
""",
    """\
CREATE TABLE IF NOT EXISTS rules_sections (
    id           TEXT    PRIMARY KEY,
    source_id    TEXT    NOT NULL,
    order_index  INTEGER NOT NULL,
    body         TEXT    NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS rules_chunks (
    id           TEXT    PRIMARY KEY,
    source_id    TEXT    NOT NULL,
    order_index  INTEGER NOT NULL,
    body         TEXT    NOT NULL,
    UNIQUE(source_id, order_index)
);
""",
    """\
CREATE TABLE IF NOT EXISTS rules_tables (
    id           TEXT    PRIMARY KEY,
    source_id    TEXT    NOT NULL,
    seq          INTEGER NOT NULL,
    body         TEXT    NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS rules_datasets (
    id           TEXT    PRIMARY KEY,
    source_id    TEXT    NOT NULL,
    seq          INTEGER NOT NULL,
    body         TEXT    NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS rules_dataset_rows (
    id           TEXT    PRIMARY KEY,
    dataset_id   TEXT    NOT NULL,
    source_id    TEXT    NOT NULL,
    row_index    INTEGER NOT NULL,
    body         TEXT    NOT NULL
);
""",
]

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_sources_campaign ON rules_sources(campaign_id);",
    "CREATE INDEX IF NOT EXISTS idx_sections_source ON rules_sections(source_id, order_index);",
    "CREATE INDEX IF NOT EXISTS idx_tables_source ON rules_tables(source_id, seq);",
    "CREATE INDEX IF NOT EXISTS idx_datasets_source ON rules_datasets(source_id, seq);",
    "CREATE INDEX IF NOT EXISTS idx_rows_dataset ON rules_dataset_rows(dataset_id, row_index);",
    "CREATE INDEX IF NOT EXISTS idx_rows_source ON rules_dataset_rows(source_id);",
]

_UPSERT_SOURCE_SQL = """\
INSERT INTO rules_sources (id, campaign_id, created_at, body)
VALUES (?, ?, ?, ?)
ON CONFLICT(id) DO UPDATE SET campaign_id = excluded.campaign_id,
                              body        = excluded.body;
"""

_DERIVED_TABLES = (
    "rules_dataset_rows",
    "rules_datasets",
    "rules_tables",
    "rules_chunks",
    "rules_sections",
    "rules_pages",
)


class SQLiteRulesStore(IRulesStore):
    """SQLite-backed rules persistence.

    Parameters
    ----------
    db_path:
        Database file; parent directories are created on :meth:`initialize`.
    """

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the rules tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            for table_sql in _CREATE_TABLES_SQL:
                await db.execute(table_sql)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("rules_db_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _write(self, statements: list[tuple[str, tuple]]) -> None:
        """Run *statements* in one transaction, rolling back on any error."""
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                try:
                    for sql, params in statements:
                        await db.execute(sql, params)
                    await db.commit()
                except aiosqlite.Error:
                    await db.rollback()
                    raise
        except aiosqlite.Error as exc:
            raise PersistenceError(f"SQLite write failed: {exc}") from exc

    async def _write_many(self, sql: str, rows: list[tuple]) -> None:
        if not rows:
            return
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.executemany(sql, rows)
                await db.commit()
        except aiosqlite.Error as exc:
            raise PersistenceError(f"SQLite write failed: {exc}") from exc

    async def _read(self, model: type[_ModelT], sql: str, params: tuple) -> list[_ModelT]:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute(sql, params)
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise PersistenceError(f"SQLite read failed: {exc}") from exc
        return [model.model_validate_json(row[0]) for row in rows]

    async def _next_seq(self, table: str, source_id: str) -> int:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute(
                    f"SELECT COALESCE(MAX(seq) + 1, 0) FROM {table} WHERE source_id = ?",  # noqa: S608
                    (source_id,),
                )
                row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise PersistenceError(f"SQLite read failed: {exc}") from exc
        return int(row[0])

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    async def save_source(self, source: RulesSource) -> None:
        await self._write(
            [
                (
                    _UPSERT_SOURCE_SQL,
                    (
                        source.id,
                        source.campaign_id,
                        source.created_at.isoformat(),
                        source.model_dump_json(),
                    ),
                )
            ]
        )

    async def get_source(self, source_id: str) -> RulesSource | None:
        found = await self._read(
            RulesSource, "SELECT body FROM rules_sources WHERE id = ?", (source_id,)
        )
        return found[0] if found else None

    async def list_sources(self, campaign_id: str | None = None) -> list[RulesSource]:
        if campaign_id is None:
            return await self._read(
                RulesSource, "SELECT body FROM rules_sources ORDER BY created_at", ()
            )
        return await self._read(
            RulesSource,
            "SELECT body FROM rules_sources WHERE campaign_id = ? ORDER BY created_at",
            (campaign_id,),
        )

    async def update_index_state(
        self,
        source_id: str,
        status: IndexStatus,
        error: IndexErrorRecord | None = None,
        stats: IndexStats | None = None,
        last_indexed_at: datetime | None = None,
    ) -> None:
        source = await self.get_source(source_id)
        if source is None:
            raise SourceNotFoundError(f"Rules source {source_id} not found")
        updated = source.model_copy(
            update={
                "index_status": status,
                "index_error": error,
                "index_stats": stats,
                "last_indexed_at": last_indexed_at,
            }
        )
        await self.save_source(updated)

    async def delete_source(self, source_id: str) -> None:
        statements = [
            (f"DELETE FROM {table} WHERE source_id = ?", (source_id,))  # noqa: S608
            for table in _DERIVED_TABLES
        ]
        statements.append(("DELETE FROM rules_sources WHERE id = ?", (source_id,)))
        await self._write(statements)
        logger.info("source_deleted", source_id=source_id)

    # ------------------------------------------------------------------
    # Derived entities
    # ------------------------------------------------------------------

    async def delete_derived(self, source_id: str) -> None:
        await self._write(
            [
                (f"DELETE FROM {table} WHERE source_id = ?", (source_id,))  # noqa: S608
                for table in _DERIVED_TABLES
            ]
        )

    async def insert_pages(self, pages: list[RulesPage]) -> None:
        await self._write_many(
            "INSERT INTO rules_pages (source_id, page_number, body) VALUES (?, ?, ?)",
            [(p.source_id, p.page_number, p.model_dump_json()) for p in pages],
        )

    async def insert_sections(self, sections: list[RulesSection]) -> None:
        await self._write_many(
            "INSERT INTO rules_sections (id, source_id, order_index, body) VALUES (?, ?, ?, ?)",
            [(s.id, s.source_id, s.order_index, s.model_dump_json()) for s in sections],
        )

    async def insert_chunks(self, chunks: list[RulesChunk]) -> None:
        await self._write_many(
            "INSERT INTO rules_chunks (id, source_id, order_index, body) VALUES (?, ?, ?, ?)",
            [(c.id, c.source_id, c.order_index, c.model_dump_json()) for c in chunks],
        )

    async def insert_tables(self, tables: list[RulesTable]) -> None:
        if not tables:
            return
        start = await self._next_seq("rules_tables", tables[0].source_id)
        await self._write_many(
            "INSERT INTO rules_tables (id, source_id, seq, body) VALUES (?, ?, ?, ?)",
            [(t.id, t.source_id, start + i, t.model_dump_json()) for i, t in enumerate(tables)],
        )

    async def insert_datasets(self, datasets: list[RulesDataset]) -> None:
        if not datasets:
            return
        start = await self._next_seq("rules_datasets", datasets[0].source_id)
        await self._write_many(
            "INSERT INTO rules_datasets (id, source_id, seq, body) VALUES (?, ?, ?, ?)",
            [(d.id, d.source_id, start + i, d.model_dump_json()) for i, d in enumerate(datasets)],
        )

    async def insert_dataset_rows(self, rows: list[DatasetRow]) -> None:
        await self._write_many(
            "INSERT INTO rules_dataset_rows (id, dataset_id, source_id, row_index, body) "
            "VALUES (?, ?, ?, ?, ?)",
            [(r.id, r.dataset_id, r.source_id, r.row_index, r.model_dump_json()) for r in rows],
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_pages(self, source_id: str) -> list[RulesPage]:
        return await self._read(
            RulesPage,
            "SELECT body FROM rules_pages WHERE source_id = ? ORDER BY page_number",
            (source_id,),
        )

    async def list_sections(self, source_id: str) -> list[RulesSection]:
        return await self._read(
            RulesSection,
            "SELECT body FROM rules_sections WHERE source_id = ? ORDER BY order_index",
            (source_id,),
        )

    async def list_chunks(self, source_id: str) -> list[RulesChunk]:
        return await self._read(
            RulesChunk,
            "SELECT body FROM rules_chunks WHERE source_id = ? ORDER BY order_index",
            (source_id,),
        )

    async def list_tables(self, source_id: str) -> list[RulesTable]:
        return await self._read(
            RulesTable,
            "SELECT body FROM rules_tables WHERE source_id = ? ORDER BY seq",
            (source_id,),
        )

    async def list_datasets(self, source_id: str) -> list[RulesDataset]:
        return await self._read(
            RulesDataset,
            "SELECT body FROM rules_datasets WHERE source_id = ? ORDER BY seq",
            (source_id,),
        )

    async def list_dataset_rows(self, dataset_id: str) -> list[DatasetRow]:
        return await self._read(
            DatasetRow,
            "SELECT body FROM rules_dataset_rows WHERE dataset_id = ? ORDER BY row_index",
            (dataset_id,),
        )
