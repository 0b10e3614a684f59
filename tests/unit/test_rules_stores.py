"""Unit tests for the in-memory and SQLite rules stores.

Both stores run the same behavioural tests through the parametrized
``rules_store`` fixture; SQLite-only behaviour is tested separately.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio

from rules_index.interfaces.rules_store import IRulesStore
from rules_index.models.rules import (
    Confidence,
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
    SourceOrigin,
)
from rules_index.providers.store.memory_rules_store import MemoryRulesStore
from rules_index.providers.store.sqlite_rules_store import SQLiteRulesStore
from rules_index.utils.errors import PersistenceError, SourceNotFoundError


def _source(campaign_id: str = "campaign-1", minutes: int = 0) -> RulesSource:
    return RulesSource(
        campaign_id=campaign_id,
        origin=SourceOrigin.PASTED_TEXT,
        title="House Rules",
        pasted_text="Warriors move six inches.",
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=minutes),  # noqa: UP017
    )


async def _populate(store: IRulesStore, source: RulesSource) -> RulesDataset:
    await store.insert_pages(
        [
            RulesPage(source_id=source.id, page_number=2, text="second"),
            RulesPage(source_id=source.id, page_number=1, text="first"),
        ]
    )
    await store.insert_sections([RulesSection(source_id=source.id, title="Movement", order_index=0)])
    await store.insert_chunks(
        [
            RulesChunk(source_id=source.id, order_index=1, text="b"),
            RulesChunk(source_id=source.id, order_index=0, text="a"),
        ]
    )
    await store.insert_tables(
        [
            RulesTable(source_id=source.id, title="First", confidence=Confidence.HIGH),
            RulesTable(source_id=source.id, title="Second"),
        ]
    )
    dataset = RulesDataset(source_id=source.id, name="Equipment", fields=["Name"])
    await store.insert_datasets([dataset])
    await store.insert_dataset_rows(
        [
            DatasetRow(dataset_id=dataset.id, source_id=source.id, row_index=1, data={"Name": "Bow"}),
            DatasetRow(dataset_id=dataset.id, source_id=source.id, row_index=0, data={"Name": "Sword"}),
        ]
    )
    return dataset


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def rules_store(request, tmp_path: Path) -> IRulesStore:
    if request.param == "memory":
        return MemoryRulesStore()
    store = SQLiteRulesStore(db_path=tmp_path / "rules.db")
    await store.initialize()
    return store


# ======================================================================
# Shared behaviour
# ======================================================================


class TestRulesStores:
    @pytest.mark.asyncio
    async def test_save_and_get_source(self, rules_store: IRulesStore) -> None:
        source = _source()
        await rules_store.save_source(source)

        assert await rules_store.get_source(source.id) == source
        assert await rules_store.get_source("missing") is None

    @pytest.mark.asyncio
    async def test_list_sources_by_campaign_in_creation_order(self, rules_store: IRulesStore) -> None:
        later = _source(minutes=5)
        earlier = _source(minutes=1)
        other = _source(campaign_id="campaign-2")
        for source in (later, earlier, other):
            await rules_store.save_source(source)

        listed = await rules_store.list_sources("campaign-1")
        assert [s.id for s in listed] == [earlier.id, later.id]
        assert len(await rules_store.list_sources()) == 3

    @pytest.mark.asyncio
    async def test_update_index_state(self, rules_store: IRulesStore) -> None:
        source = _source()
        await rules_store.save_source(source)
        now = datetime.now(tz=timezone.utc)  # noqa: UP017

        await rules_store.update_index_state(
            source.id,
            IndexStatus.INDEXED,
            stats=IndexStats(pages=3, chunks=4),
            last_indexed_at=now,
        )
        stored = await rules_store.get_source(source.id)
        assert stored.index_status == IndexStatus.INDEXED
        assert stored.index_stats.chunks == 4
        assert stored.last_indexed_at == now

        await rules_store.update_index_state(
            source.id,
            IndexStatus.FAILED,
            error=IndexErrorRecord(stage="extraction", message="boom"),
            last_indexed_at=now,
        )
        stored = await rules_store.get_source(source.id)
        assert stored.index_status == IndexStatus.FAILED
        assert stored.index_stats is None
        assert stored.index_error.stage == "extraction"

    @pytest.mark.asyncio
    async def test_update_unknown_source(self, rules_store: IRulesStore) -> None:
        with pytest.raises(SourceNotFoundError):
            await rules_store.update_index_state("missing", IndexStatus.INDEXING)

    @pytest.mark.asyncio
    async def test_reads_are_ordered(self, rules_store: IRulesStore) -> None:
        source = _source()
        await rules_store.save_source(source)
        dataset = await _populate(rules_store, source)

        assert [p.page_number for p in await rules_store.list_pages(source.id)] == [1, 2]
        assert [c.text for c in await rules_store.list_chunks(source.id)] == ["a", "b"]
        assert [t.title for t in await rules_store.list_tables(source.id)] == ["First", "Second"]
        rows = await rules_store.list_dataset_rows(dataset.id)
        assert [r.data["Name"] for r in rows] == ["Sword", "Bow"]

    @pytest.mark.asyncio
    async def test_records_round_trip_intact(self, rules_store: IRulesStore) -> None:
        source = _source()
        await rules_store.save_source(source)
        await _populate(rules_store, source)

        tables = await rules_store.list_tables(source.id)
        assert tables[0].confidence == Confidence.HIGH
        datasets = await rules_store.list_datasets(source.id)
        assert datasets[0].fields == ["Name"]

    @pytest.mark.asyncio
    async def test_delete_derived_keeps_source(self, rules_store: IRulesStore) -> None:
        source = _source()
        other = _source(minutes=1)
        await rules_store.save_source(source)
        await rules_store.save_source(other)
        dataset = await _populate(rules_store, source)
        await _populate(rules_store, other)

        await rules_store.delete_derived(source.id)

        assert await rules_store.get_source(source.id) is not None
        assert await rules_store.list_pages(source.id) == []
        assert await rules_store.list_sections(source.id) == []
        assert await rules_store.list_chunks(source.id) == []
        assert await rules_store.list_tables(source.id) == []
        assert await rules_store.list_datasets(source.id) == []
        assert await rules_store.list_dataset_rows(dataset.id) == []
        assert len(await rules_store.list_chunks(other.id)) == 2

    @pytest.mark.asyncio
    async def test_delete_source_cascades(self, rules_store: IRulesStore) -> None:
        source = _source()
        await rules_store.save_source(source)
        await _populate(rules_store, source)

        await rules_store.delete_source(source.id)

        assert await rules_store.get_source(source.id) is None
        assert await rules_store.list_chunks(source.id) == []


# ======================================================================
# SQLite specifics
# ======================================================================


class TestSQLiteRulesStore:
    @pytest.mark.asyncio
    async def test_initialize_creates_db(self, tmp_path: Path) -> None:
        db_path = tmp_path / "nested" / "rules.db"
        await SQLiteRulesStore(db_path=db_path).initialize()
        assert db_path.exists()

    @pytest.mark.asyncio
    async def test_duplicate_chunk_order_is_rejected(self, tmp_path: Path) -> None:
        store = SQLiteRulesStore(db_path=tmp_path / "rules.db")
        await store.initialize()

        await store.insert_chunks([RulesChunk(source_id="s1", order_index=0, text="a")])
        with pytest.raises(PersistenceError) as exc_info:
            await store.insert_chunks([RulesChunk(source_id="s1", order_index=0, text="b")])
        assert exc_info.value.stage == "persistence"

    @pytest.mark.asyncio
    async def test_table_sequence_continues_across_batches(self, tmp_path: Path) -> None:
        store = SQLiteRulesStore(db_path=tmp_path / "rules.db")
        await store.initialize()

        await store.insert_tables([RulesTable(source_id="s1", title="A"), RulesTable(source_id="s1", title="B")])
        await store.insert_tables([RulesTable(source_id="s1", title="C")])

        assert [t.title for t in await store.list_tables("s1")] == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_uninitialized_database_raises_persistence_error(self, tmp_path: Path) -> None:
        store = SQLiteRulesStore(db_path=tmp_path / "rules.db")
        with pytest.raises(PersistenceError):
            await store.list_chunks("s1")
