"""Store-backed keyword search and "best data source" selection.

Reads only committed data from an :class:`IRulesStore` and ranks it with
the pure functions in :mod:`retrieval_scorer`.  Sources that are not
``indexed`` are skipped: a run in progress may have cleared its derived
data, and a failed run leaves none.
"""

from __future__ import annotations

import structlog

from rules_index.interfaces.rules_store import IRulesStore
from rules_index.models.retrieval import DataSourceMatch, SearchHit
from rules_index.models.rules import (
    IndexStatus,
    RulesChunk,
    RulesDataset,
    RulesSection,
    RulesTable,
)
from rules_index.services.retrieval.retrieval_scorer import (
    extract_query_terms,
    rank_candidates,
    score_hint_bonus,
    score_text,
)
from rules_index.utils.errors import SourceNotFoundError

logger = structlog.get_logger(logger_name=__name__)

_SNIPPET_CHARS = 240
_CHUNKS_PER_MATCH = 3


def _snippet(text: str | None) -> str:
    if not text:
        return ""
    flat = " ".join(text.split())
    return flat if len(flat) <= _SNIPPET_CHARS else f"{flat[:_SNIPPET_CHARS - 3]}..."


def _table_text(table: RulesTable) -> str:
    return " ".join(filter(None, [table.title, table.header_context, " ".join(table.keywords)]))


def _dataset_text(dataset: RulesDataset) -> str:
    return " ".join([dataset.name, dataset.dataset_type.value, " ".join(dataset.fields)])


class RulesSearchService:
    """Keyword search across a campaign's indexed rules sources.

    Parameters
    ----------
    store:
        The rules store to read from.
    """

    def __init__(self, store: IRulesStore) -> None:
        self._store = store

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str,
        campaign_id: str | None = None,
        limit: int = 20,
    ) -> list[SearchHit]:
        """Rank sections, chunks, tables and datasets for *query*.

        Each candidate is scored on its own field (section title, chunk
        text, table title/context, dataset name/fields).  Ties keep store
        order.
        """
        terms = extract_query_terms(query)
        if not terms:
            return []

        hits: list[SearchHit] = []
        for source in await self._store.list_sources(campaign_id):
            if source.index_status != IndexStatus.INDEXED:
                continue
            hits.extend(await self._search_source(source.id, query, terms))

        ranked = rank_candidates(hits, lambda hit: hit.score)
        logger.debug("rules_search", query=query, terms=terms, hits=len(ranked))
        return [hit for hit, _ in ranked[:limit]]

    async def _search_source(self, source_id: str, query: str, terms: list[str]) -> list[SearchHit]:
        sections = await self._store.list_sections(source_id)
        chunks = await self._store.list_chunks(source_id)
        tables = await self._store.list_tables(source_id)
        datasets = await self._store.list_datasets(source_id)

        hits: list[SearchHit] = []
        for section, value in rank_candidates(sections, lambda s: score_text(s.title, terms)):
            hits.append(self._section_hit(section, value))
        for chunk, value in rank_candidates(chunks, lambda c: self._chunk_score(c, query, terms)):
            hits.append(
                SearchHit(
                    kind="chunk",
                    source_id=source_id,
                    item_id=chunk.id,
                    title=" > ".join(chunk.section_path),
                    snippet=_snippet(chunk.text),
                    page_number=chunk.page_start,
                    score=value,
                )
            )
        for table, value in rank_candidates(tables, lambda t: score_text(_table_text(t), terms)):
            hits.append(
                SearchHit(
                    kind="table",
                    source_id=source_id,
                    item_id=table.id,
                    title=table.title or "",
                    snippet=_snippet(table.raw_text),
                    page_number=table.page_number,
                    score=value,
                )
            )
        for dataset, value in rank_candidates(datasets, lambda d: score_text(_dataset_text(d), terms)):
            hits.append(
                SearchHit(
                    kind="dataset",
                    source_id=source_id,
                    item_id=dataset.id,
                    title=dataset.name,
                    snippet=", ".join(dataset.fields),
                    score=value,
                )
            )
        return hits

    @staticmethod
    def _section_hit(section: RulesSection, value: int) -> SearchHit:
        return SearchHit(
            kind="section",
            source_id=section.source_id,
            item_id=section.id,
            title=" > ".join(section.path) or section.title,
            snippet=_snippet(section.text),
            page_number=section.page_start,
            score=value,
        )

    @staticmethod
    def _chunk_score(chunk: RulesChunk, query: str, terms: list[str]) -> int:
        base = score_text(chunk.text, terms)
        if base == 0:
            return 0
        return base + score_hint_bonus(chunk.score_hints, query)

    # ------------------------------------------------------------------
    # Data-source binding
    # ------------------------------------------------------------------

    async def find_best_data_source(self, query: str, source_id: str) -> DataSourceMatch | None:
        """Pick the dataset, table or chunks of one Source that best fit *query*.

        A scoring dataset is preferred over any table, and a scoring table
        over free-text chunks.  Returns ``None`` when nothing scores.

        Raises
        ------
        SourceNotFoundError
            If *source_id* is unknown.
        """
        source = await self._store.get_source(source_id)
        if source is None:
            raise SourceNotFoundError(f"Rules source {source_id} not found")
        terms = extract_query_terms(query)
        if not terms or source.index_status != IndexStatus.INDEXED:
            return None

        datasets = rank_candidates(
            await self._store.list_datasets(source_id),
            lambda d: score_text(_dataset_text(d), terms),
        )
        if datasets:
            dataset, value = datasets[0]
            return DataSourceMatch(
                kind="dataset",
                source_id=source_id,
                item_ids=[dataset.id],
                title=dataset.name,
                score=value,
                terms=terms,
            )

        tables = rank_candidates(
            await self._store.list_tables(source_id),
            lambda t: score_text(_table_text(t), terms),
        )
        if tables:
            table, value = tables[0]
            return DataSourceMatch(
                kind="table",
                source_id=source_id,
                item_ids=[table.id],
                title=table.title or "",
                score=value,
                terms=terms,
            )

        chunks = rank_candidates(
            await self._store.list_chunks(source_id),
            lambda c: self._chunk_score(c, query, terms),
        )
        if chunks:
            top = chunks[:_CHUNKS_PER_MATCH]
            return DataSourceMatch(
                kind="chunks",
                source_id=source_id,
                item_ids=[chunk.id for chunk, _ in top],
                title=" > ".join(top[0][0].section_path),
                score=top[0][1],
                terms=terms,
            )

        logger.info("no_data_source_match", source_id=source_id, terms=terms)
        return None
