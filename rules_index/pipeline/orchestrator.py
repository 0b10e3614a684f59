"""Indexing orchestrator: the per-Source state machine.

Sequences extraction → normalization → (OCR fallback) → detection →
chunking → persistence for one Source, owns every write to its
``index_status`` and broadcasts progress through the injected
:class:`ProgressTracker`.

ARCHITECTURE NOTE:
    Each run follows the same pattern per stage:
        1. Check the cancel signal
        2. Broadcast progress (stage + monotonic percent)
        3. Call the stage's collaborator
        4. Record the stage's wall-clock time

    A run is all-or-nothing.  Derived entities of the Source are cleared
    before anything is written, and cleared again if any stage fails, so
    a Source is either ``indexed`` with exactly one run's data or
    ``failed`` with none.  Re-indexing is always a full replace.

    Structured imports skip normalization and detection: the payload
    maps straight to sections, tables and datasets, and only section
    text goes through the chunker.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import AsyncIterator, Collection
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog

from rules_index.interfaces.ocr_fallback_provider import IOCRFallbackProvider
from rules_index.interfaces.rules_store import IRulesStore
from rules_index.interfaces.text_extractor import ITextExtractor
from rules_index.models.detection import DetectionResult
from rules_index.models.indexing import (
    ExtractedHeading,
    ExtractedPage,
    ExtractedTable,
    IndexingResult,
    IndexingStage,
)
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
from rules_index.pipeline.progress_tracker import ProgressTracker
from rules_index.pipeline.state_registry import IndexStateRegistry
from rules_index.services.ingestion.chunker import ChunkingOutput, RulesChunker
from rules_index.services.ingestion.dataset_builder import build_datasets
from rules_index.services.ingestion.page_normalizer import PageNormalizer, split_into_pseudo_pages
from rules_index.services.ingestion.structure_detector import (
    StructureDetector,
    extract_table_keywords,
)
from rules_index.services.ingestion.structured_import import import_structured_rules
from rules_index.utils.errors import (
    ChunkingError,
    DetectionError,
    ExtractionError,
    IndexingCancelledError,
    InvalidTransitionError,
    NormalizationError,
    OCRFallbackError,
    PersistenceError,
    RulesIndexError,
    SourceNotFoundError,
)
from rules_index.utils.logging import get_logger, indexing_log_context

# Progress stage -> (error label stored on the Source, timing key, error class)
_STAGE_LABELS: dict[IndexingStage, tuple[str, str, type[RulesIndexError]]] = {
    IndexingStage.EXTRACTING: ("extraction", "extraction", ExtractionError),
    IndexingStage.NORMALIZING: ("normalization", "normalization", NormalizationError),
    IndexingStage.OCR_FALLBACK: ("extraction", "ocr_fallback", OCRFallbackError),
    IndexingStage.DETECTING: ("detection", "detection", DetectionError),
    IndexingStage.CHUNKING: ("chunking", "chunking", ChunkingError),
    IndexingStage.SAVING: ("persistence", "persistence", PersistenceError),
}

_RESTARTABLE = frozenset({IndexStatus.NOT_INDEXED, IndexStatus.INDEXED, IndexStatus.FAILED})


@dataclass
class _Run:
    """Mutable bookkeeping for one indexing run."""

    source: RulesSource
    cancel_event: asyncio.Event | None
    stage: IndexingStage = IndexingStage.EXTRACTING
    timings: dict[str, int] = field(default_factory=dict)
    pages: list[ExtractedPage] = field(default_factory=list)
    empty_pages: int = 0
    avg_chars_per_page: int = 0
    page_errors: int = 0
    ocr_fallback_used: bool = False
    sections: list[RulesSection] = field(default_factory=list)
    chunks: list[RulesChunk] = field(default_factory=list)
    tables: list[RulesTable] = field(default_factory=list)
    datasets: list[tuple[RulesDataset, list[DatasetRow]]] = field(default_factory=list)


class IndexingOrchestrator:
    """Drives indexing runs for rules Sources.

    All collaborators are injected at construction time.  The
    ``ocr_provider`` may be ``None``; a run that needs the OCR fallback
    then fails at the extraction stage.

    Parameters
    ----------
    store:
        Persistence for Sources and their derived entities.
    extractor:
        Primary text extraction for document Sources.
    progress_tracker:
        Progress broadcast; events are best-effort.
    normalizer, detector:
        Page cleaning and structure detection.
    document_chunker, paste_chunker:
        Chunkers for page-bounded documents and for pasted text or
        structured-import section text.
    ocr_provider:
        Optional OCR fallback for low-yield documents.
    state_registry:
        Compare-and-set status records; a private one is created if omitted.
    batch_size:
        Maximum records per store insert call.
    pseudo_page_chars:
        Page size used to split pasted text into pseudo-pages.
    """

    def __init__(
        self,
        store: IRulesStore,
        extractor: ITextExtractor,
        progress_tracker: ProgressTracker,
        normalizer: PageNormalizer | None = None,
        detector: StructureDetector | None = None,
        document_chunker: RulesChunker | None = None,
        paste_chunker: RulesChunker | None = None,
        ocr_provider: IOCRFallbackProvider | None = None,
        state_registry: IndexStateRegistry | None = None,
        batch_size: int = 200,
        pseudo_page_chars: int = 8000,
    ) -> None:
        self._store = store
        self._extractor = extractor
        self._progress = progress_tracker
        self._normalizer = normalizer or PageNormalizer()
        self._detector = detector or StructureDetector()
        self._document_chunker = document_chunker or RulesChunker()
        self._paste_chunker = paste_chunker or RulesChunker()
        self._ocr_provider = ocr_provider
        self._registry = state_registry or IndexStateRegistry()
        self._batch_size = max(1, batch_size)
        self._pseudo_page_chars = pseudo_page_chars
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def start_indexing(
        self,
        source_id: str,
        cancel_event: asyncio.Event | None = None,
    ) -> IndexingResult:
        """Run a full indexing pass for *source_id*.

        Parameters
        ----------
        source_id:
            The Source to (re-)index.
        cancel_event:
            Optional cooperative cancel signal, checked between stages.

        Returns
        -------
        IndexingResult
            ``indexed`` with stats, or ``failed`` with a staged error.

        Raises
        ------
        SourceNotFoundError
            If *source_id* is unknown.
        InvalidTransitionError
            If the Source is already being indexed.
        asyncio.CancelledError
            Re-raised after a cancelled run is stored as ``failed``.
        """
        return await self._begin(source_id, _RESTARTABLE, cancel_event)

    async def retry_indexing(
        self,
        source_id: str,
        cancel_event: asyncio.Event | None = None,
    ) -> IndexingResult:
        """Re-run indexing for a Source whose last run failed.

        Raises
        ------
        InvalidTransitionError
            If the Source is not currently ``failed``.
        """
        return await self._begin(source_id, {IndexStatus.FAILED}, cancel_event)

    async def delete_source(self, source_id: str) -> None:
        """Delete a Source and everything derived from it.

        Refused while a run holds the Source.
        """
        if self._registry.get(source_id) == IndexStatus.INDEXING:
            raise InvalidTransitionError(f"Source {source_id} is being indexed")
        await self._store.delete_source(source_id)
        self._registry.forget(source_id)
        self._logger.info("rules_source_deleted", source_id=source_id)

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    async def _begin(
        self,
        source_id: str,
        expected: Collection[IndexStatus],
        cancel_event: asyncio.Event | None,
    ) -> IndexingResult:
        source = await self._store.get_source(source_id)
        if source is None:
            raise SourceNotFoundError(f"Rules source {source_id} not found")

        # A persisted "indexing" with no in-process record is left over from
        # an interrupted process; it counts as failed.
        initial = source.index_status
        if initial == IndexStatus.INDEXING and self._registry.get(source_id) is None:
            self._logger.warning("stale_indexing_status", source_id=source_id)
            initial = IndexStatus.FAILED

        await self._registry.compare_and_set(source_id, expected, IndexStatus.INDEXING, initial)
        with indexing_log_context(source.id, source.origin.value):
            return await self._run(_Run(source=source, cancel_event=cancel_event))

    async def _run(self, run: _Run) -> IndexingResult:
        source = run.source
        started = time.perf_counter()
        self._progress.reset(source.id)
        self._logger.info("indexing_start", source_id=source.id, origin=source.origin.value)

        try:
            await self._store.update_index_state(
                source.id,
                IndexStatus.INDEXING,
                last_indexed_at=source.last_indexed_at,
            )
            await self._store.delete_derived(source.id)

            if source.origin == SourceOrigin.STRUCTURED_IMPORT:
                await self._index_structured(run)
            else:
                await self._index_text(run)

            await self._save(run)
            stats = self._build_stats(run)
            finished_at = datetime.now(tz=timezone.utc)  # noqa: UP017
            await self._store.update_index_state(
                source.id,
                IndexStatus.INDEXED,
                stats=stats,
                last_indexed_at=finished_at,
            )
        except asyncio.CancelledError:
            # Caller-imposed timeout or task cancel: record it, then propagate.
            await self._fail(run, IndexingCancelledError(stage=_STAGE_LABELS[run.stage][0]))
            raise
        except RulesIndexError as exc:
            return await self._fail(run, exc)
        except Exception as exc:
            label, _, error_cls = _STAGE_LABELS[run.stage]
            wrapped = error_cls(f"Unexpected error: {exc}", stage=label)
            wrapped.__cause__ = exc
            return await self._fail(run, wrapped)

        await self._registry.compare_and_set(source.id, {IndexStatus.INDEXING}, IndexStatus.INDEXED)
        await self._progress.update(source.id, IndexingStage.COMPLETE, 100.0, "Indexing complete")
        self._logger.info(
            "indexing_complete",
            source_id=source.id,
            pages=stats.pages,
            sections=stats.sections,
            chunks=stats.chunks,
            tables=stats.tables_high + stats.tables_medium + stats.tables_low,
            datasets=stats.datasets,
            elapsed_ms=round((time.perf_counter() - started) * 1000),
        )
        return IndexingResult(source_id=source.id, status=IndexStatus.INDEXED, stats=stats)

    async def _fail(self, run: _Run, exc: RulesIndexError) -> IndexingResult:
        source = run.source
        cancelled = isinstance(exc, IndexingCancelledError)
        stage = exc.stage or _STAGE_LABELS[run.stage][0]
        record = IndexErrorRecord(stage=stage, message=exc.message or "Indexing failed")

        if cancelled:
            self._logger.info("indexing_cancelled", source_id=source.id, stage=stage)
        else:
            self._logger.error("indexing_failed", source_id=source.id, stage=stage, error=exc.message)

        try:
            await self._store.delete_derived(source.id)
            await self._store.update_index_state(
                source.id,
                IndexStatus.FAILED,
                error=record,
                last_indexed_at=source.last_indexed_at,
            )
        except RulesIndexError as cleanup_exc:
            self._logger.error(
                "failure_cleanup_failed",
                source_id=source.id,
                stage="persistence",
                error=str(cleanup_exc),
            )
        finally:
            await self._registry.compare_and_set(source.id, {IndexStatus.INDEXING}, IndexStatus.FAILED)

        latest = self._progress.get_status(source.id)
        await self._progress.update(
            source.id,
            IndexingStage.CANCELLED if cancelled else IndexingStage.FAILED,
            latest.percent if latest is not None else 0.0,
            record.message,
        )
        return IndexingResult(source_id=source.id, status=IndexStatus.FAILED, error=record)

    @contextlib.asynccontextmanager
    async def _stage(
        self,
        run: _Run,
        stage: IndexingStage,
        percent: float,
        message: str,
    ) -> AsyncIterator[None]:
        """Enter *stage*: check cancel, report progress, time and wrap errors."""
        label, timing_key, error_cls = _STAGE_LABELS[stage]
        if run.cancel_event is not None and run.cancel_event.is_set():
            raise IndexingCancelledError(stage=label)

        run.stage = stage
        await self._progress.update(run.source.id, stage, percent, message)
        self._logger.debug(f"{timing_key}_start", source_id=run.source.id)
        start = time.perf_counter()
        try:
            yield
        except RulesIndexError:
            raise
        except Exception as exc:
            raise error_cls(f"{message} failed: {exc}", stage=label) from exc
        finally:
            elapsed = round((time.perf_counter() - start) * 1000)
            run.timings[timing_key] = run.timings.get(timing_key, 0) + elapsed
        self._logger.debug(f"{timing_key}_complete", source_id=run.source.id, elapsed_ms=elapsed)

    # ------------------------------------------------------------------
    # Text origins: document and pasted text
    # ------------------------------------------------------------------

    async def _index_text(self, run: _Run) -> None:
        source = run.source
        hint_headings: list[ExtractedHeading] = []
        extracted_tables: list[ExtractedTable] = []

        async with self._stage(run, IndexingStage.EXTRACTING, 10.0, "Extracting page text"):
            if source.origin == SourceOrigin.DOCUMENT:
                if not source.document_ref:
                    raise ExtractionError("Document source has no stored document reference")
                extraction = await self._extractor.extract(source.document_ref)
                raw_pages = list(extraction.pages)
                hint_headings = list(extraction.headings)
                extracted_tables = list(extraction.tables)
                run.page_errors = len(extraction.page_errors)
            else:
                if not source.pasted_text or not source.pasted_text.strip():
                    raise ExtractionError("Pasted text is empty")
                raw_pages = split_into_pseudo_pages(source.pasted_text, self._pseudo_page_chars)
            if not raw_pages:
                raise ExtractionError("Source yielded no pages")

        async with self._stage(run, IndexingStage.NORMALIZING, 25.0, "Normalizing pages"):
            normalized = self._normalizer.normalize(raw_pages)

        if normalized.needs_ocr_fallback and source.origin == SourceOrigin.DOCUMENT:
            async with self._stage(run, IndexingStage.OCR_FALLBACK, 30.0, "Running OCR fallback"):
                ocr_pages = await self._run_ocr_fallback(source)
                run.ocr_fallback_used = True
            async with self._stage(run, IndexingStage.NORMALIZING, 40.0, "Normalizing OCR pages"):
                normalized = self._normalizer.normalize(ocr_pages)
                if normalized.needs_ocr_fallback:
                    # Stage label stays "extraction": the fallback under-yielded.
                    raise OCRFallbackError("OCR fallback also under-yielded")

        if source.origin == SourceOrigin.PASTED_TEXT and normalized.total_chars == 0:
            raise ExtractionError("Pasted text is empty after cleaning")

        run.pages = list(normalized.pages)
        run.empty_pages = normalized.empty_pages
        run.avg_chars_per_page = normalized.avg_chars_per_page

        async with self._stage(run, IndexingStage.DETECTING, 45.0, "Detecting headings and tables"):
            structure = self._detector.detect_document(run.pages, hint_headings=hint_headings)

        chunker = (
            self._document_chunker if source.origin == SourceOrigin.DOCUMENT else self._paste_chunker
        )
        async with self._stage(run, IndexingStage.CHUNKING, 60.0, "Chunking sections"):
            output = chunker.chunk_document(source.id, run.pages, structure)
            run.sections = output.sections
            run.chunks = output.chunks
            run.tables = self._build_tables(source.id, structure, output, extracted_tables)
            section_paths = {s.id: " > ".join(s.path) for s in run.sections}
            run.datasets = build_datasets(run.tables, section_paths)

    async def _run_ocr_fallback(self, source: RulesSource) -> list[ExtractedPage]:
        if self._ocr_provider is None or not self._ocr_provider.is_available():
            self._logger.warning("ocr_fallback_unavailable", source_id=source.id)
            raise OCRFallbackError("Document needs OCR but no OCR fallback service is available")
        try:
            result = await self._ocr_provider.extract_pages(source.document_ref or "")
        except OCRFallbackError:
            raise
        except Exception as exc:
            raise OCRFallbackError(f"OCR fallback failed: {exc}") from exc
        if not result.pages:
            raise OCRFallbackError("OCR fallback returned no pages")
        self._logger.info(
            "ocr_fallback_used",
            source_id=source.id,
            provider=result.provider_name,
            pages=len(result.pages),
        )
        return list(result.pages)

    def _build_tables(
        self,
        source_id: str,
        structure: DetectionResult,
        output: ChunkingOutput,
        extracted: list[ExtractedTable],
    ) -> list[RulesTable]:
        tables: list[RulesTable] = []
        seen: set[tuple[int | None, str]] = set()
        for detected in structure.tables:
            seen.add((detected.page_number, detected.raw_text.strip()))
            tables.append(
                RulesTable(
                    source_id=source_id,
                    section_id=output.table_sections.get((detected.page_number, detected.start_line)),
                    title=detected.title,
                    header_context=detected.header_context,
                    page_number=detected.page_number,
                    raw_text=detected.raw_text,
                    parsed_rows=detected.rows or None,
                    kind=detected.kind,
                    dice_type=getattr(detected, "dice_type", None),
                    confidence=detected.confidence,
                    keywords=extract_table_keywords(detected.kind, detected.title, detected.raw_text),
                )
            )

        for table in extracted:
            if (table.page_number, table.raw_text.strip()) in seen or not table.rows:
                continue
            seen.add((table.page_number, table.raw_text.strip()))
            tables.append(
                RulesTable(
                    source_id=source_id,
                    section_id=self._section_for_page(output.sections, table.page_number),
                    title=table.title,
                    page_number=table.page_number,
                    raw_text=table.raw_text,
                    parsed_rows=table.rows,
                    kind="extracted",
                    confidence=Confidence.MEDIUM,
                    keywords=extract_table_keywords("extracted", table.title, table.raw_text),
                )
            )
        return tables

    @staticmethod
    def _section_for_page(sections: list[RulesSection], page_number: int) -> str | None:
        found = None
        for section in sections:
            if section.page_start is not None and section.page_start <= page_number <= (
                section.page_end or section.page_start
            ):
                found = section.id
        return found

    # ------------------------------------------------------------------
    # Structured imports
    # ------------------------------------------------------------------

    async def _index_structured(self, run: _Run) -> None:
        source = run.source
        async with self._stage(run, IndexingStage.EXTRACTING, 10.0, "Reading structured import"):
            if not source.structured_payload:
                raise ExtractionError("Structured import source has no payload")
            imported = import_structured_rules(source.id, source.structured_payload)

        async with self._stage(run, IndexingStage.CHUNKING, 60.0, "Chunking section text"):
            run.sections = imported.sections
            run.chunks = self._paste_chunker.chunk_sections(source.id, imported.sections)
            run.tables = imported.tables
            run.datasets = imported.datasets

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _save(self, run: _Run) -> None:
        source_id = run.source.id
        pages = [
            RulesPage(source_id=source_id, page_number=p.page_number, text=p.text, char_count=p.char_count)
            for p in run.pages
        ]
        datasets = [dataset for dataset, _ in run.datasets]
        rows = [row for _, dataset_rows in run.datasets for row in dataset_rows]

        async with self._stage(run, IndexingStage.SAVING, 75.0, "Saving derived records"):
            await self._insert_batches(self._store.insert_pages, pages)
            await self._insert_batches(self._store.insert_sections, run.sections)
            await self._progress.update(source_id, IndexingStage.SAVING, 80.0, "Saving chunks")
            await self._insert_batches(self._store.insert_chunks, run.chunks)
            await self._progress.update(source_id, IndexingStage.SAVING, 90.0, "Saving tables and datasets")
            await self._insert_batches(self._store.insert_tables, run.tables)
            await self._insert_batches(self._store.insert_datasets, datasets)
            await self._insert_batches(self._store.insert_dataset_rows, rows)

    async def _insert_batches(self, insert, records: list) -> None:
        for offset in range(0, len(records), self._batch_size):
            await insert(records[offset : offset + self._batch_size])

    @staticmethod
    def _build_stats(run: _Run) -> IndexStats:
        by_confidence = {level: 0 for level in Confidence}
        for table in run.tables:
            by_confidence[table.confidence] += 1
        return IndexStats(
            pages=len(run.pages),
            empty_pages=run.empty_pages,
            avg_chars_per_page=run.avg_chars_per_page,
            sections=len(run.sections),
            chunks=len(run.chunks),
            tables_high=by_confidence[Confidence.HIGH],
            tables_medium=by_confidence[Confidence.MEDIUM],
            tables_low=by_confidence[Confidence.LOW],
            datasets=len(run.datasets),
            dataset_rows=sum(len(rows) for _, rows in run.datasets),
            page_errors=run.page_errors,
            ocr_fallback_used=run.ocr_fallback_used,
            time_ms_by_stage=dict(run.timings),
        )
