"""Tests for the indexer composition root."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

from rules_index.config.loader import load_config
from rules_index.config.settings import Settings
from rules_index.main import build_indexer
from rules_index.pipeline.orchestrator import IndexingOrchestrator
from rules_index.pipeline.progress_tracker import ProgressTracker
from rules_index.providers.extraction.pymupdf_extractor import PyMuPDFTextExtractor
from rules_index.providers.ocr.tesseract_fallback_provider import TesseractOCRFallbackProvider
from rules_index.providers.store.memory_rules_store import MemoryRulesStore
from rules_index.providers.store.sqlite_rules_store import SQLiteRulesStore
from rules_index.services.retrieval.search_service import RulesSearchService


def _config(tmp_path: Path, **overrides) -> dict:
    settings = Settings(_env_file=None, rules_db_path=str(tmp_path / "rules.db"), **overrides)
    return load_config(tmp_path / "missing.yaml", settings=settings)


class TestBuildIndexer:
    def test_default_collaborators(self, tmp_path: Path) -> None:
        indexer = build_indexer(_config(tmp_path))

        assert isinstance(indexer.store, SQLiteRulesStore)
        assert isinstance(indexer.orchestrator, IndexingOrchestrator)
        assert isinstance(indexer.progress_tracker, ProgressTracker)
        assert isinstance(indexer.search, RulesSearchService)
        assert isinstance(indexer.orchestrator._extractor, PyMuPDFTextExtractor)
        assert isinstance(indexer.orchestrator._ocr_provider, TesseractOCRFallbackProvider)

    def test_chunk_sizes_come_from_config(self, tmp_path: Path) -> None:
        indexer = build_indexer(_config(tmp_path, chunk_target_size=900, paste_chunk_target_size=600))

        assert indexer.orchestrator._document_chunker._target_size == 900
        assert indexer.orchestrator._paste_chunker._target_size == 600

    def test_explicit_collaborators_win(self, tmp_path: Path, mock_extractor: MagicMock, mock_ocr: MagicMock) -> None:
        store = MemoryRulesStore()
        indexer = build_indexer(_config(tmp_path), store=store, extractor=mock_extractor, ocr_provider=mock_ocr)

        assert indexer.store is store
        assert indexer.orchestrator._extractor is mock_extractor
        assert indexer.orchestrator._ocr_provider is mock_ocr
        assert indexer.orchestrator._progress is indexer.progress_tracker
