"""Rules indexer composition root.

Wires Settings and ``config/config.yaml`` into concrete providers, services
and the indexing orchestrator.  Used by the CLI and by any host
application embedding the indexer.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from rules_index.config.loader import load_config
from rules_index.config.settings import Settings
from rules_index.interfaces.ocr_fallback_provider import IOCRFallbackProvider
from rules_index.interfaces.rules_store import IRulesStore
from rules_index.interfaces.text_extractor import ITextExtractor
from rules_index.pipeline.orchestrator import IndexingOrchestrator
from rules_index.pipeline.progress_tracker import ProgressTracker
from rules_index.pipeline.state_registry import IndexStateRegistry
from rules_index.providers.extraction.pymupdf_extractor import PyMuPDFTextExtractor
from rules_index.providers.ocr.tesseract_fallback_provider import TesseractOCRFallbackProvider
from rules_index.providers.store.sqlite_rules_store import SQLiteRulesStore
from rules_index.services.ingestion.chunker import RulesChunker
from rules_index.services.ingestion.page_normalizer import PageNormalizer
from rules_index.services.ingestion.structure_detector import StructureDetector
from rules_index.services.retrieval.search_service import RulesSearchService
from rules_index.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


@dataclass
class RulesIndexer:
    """The wired-up components a caller needs."""

    store: IRulesStore
    orchestrator: IndexingOrchestrator
    progress_tracker: ProgressTracker
    search: RulesSearchService


def build_indexer(
    config: dict | None = None,
    store: IRulesStore | None = None,
    extractor: ITextExtractor | None = None,
    ocr_provider: IOCRFallbackProvider | None = None,
) -> RulesIndexer:
    """Construct the indexer from a resolved configuration dictionary.

    Any collaborator passed explicitly replaces the configured default,
    which is how tests swap in the in-memory store.

    Parameters
    ----------
    config:
        Output of :func:`load_config`; loaded from the default path when
        omitted.
    store, extractor, ocr_provider:
        Optional overrides for the SQLite store, PyMuPDF extractor and
        Tesseract OCR fallback.
    """
    config = config if config is not None else load_config(settings=Settings())
    chunking = config["chunking"]
    normalization = config["normalization"]
    ocr = config["ocr"]

    store = store or SQLiteRulesStore(config["storage"]["rules_db_path"])
    extractor = extractor or PyMuPDFTextExtractor()
    if ocr_provider is None:
        ocr_provider = TesseractOCRFallbackProvider(language=ocr["language"], dpi=ocr["dpi"])
        if not ocr_provider.is_available():
            _logger.warning("ocr_fallback_unavailable", provider=ocr_provider.get_provider_name())

    tracker = ProgressTracker()
    orchestrator = IndexingOrchestrator(
        store=store,
        extractor=extractor,
        progress_tracker=tracker,
        normalizer=PageNormalizer(
            header_footer_max_line_length=normalization["header_footer_max_line_length"],
            ocr_min_chars_per_page=normalization["ocr_min_chars_per_page"],
        ),
        detector=StructureDetector(),
        document_chunker=RulesChunker(
            target_size=chunking["document"]["target_size"],
            overlap=chunking["document"]["overlap"],
            min_size=chunking["document"]["min_size"],
            max_size=chunking["document"]["max_size"],
        ),
        paste_chunker=RulesChunker(
            target_size=chunking["pasted_text"]["target_size"],
            overlap=chunking["pasted_text"]["overlap"],
            min_size=chunking["document"]["min_size"],
            max_size=chunking["document"]["max_size"],
        ),
        ocr_provider=ocr_provider,
        state_registry=IndexStateRegistry(),
        batch_size=config["persistence"]["batch_size"],
        pseudo_page_chars=chunking["pasted_text"]["pseudo_page_chars"],
    )

    _logger.info(
        "rules_indexer_built",
        store=type(store).__name__,
        extractor=extractor.get_provider_name(),
        ocr=ocr_provider.get_provider_name(),
    )
    return RulesIndexer(
        store=store,
        orchestrator=orchestrator,
        progress_tracker=tracker,
        search=RulesSearchService(store),
    )
