"""Shared pytest fixtures for the rules indexer test suite."""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest
import structlog

from rules_index.interfaces.ocr_fallback_provider import IOCRFallbackProvider
from rules_index.interfaces.text_extractor import ITextExtractor
from rules_index.models.indexing import ExtractedPage, ExtractionResult
from rules_index.models.rules import RulesSource, SourceOrigin
from rules_index.pipeline.orchestrator import IndexingOrchestrator
from rules_index.pipeline.progress_tracker import ProgressTracker
from rules_index.pipeline.state_registry import IndexStateRegistry
from rules_index.providers.store.memory_rules_store import MemoryRulesStore

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _test_logging() -> None:
    """Plain, uncached structlog output so no logger keeps a captured stream."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


# ---------------------------------------------------------------------------
# Sample rulebook pages
# ---------------------------------------------------------------------------

RUNNING_HEADER = "Mordheim Campaign Rules"

PAGE_ONE = f"""{RUNNING_HEADER}
CAMPAIGN RULES

Between battles your warband recovers from its wounds, explores the ruined city for wyrdstone and spends its hard-won loot.

Page 1
"""

PAGE_TWO = f"""{RUNNING_HEADER}
Serious Injuries

Roll on the Injury Table:
1-2 Dead
3-4 Captured
5-6 Full Recovery

Warriors who are captured may be ransomed back by their warband for a fee agreed with the captors after the battle.

Page 2
"""

PAGE_THREE = f"""{RUNNING_HEADER}
Weapons List

| Weapon | Cost | Range |
| --- | --- | --- |
| Sword | 10 gc | Close |
| Bow | 10 gc | Long |
| Axe | 5 gc | Close |

Page 3
"""


def make_pages(*texts: str) -> list[ExtractedPage]:
    """Build 1-based ExtractedPage objects from raw page texts."""
    return [
        ExtractedPage(page_number=number, text=text, char_count=len(text))
        for number, text in enumerate(texts, start=1)
    ]


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def rulebook_pages() -> list[ExtractedPage]:
    """Three extracted pages with a running header/footer, a dice table and a pipe table."""
    return make_pages(PAGE_ONE, PAGE_TWO, PAGE_THREE)


@pytest.fixture
def store() -> MemoryRulesStore:
    return MemoryRulesStore()


@pytest.fixture
def tracker() -> ProgressTracker:
    return ProgressTracker()


@pytest.fixture
def registry() -> IndexStateRegistry:
    return IndexStateRegistry()


@pytest.fixture
def mock_extractor(rulebook_pages: list[ExtractedPage]) -> MagicMock:
    """An ITextExtractor mock returning the sample rulebook."""
    extractor = MagicMock(spec=ITextExtractor)
    extractor.extract = AsyncMock(
        return_value=ExtractionResult(pages=rulebook_pages, provider_name="mock")
    )
    extractor.get_provider_name.return_value = "mock"
    extractor.is_available.return_value = True
    return extractor


@pytest.fixture
def mock_ocr() -> MagicMock:
    """An available IOCRFallbackProvider mock; tests set ``extract_pages``."""
    provider = MagicMock(spec=IOCRFallbackProvider)
    provider.extract_pages = AsyncMock(return_value=ExtractionResult(pages=[], provider_name="mock-ocr"))
    provider.get_provider_name.return_value = "mock-ocr"
    provider.is_available.return_value = True
    return provider


@pytest.fixture
def orchestrator(
    store: MemoryRulesStore,
    mock_extractor: MagicMock,
    mock_ocr: MagicMock,
    tracker: ProgressTracker,
    registry: IndexStateRegistry,
) -> IndexingOrchestrator:
    return IndexingOrchestrator(
        store=store,
        extractor=mock_extractor,
        progress_tracker=tracker,
        ocr_provider=mock_ocr,
        state_registry=registry,
        batch_size=2,
    )


@pytest.fixture
def document_source() -> RulesSource:
    return RulesSource(
        campaign_id="campaign-1",
        origin=SourceOrigin.DOCUMENT,
        title="Core Rules",
        document_ref="/uploads/core-rules.pdf",
    )
