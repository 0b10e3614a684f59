"""Abstract base class for primary document text extraction.

Defines the contract for any service that turns a stored document into
ordered page text.  The adapter pattern keeps the orchestrator ignorant of
the backend: swapping PyMuPDF for another PDF library only needs a new
concrete class.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from rules_index.models.indexing import ExtractionResult


# Concrete implementation: PyMuPDFTextExtractor
# Located in: rules_index/providers/extraction/
class ITextExtractor(ABC):
    """Contract for services that extract per-page text from a document.

    Every concrete extractor must be able to:
    * Return ordered ``{page_number, text, char_count}`` pages.
    * Report pages it failed to read in ``page_errors`` instead of aborting.
    * Optionally report tables and headings it recognised on its own.
    """

    @abstractmethod
    async def extract(self, document_ref: str) -> ExtractionResult:
        """Extract every page of the document at *document_ref*.

        Parameters
        ----------
        document_ref:
            Storage path or key of the uploaded document.

        Returns
        -------
        ExtractionResult
            Pages in page order, plus any opportunistic tables/headings
            and a per-page error list.

        Raises
        ------
        rules_index.utils.errors.ExtractionError
            If the document cannot be opened at all.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"pymupdf"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the extractor's backend library is importable."""
