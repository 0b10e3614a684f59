"""Abstract base class for the OCR fallback extraction path.

Used only when primary extraction under-yields.  The transport to the OCR
engine (local binary, remote service) is the implementation's concern; the
core only relies on the page-shaped result.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from rules_index.models.indexing import ExtractionResult


# Concrete implementation: TesseractOCRFallbackProvider
# Located in: rules_index/providers/ocr/
class IOCRFallbackProvider(ABC):
    """Contract for OCR services that re-extract a stored document."""

    @abstractmethod
    async def extract_pages(self, document_ref: str) -> ExtractionResult:
        """Run OCR over every page of the stored document.

        Parameters
        ----------
        document_ref:
            The same storage reference that was given to the primary
            extractor.

        Returns
        -------
        ExtractionResult
            Page-shaped output identical in form to primary extraction.

        Raises
        ------
        rules_index.utils.errors.OCRFallbackError
            If the OCR engine is unreachable or fails on the document.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"tesseract"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the OCR engine is installed and callable."""
