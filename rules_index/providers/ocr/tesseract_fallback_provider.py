"""Tesseract OCR fallback for scanned rulebook PDFs.

Renders every page of the stored document with PyMuPDF at a fixed DPI and
runs Tesseract over the bitmap.  Only invoked when the text layer
under-yields, so throughput matters less than recall.
"""

from __future__ import annotations

import asyncio
import io
import time
from pathlib import Path

import fitz  # PyMuPDF
import structlog
from PIL import Image

from rules_index.interfaces.ocr_fallback_provider import IOCRFallbackProvider
from rules_index.models.indexing import ExtractedPage, ExtractionResult, PageError
from rules_index.utils.errors import OCRFallbackError

# pytesseract needs the Tesseract binary at runtime; without either,
# is_available() reports False and the orchestrator fails the run at the
# OCR step instead of at import time.
try:
    import pytesseract

    _PYTESSERACT_AVAILABLE = True
except ImportError:
    pytesseract = None  # type: ignore[assignment]
    _PYTESSERACT_AVAILABLE = False

logger = structlog.get_logger(logger_name=__name__)


class TesseractOCRFallbackProvider(IOCRFallbackProvider):
    """Page-by-page OCR backed by Google Tesseract via pytesseract.

    Parameters
    ----------
    language:
        Tesseract language code(s), e.g. ``"eng"`` or ``"eng+deu"``.
    dpi:
        Render resolution for each page bitmap.
    """

    def __init__(self, language: str = "eng", dpi: int = 300) -> None:
        self._language = language
        self._dpi = dpi

    # ------------------------------------------------------------------
    # IOCRFallbackProvider interface
    # ------------------------------------------------------------------

    async def extract_pages(self, document_ref: str) -> ExtractionResult:
        if not self.is_available():
            raise OCRFallbackError("Tesseract OCR is not available")
        return await asyncio.to_thread(self._extract_sync, document_ref)

    def get_provider_name(self) -> str:
        return "tesseract"

    def is_available(self) -> bool:
        if not _PYTESSERACT_AVAILABLE:
            return False
        try:
            pytesseract.get_tesseract_version()
        except Exception:
            return False
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _extract_sync(self, document_ref: str) -> ExtractionResult:
        start = time.perf_counter()
        if not Path(document_ref).is_file():
            raise OCRFallbackError(f"Document not found: {document_ref}")
        try:
            doc = fitz.open(document_ref)
        except Exception as exc:
            raise OCRFallbackError(f"Could not open document {document_ref}: {exc}") from exc

        pages: list[ExtractedPage] = []
        page_errors: list[PageError] = []
        try:
            for index in range(len(doc)):
                page_number = index + 1
                try:
                    text = self._ocr_page(doc[index])
                except pytesseract.TesseractError as exc:
                    logger.warning("ocr_page_failed", page=page_number, error=str(exc))
                    page_errors.append(PageError(page_number=page_number, message=str(exc)))
                    text = ""
                pages.append(ExtractedPage(page_number=page_number, text=text, char_count=len(text)))
        finally:
            doc.close()

        if pages and len(page_errors) == len(pages):
            raise OCRFallbackError(f"OCR failed on every page of {document_ref}")

        logger.info(
            "ocr_fallback_complete",
            document_ref=document_ref,
            pages=len(pages),
            page_errors=len(page_errors),
            duration_ms=round((time.perf_counter() - start) * 1000),
        )
        return ExtractionResult(
            pages=pages,
            page_errors=page_errors,
            provider_name=self.get_provider_name(),
        )

    def _ocr_page(self, page: fitz.Page) -> str:
        pixmap = page.get_pixmap(dpi=self._dpi)
        image = Image.open(io.BytesIO(pixmap.tobytes("png"))).convert("RGB")
        return pytesseract.image_to_string(image, lang=self._language)
