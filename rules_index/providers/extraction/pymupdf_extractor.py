"""PyMuPDF-backed text extractor for uploaded rulebook PDFs.

Reads the document's text layer page by page with PyMuPDF (fitz).  A page
that fails to read is recorded as a :class:`PageError` and returned blank
so page numbering stays contiguous.  Two structural extras are gathered
opportunistically and never fail a page:

* tables found by ``page.find_tables()`` (PyMuPDF >= 1.23)
* heading hints from spans set noticeably larger than the body font
"""

from __future__ import annotations

import asyncio
import statistics
from pathlib import Path

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from rules_index.interfaces.text_extractor import ITextExtractor
from rules_index.models.indexing import (
    ExtractedHeading,
    ExtractedPage,
    ExtractedTable,
    ExtractionResult,
    PageError,
)
from rules_index.services.ingestion.table_canonicalizer import canonicalize_rows
from rules_index.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)

# Span size relative to the median body size that marks a heading.
_HEADING_SIZE_RATIO = 1.25
_TOP_LEVEL_SIZE_RATIO = 1.6
_MAX_HEADING_CHARS = 80


class PyMuPDFTextExtractor(ITextExtractor):
    """Text-layer extraction with PyMuPDF.

    Parameters
    ----------
    detect_tables:
        Ask PyMuPDF for its own table detection on every page.
    detect_headings:
        Derive heading hints from font sizes.
    """

    def __init__(self, detect_tables: bool = True, detect_headings: bool = True) -> None:
        self._detect_tables = detect_tables
        self._detect_headings = detect_headings

    # ------------------------------------------------------------------
    # ITextExtractor interface
    # ------------------------------------------------------------------

    async def extract(self, document_ref: str) -> ExtractionResult:
        return await asyncio.to_thread(self._extract_sync, document_ref)

    def get_provider_name(self) -> str:
        return "pymupdf"

    def is_available(self) -> bool:
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _extract_sync(self, document_ref: str) -> ExtractionResult:
        if not Path(document_ref).is_file():
            raise ExtractionError(f"Document not found: {document_ref}")
        try:
            doc = fitz.open(document_ref)
        except Exception as exc:
            raise ExtractionError(f"Could not open document {document_ref}: {exc}") from exc

        pages: list[ExtractedPage] = []
        tables: list[ExtractedTable] = []
        headings: list[ExtractedHeading] = []
        page_errors: list[PageError] = []
        try:
            for index in range(len(doc)):
                page_number = index + 1
                try:
                    page = doc[index]
                    text = page.get_text("text")
                except Exception as exc:
                    logger.warning("pdf_page_read_failed", page=page_number, error=str(exc))
                    page_errors.append(PageError(page_number=page_number, message=str(exc)))
                    pages.append(ExtractedPage(page_number=page_number))
                    continue

                pages.append(ExtractedPage(page_number=page_number, text=text, char_count=len(text)))
                if self._detect_tables:
                    tables.extend(self._find_tables(page, page_number))
                if self._detect_headings:
                    headings.extend(self._find_headings(page, page_number))
        finally:
            doc.close()

        logger.info(
            "pdf_text_extracted",
            document_ref=document_ref,
            pages=len(pages),
            tables=len(tables),
            headings=len(headings),
            page_errors=len(page_errors),
        )
        return ExtractionResult(
            pages=pages,
            tables=tables,
            headings=headings,
            page_errors=page_errors,
            provider_name=self.get_provider_name(),
        )

    @staticmethod
    def _find_tables(page: fitz.Page, page_number: int) -> list[ExtractedTable]:
        try:
            found = page.find_tables()
        except Exception as exc:
            logger.debug("pdf_table_detection_skipped", page=page_number, error=str(exc))
            return []

        tables: list[ExtractedTable] = []
        for table in found.tables:
            try:
                columns = [name or "" for name in table.header.names]
                cells = table.extract()
            except Exception as exc:
                logger.debug("pdf_table_extract_failed", page=page_number, error=str(exc))
                continue
            body = cells[1:] if cells and [c or "" for c in cells[0]] == columns else cells
            data = canonicalize_rows(body, columns)
            if data is None:
                continue
            raw_text = "\n".join(
                " | ".join(row[column] for column in data.columns) for row in data.rows
            )
            tables.append(
                ExtractedTable(
                    page_number=page_number,
                    columns=data.columns,
                    rows=data.rows,
                    raw_text=raw_text,
                )
            )
        return tables

    @staticmethod
    def _find_headings(page: fitz.Page, page_number: int) -> list[ExtractedHeading]:
        try:
            layout = page.get_text("dict")
        except Exception as exc:
            logger.debug("pdf_heading_detection_skipped", page=page_number, error=str(exc))
            return []

        lines: list[tuple[str, float]] = []
        for block in layout.get("blocks", []):
            for line in block.get("lines", []):
                spans = line.get("spans", [])
                text = "".join(span.get("text", "") for span in spans).strip()
                if text:
                    lines.append((text, max(span.get("size", 0.0) for span in spans)))
        if len(lines) < 2:
            return []

        body_size = statistics.median(size for _, size in lines)
        if body_size <= 0:
            return []

        headings: list[ExtractedHeading] = []
        for text, size in lines:
            ratio = size / body_size
            if ratio < _HEADING_SIZE_RATIO or len(text) > _MAX_HEADING_CHARS:
                continue
            level = 1 if ratio >= _TOP_LEVEL_SIZE_RATIO else 2
            headings.append(ExtractedHeading(page_number=page_number, title=text, level=level))
        return headings
