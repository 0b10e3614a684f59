"""Primary text extraction providers."""

from rules_index.providers.extraction.pymupdf_extractor import PyMuPDFTextExtractor

__all__ = ["PyMuPDFTextExtractor"]
