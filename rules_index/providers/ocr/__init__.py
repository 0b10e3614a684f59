"""OCR fallback providers."""

from rules_index.providers.ocr.tesseract_fallback_provider import TesseractOCRFallbackProvider

__all__ = ["TesseractOCRFallbackProvider"]
