"""Abstract collaborator contracts consumed by the indexing core."""

from rules_index.interfaces.ocr_fallback_provider import IOCRFallbackProvider
from rules_index.interfaces.rules_store import IRulesStore
from rules_index.interfaces.text_extractor import ITextExtractor

__all__ = ["IOCRFallbackProvider", "IRulesStore", "ITextExtractor"]
