"""Custom exception hierarchy for the rules indexer.

All application exceptions inherit from :class:`RulesIndexError`, which
carries an optional ``stage`` naming the indexing stage that failed.  The
orchestrator copies ``stage`` and ``message`` straight onto the Source's
``index_error`` record, so every stage error must be raised with a stage.

    RulesIndexError  (base)
    +-- ExtractionError          (origin unreadable or empty)
    +-- OCRFallbackError         (fallback service unreachable or under-yields)
    +-- NormalizationError       (page data could not be cleaned)
    +-- DetectionError           (malformed page data aborted detection)
    +-- ChunkingError            (chunk assembly failed)
    +-- PersistenceError         (store rejected a batch)
    +-- IndexingCancelledError   (cooperative cancel observed between stages)
    +-- InvalidTransitionError   (compare-and-set on the status rejected)
    +-- SourceNotFoundError      (unknown source identifier)
    +-- ConfigurationError       (bad settings / missing collaborator)
"""

from __future__ import annotations


class RulesIndexError(Exception):
    """Base exception for all indexer errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``stage`` label.  ``__str__`` prefixes the stage in brackets for
    structured log output, e.g. ``[extraction] Document has no pages``.
    """

    default_stage: str | None = None

    def __init__(
        self,
        message: str = "An unexpected indexing error occurred",
        stage: str | None = None,
    ) -> None:
        self._message = message
        self._stage = stage if stage is not None else self.default_stage
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def stage(self) -> str | None:
        return self._stage

    def __str__(self) -> str:
        if self._stage:
            return f"[{self._stage}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Stage errors -- surfaced onto Source.index_error
# ---------------------------------------------------------------------------

class ExtractionError(RulesIndexError):
    """Raised when the origin cannot be read or yields no text at all."""

    default_stage = "extraction"

    def __init__(self, message: str = "Text extraction failed", stage: str | None = None) -> None:
        super().__init__(message=message, stage=stage)


class OCRFallbackError(RulesIndexError):
    """Raised when the OCR fallback is unreachable or also under-yields.

    Reported under the ``extraction`` stage: the fallback replaces the
    primary extraction, it is not a stage of its own.
    """

    default_stage = "extraction"

    def __init__(self, message: str = "OCR fallback extraction failed", stage: str | None = None) -> None:
        super().__init__(message=message, stage=stage)


class NormalizationError(RulesIndexError):
    """Raised when page cleaning fails on malformed input."""

    default_stage = "normalization"

    def __init__(self, message: str = "Page normalization failed", stage: str | None = None) -> None:
        super().__init__(message=message, stage=stage)


class DetectionError(RulesIndexError):
    """Raised when structural detection aborts on malformed page data.

    A region that *almost* looks like a table is not an error; it is
    simply omitted from the detector output.
    """

    default_stage = "detection"

    def __init__(self, message: str = "Structure detection failed", stage: str | None = None) -> None:
        super().__init__(message=message, stage=stage)


class ChunkingError(RulesIndexError):
    """Raised when chunk assembly fails."""

    default_stage = "chunking"

    def __init__(self, message: str = "Chunking failed", stage: str | None = None) -> None:
        super().__init__(message=message, stage=stage)


class PersistenceError(RulesIndexError):
    """Raised when the rules store rejects a write."""

    default_stage = "persistence"

    def __init__(self, message: str = "Persisting derived data failed", stage: str | None = None) -> None:
        super().__init__(message=message, stage=stage)


# ---------------------------------------------------------------------------
# Orchestration errors
# ---------------------------------------------------------------------------

class IndexingCancelledError(RulesIndexError):
    """Raised when a run observes its cancel signal between stages."""

    def __init__(self, message: str = "Indexing was cancelled", stage: str | None = None) -> None:
        super().__init__(message=message, stage=stage)


class InvalidTransitionError(RulesIndexError):
    """Raised when a status compare-and-set is rejected.

    The most common cause is starting a second run while the Source is
    already ``indexing``.
    """

    def __init__(self, message: str = "Invalid index status transition", stage: str | None = None) -> None:
        super().__init__(message=message, stage=stage)


class SourceNotFoundError(RulesIndexError):
    """Raised when a source identifier is unknown to the store."""

    def __init__(self, message: str = "Rules source not found", stage: str | None = None) -> None:
        super().__init__(message=message, stage=stage)


class ConfigurationError(RulesIndexError):
    """Raised on invalid settings or a missing required collaborator."""

    def __init__(self, message: str = "Invalid or missing configuration", stage: str | None = None) -> None:
        super().__init__(message=message, stage=stage)
