"""Indexing pipeline: status registry, progress tracking and orchestration."""

from rules_index.pipeline.orchestrator import IndexingOrchestrator
from rules_index.pipeline.progress_tracker import ProgressTracker
from rules_index.pipeline.state_registry import IndexStateRegistry

__all__ = ["IndexStateRegistry", "IndexingOrchestrator", "ProgressTracker"]
