"""Per-Source index status with explicit compare-and-set transitions.

The registry is the in-process mutual-exclusion marker for indexing runs:
a Source can only move to ``indexing`` through :meth:`compare_and_set`,
which rejects the move while another run holds it.

    NOT_INDEXED → INDEXING → {INDEXED | FAILED}
    INDEXED → INDEXING,  FAILED → INDEXING
"""

from __future__ import annotations

import asyncio
from collections.abc import Collection

import structlog

from rules_index.models.rules import IndexStatus
from rules_index.utils.errors import InvalidTransitionError

logger = structlog.get_logger(logger_name=__name__)

_ALLOWED: dict[IndexStatus, frozenset[IndexStatus]] = {
    IndexStatus.NOT_INDEXED: frozenset({IndexStatus.INDEXING}),
    IndexStatus.INDEXING: frozenset({IndexStatus.INDEXED, IndexStatus.FAILED}),
    IndexStatus.INDEXED: frozenset({IndexStatus.INDEXING}),
    IndexStatus.FAILED: frozenset({IndexStatus.INDEXING}),
}


class IndexStateRegistry:
    """Status records keyed by Source id, guarded by a single lock."""

    def __init__(self) -> None:
        self._states: dict[str, IndexStatus] = {}
        self._lock = asyncio.Lock()

    def get(self, source_id: str) -> IndexStatus | None:
        return self._states.get(source_id)

    async def compare_and_set(
        self,
        source_id: str,
        expected: Collection[IndexStatus],
        new: IndexStatus,
        initial: IndexStatus = IndexStatus.NOT_INDEXED,
    ) -> IndexStatus:
        """Move *source_id* to *new* if its current status is in *expected*.

        Parameters
        ----------
        source_id:
            Source whose record is updated.
        expected:
            Statuses the caller accepts as the current one.
        new:
            Target status; must be a legal successor of the current one.
        initial:
            Status assumed when the registry has no record yet, usually the
            persisted status of the Source.

        Returns
        -------
        IndexStatus
            The status that was replaced.

        Raises
        ------
        InvalidTransitionError
            If the current status is not in *expected* or *new* is not a
            legal successor.
        """
        async with self._lock:
            current = self._states.get(source_id, initial)
            if current not in expected or new not in _ALLOWED[current]:
                raise InvalidTransitionError(
                    f"Cannot move source {source_id} from {current.value} to {new.value}"
                )
            self._states[source_id] = new

        logger.debug(
            "index_status_transition",
            source_id=source_id,
            previous=current.value,
            status=new.value,
        )
        return current

    def forget(self, source_id: str) -> None:
        """Drop the record of a deleted Source."""
        self._states.pop(source_id, None)
