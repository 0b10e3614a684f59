"""Indexing progress tracking with listener and queue delivery.

Tracks the latest :class:`ProgressEvent` for each Source and broadcasts
every update two ways:

* registered callbacks (sync or async), invoked in registration order
* subscriber queues, consumed through the async iterator returned by
  :meth:`ProgressTracker.subscribe`

Listeners are keyed by Source id so concurrent runs on different Sources
never see each other's events.  Percent never decreases within one run;
:meth:`ProgressTracker.reset` starts a new run at zero.  Delivery is
best-effort: a failing listener is logged and skipped.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable

import structlog

from rules_index.models.indexing import IndexingStage, ProgressEvent
from rules_index.utils.logging import get_logger


class ProgressTracker:
    """Tracks and broadcasts indexing progress per Source."""

    def __init__(self) -> None:
        self._latest: dict[str, ProgressEvent] = {}
        self._listeners: dict[str, list[Callable]] = {}
        self._queues: dict[str, list[asyncio.Queue[ProgressEvent | None]]] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def reset(self, source_id: str) -> None:
        """Forget the previous run's progress for *source_id*."""
        self._latest.pop(source_id, None)

    async def update(
        self,
        source_id: str,
        stage: IndexingStage,
        percent: float,
        message: str = "",
    ) -> ProgressEvent:
        """Record a progress update and notify listeners and subscribers.

        Parameters
        ----------
        source_id:
            The Source being indexed.
        stage:
            The stage that is starting or has ended the run.
        percent:
            Completion percentage (0.0 – 100.0).  Clamped, and raised to
            the previous value if lower.
        message:
            Human-readable status message.
        """
        percent = max(0.0, min(100.0, percent))
        previous = self._latest.get(source_id)
        if previous is not None and percent < previous.percent:
            percent = previous.percent

        event = ProgressEvent(source_id=source_id, stage=stage, percent=percent, message=message)
        self._latest[source_id] = event

        self._logger.debug(
            "progress_update",
            source_id=source_id,
            stage=stage.value,
            percent=round(percent, 1),
            message=message,
        )

        await self._notify_listeners(event)
        self._publish(event)
        return event

    def register_listener(self, source_id: str, callback: Callable) -> None:
        """Register a callback receiving each :class:`ProgressEvent` for a Source."""
        listeners = self._listeners.setdefault(source_id, [])
        if callback not in listeners:
            listeners.append(callback)
            self._logger.debug(
                "listener_registered",
                source_id=source_id,
                total_listeners=len(listeners),
            )

    def unregister_listener(self, source_id: str, callback: Callable) -> None:
        listeners = self._listeners.get(source_id, [])
        if callback in listeners:
            listeners.remove(callback)

    def subscribe(self, source_id: str) -> AsyncIterator[ProgressEvent]:
        """Return an async iterator over the next run's events for *source_id*.

        The queue is registered immediately, so subscribing before calling
        ``start_indexing`` sees every event.  Iteration ends after the first
        terminal event (complete, failed or cancelled).
        """
        queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue()
        self._queues.setdefault(source_id, []).append(queue)
        return self._drain(source_id, queue)

    def get_status(self, source_id: str) -> ProgressEvent | None:
        """Return the latest event for *source_id*, or ``None`` if never tracked."""
        return self._latest.get(source_id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _drain(
        self,
        source_id: str,
        queue: asyncio.Queue[ProgressEvent | None],
    ) -> AsyncIterator[ProgressEvent]:
        try:
            while True:
                event = await queue.get()
                if event is None:
                    return
                yield event
        finally:
            queues = self._queues.get(source_id, [])
            if queue in queues:
                queues.remove(queue)

    def _publish(self, event: ProgressEvent) -> None:
        for queue in list(self._queues.get(event.source_id, [])):
            queue.put_nowait(event)
            if event.stage.is_terminal:
                queue.put_nowait(None)
        if event.stage.is_terminal:
            self._queues.pop(event.source_id, None)

    async def _notify_listeners(self, event: ProgressEvent) -> None:
        """Invoke all registered listeners for the event's Source.

        Listeners that raise are logged and skipped so a single faulty
        listener cannot block progress updates.
        """
        for callback in list(self._listeners.get(event.source_id, [])):
            try:
                result = callback(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    source_id=event.source_id,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )
