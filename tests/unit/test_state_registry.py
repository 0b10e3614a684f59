"""Unit tests for the compare-and-set status registry."""

from __future__ import annotations

import asyncio

import pytest

from rules_index.models.rules import IndexStatus
from rules_index.pipeline.state_registry import IndexStateRegistry
from rules_index.utils.errors import InvalidTransitionError

STARTABLE = (IndexStatus.NOT_INDEXED, IndexStatus.INDEXED, IndexStatus.FAILED)


class TestIndexStateRegistry:
    @pytest.mark.asyncio
    async def test_first_transition_uses_initial_status(self, registry: IndexStateRegistry) -> None:
        previous = await registry.compare_and_set("s1", STARTABLE, IndexStatus.INDEXING)

        assert previous == IndexStatus.NOT_INDEXED
        assert registry.get("s1") == IndexStatus.INDEXING

    @pytest.mark.asyncio
    async def test_initial_can_be_persisted_status(self, registry: IndexStateRegistry) -> None:
        previous = await registry.compare_and_set(
            "s1", STARTABLE, IndexStatus.INDEXING, initial=IndexStatus.INDEXED
        )
        assert previous == IndexStatus.INDEXED

    @pytest.mark.asyncio
    async def test_second_start_is_rejected(self, registry: IndexStateRegistry) -> None:
        await registry.compare_and_set("s1", STARTABLE, IndexStatus.INDEXING)

        with pytest.raises(InvalidTransitionError):
            await registry.compare_and_set("s1", STARTABLE, IndexStatus.INDEXING)

    @pytest.mark.asyncio
    async def test_concurrent_starts_admit_exactly_one(self, registry: IndexStateRegistry) -> None:
        results = await asyncio.gather(
            *[registry.compare_and_set("s1", STARTABLE, IndexStatus.INDEXING) for _ in range(5)],
            return_exceptions=True,
        )

        rejected = [r for r in results if isinstance(r, InvalidTransitionError)]
        assert len(rejected) == 4

    @pytest.mark.asyncio
    async def test_illegal_successor_is_rejected(self, registry: IndexStateRegistry) -> None:
        with pytest.raises(InvalidTransitionError):
            await registry.compare_and_set("s1", [IndexStatus.NOT_INDEXED], IndexStatus.INDEXED)
        assert registry.get("s1") is None

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, registry: IndexStateRegistry) -> None:
        await registry.compare_and_set("s1", STARTABLE, IndexStatus.INDEXING)
        await registry.compare_and_set("s1", [IndexStatus.INDEXING], IndexStatus.FAILED)
        await registry.compare_and_set("s1", [IndexStatus.FAILED], IndexStatus.INDEXING)
        await registry.compare_and_set("s1", [IndexStatus.INDEXING], IndexStatus.INDEXED)

        assert registry.get("s1") == IndexStatus.INDEXED

    @pytest.mark.asyncio
    async def test_forget(self, registry: IndexStateRegistry) -> None:
        await registry.compare_and_set("s1", STARTABLE, IndexStatus.INDEXING)
        registry.forget("s1")
        assert registry.get("s1") is None
