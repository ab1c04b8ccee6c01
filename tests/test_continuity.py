"""Tests for reverie.continuity — resolving the last autonomous thought."""

from __future__ import annotations

import time

import pytest

from reverie.continuity import ContinuityResolver, read_room
from reverie.errors import TransientStoreError
from reverie.types import TRIGGER_SOURCE

from tests.conftest import ROOM_ID, FakeRuntime, make_record


class TestReadRoom:
    @pytest.mark.asyncio
    async def test_normalizes_records(self) -> None:
        runtime = FakeRuntime()
        runtime.records.append(make_record("hello"))
        records = await read_room(runtime, ROOM_ID, 3)
        assert [r.text for r in records] == ["hello"]
        assert runtime.memory_queries[-1] == {
            "room_id": ROOM_ID,
            "count": 3,
            "table_name": "memories",
        }

    @pytest.mark.asyncio
    async def test_store_failure_wrapped(self) -> None:
        runtime = FakeRuntime()
        runtime.fail_reads = True
        with pytest.raises(TransientStoreError):
            await read_room(runtime, ROOM_ID, 3)


class TestContinuityResolver:
    @pytest.mark.asyncio
    async def test_empty_room_is_first_thought(self, context) -> None:
        resolver = ContinuityResolver(FakeRuntime(), context)
        assert await resolver.resolve() is None

    @pytest.mark.asyncio
    async def test_returns_latest_autonomous_text(self, context) -> None:
        now = time.time()
        runtime = FakeRuntime()
        runtime.records.extend([
            make_record("older", created_at=now - 10),
            make_record("newest", created_at=now - 1),
        ])
        assert await ContinuityResolver(runtime, context).resolve() == "newest"

    @pytest.mark.asyncio
    async def test_selection_is_by_created_at_not_order(self, context) -> None:
        now = time.time()
        runtime = FakeRuntime()
        # Stored out of order: the store's own ordering must not matter.
        runtime.records.extend([
            make_record("newest", created_at=now),
            make_record("older", created_at=now - 5),
        ])
        assert await ContinuityResolver(runtime, context).resolve() == "newest"

    @pytest.mark.asyncio
    async def test_ignores_foreign_untagged_and_trigger_records(self, context) -> None:
        now = time.time()
        runtime = FakeRuntime()
        runtime.records.extend([
            make_record("mine", created_at=now - 20),
            make_record("someone else", author_id="other", created_at=now - 3),
            make_record("not autonomous", autonomous=False, created_at=now - 2),
            make_record("the prompt", source=TRIGGER_SOURCE, created_at=now - 1),
        ])
        resolver = ContinuityResolver(runtime, context, count=4)
        assert await resolver.resolve() == "mine"

    @pytest.mark.asyncio
    async def test_empty_text_skipped(self, context) -> None:
        runtime = FakeRuntime()
        runtime.records.append(make_record(""))
        assert await ContinuityResolver(runtime, context).resolve() is None

    @pytest.mark.asyncio
    async def test_store_failure_degrades_to_first_thought(self, context) -> None:
        runtime = FakeRuntime()
        runtime.records.append(make_record("hidden"))
        runtime.fail_reads = True
        assert await ContinuityResolver(runtime, context).resolve() is None

    @pytest.mark.asyncio
    async def test_reads_configured_window(self, context) -> None:
        runtime = FakeRuntime()
        await ContinuityResolver(runtime, context, count=7, table_name="thoughts").resolve()
        assert runtime.memory_queries[-1]["count"] == 7
        assert runtime.memory_queries[-1]["table_name"] == "thoughts"
