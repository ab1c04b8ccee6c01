"""Tests for reverie.events — EventBus and typed event definitions."""

from __future__ import annotations

import asyncio
from typing import ClassVar

import pytest

from reverie.events import (
    AutonomyIterationEvent,
    AutonomyStartedEvent,
    AutonomyStoppedEvent,
    AutonomyThoughtEvent,
    EventBus,
    ReverieEvent,
)


class _OtherEvent(ReverieEvent):
    kind: ClassVar[str] = "other.thing"


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------


class TestEventTypes:
    def test_started(self) -> None:
        assert AutonomyStartedEvent(interval_ms=1000).event_type == "autonomy.started"

    def test_stopped(self) -> None:
        assert AutonomyStoppedEvent(iteration_count=3).event_type == "autonomy.stopped"

    def test_iteration(self) -> None:
        event = AutonomyIterationEvent(iteration_id="i", outcome="published", elapsed_seconds=2.1)
        assert event.event_type == "autonomy.iteration"

    def test_thought(self) -> None:
        event = AutonomyThoughtEvent(iteration_id="i", thought_id="t", text="x", published=True)
        assert event.event_type == "autonomy.thought"

    def test_serializes_with_type(self) -> None:
        data = AutonomyStartedEvent(interval_ms=500).model_dump()
        assert data == {"interval_ms": 500, "event_type": "autonomy.started"}


# ---------------------------------------------------------------------------
# EventBus
# ---------------------------------------------------------------------------


class TestEventBus:
    @pytest.mark.asyncio
    async def test_pattern_subscription(self) -> None:
        bus = EventBus()
        await bus.start()
        autonomy: list[str] = []
        everything: list[str] = []
        thoughts: list[str] = []
        bus.subscribe("autonomy.*", lambda e: autonomy.append(e.event_type))
        bus.subscribe("*", lambda e: everything.append(e.event_type))
        bus.subscribe("autonomy.thought", lambda e: thoughts.append(e.event_type))

        bus.emit(AutonomyStartedEvent(interval_ms=100))
        bus.emit(AutonomyThoughtEvent(iteration_id="i", thought_id="t", text="x", published=True))
        bus.emit(_OtherEvent())
        await bus.stop()

        assert autonomy == ["autonomy.started", "autonomy.thought"]
        assert everything == ["autonomy.started", "autonomy.thought", "other.thing"]
        assert thoughts == ["autonomy.thought"]

    @pytest.mark.asyncio
    async def test_async_handler_awaited(self) -> None:
        bus = EventBus()
        await bus.start()
        received: list[int] = []

        async def handler(event: AutonomyStartedEvent) -> None:
            await asyncio.sleep(0)
            received.append(event.interval_ms)

        bus.subscribe("autonomy.started", handler)
        bus.emit(AutonomyStartedEvent(interval_ms=250))
        await bus.stop()
        assert received == [250]

    @pytest.mark.asyncio
    async def test_handler_error_isolated(self) -> None:
        bus = EventBus()
        await bus.start()
        received: list[str] = []

        def broken(event: ReverieEvent) -> None:
            raise ValueError("handler bug")

        bus.subscribe("*", broken)
        bus.subscribe("*", lambda e: received.append(e.event_type))
        bus.emit(AutonomyStoppedEvent(iteration_count=1))
        await bus.stop()
        assert received == ["autonomy.stopped"]

    @pytest.mark.asyncio
    async def test_emit_before_start_dropped(self) -> None:
        bus = EventBus()
        received: list[str] = []
        bus.subscribe("*", lambda e: received.append(e.event_type))
        bus.emit(AutonomyStoppedEvent(iteration_count=0))
        await bus.start()
        await bus.stop()
        assert received == []

    @pytest.mark.asyncio
    async def test_emit_after_stop_dropped(self) -> None:
        bus = EventBus()
        received: list[str] = []
        bus.subscribe("*", lambda e: received.append(e.event_type))
        await bus.start()
        await bus.stop()
        bus.emit(AutonomyStoppedEvent(iteration_count=0))
        assert received == []

    @pytest.mark.asyncio
    async def test_queue_full_drops(self) -> None:
        bus = EventBus(max_queue_size=1)
        received: list[int] = []
        bus.subscribe("*", lambda e: received.append(e.iteration_count))
        await bus.start()
        # The worker has not run yet, so the second event finds the queue full.
        bus.emit(AutonomyStoppedEvent(iteration_count=0))
        bus.emit(AutonomyStoppedEvent(iteration_count=1))
        await bus.stop()
        assert received == [0]

    @pytest.mark.asyncio
    async def test_start_stop_idempotent(self) -> None:
        bus = EventBus()
        await bus.start()
        await bus.start()
        assert bus.running is True
        await bus.stop()
        await bus.stop()
        assert bus.running is False
