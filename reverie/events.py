"""
Autonomy events for in-process observers.

The loop emits a small set of Pydantic events (started, stopped, one per
iteration, one per harvested thought). The service owns an EventBus that
queues them and delivers each one, in emission order, to every subscriber
whose fnmatch pattern matches its ``event_type``:

    service.events.subscribe("autonomy.thought", on_thought)
    service.events.subscribe("autonomy.*", audit)

emit() never blocks the loop. A subscriber that raises is logged and the
remaining subscribers still run.
"""

from __future__ import annotations

import asyncio
import fnmatch
from typing import Any, Awaitable, Callable, ClassVar, Optional, Union

import structlog
from pydantic import BaseModel, computed_field

logger = structlog.get_logger(__name__)

EventHandler = Callable[["ReverieEvent"], Union[None, Awaitable[None]]]

_STOP = object()


class ReverieEvent(BaseModel):
    """Base class; subclasses pin their ``event_type`` as a class constant."""

    kind: ClassVar[str] = "autonomy.event"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def event_type(self) -> str:
        return self.kind


class AutonomyStartedEvent(ReverieEvent):
    """The loop transitioned Stopped -> Running."""

    kind: ClassVar[str] = "autonomy.started"
    interval_ms: int


class AutonomyStoppedEvent(ReverieEvent):
    """The loop transitioned Running -> Stopped."""

    kind: ClassVar[str] = "autonomy.stopped"
    iteration_count: int


class AutonomyIterationEvent(ReverieEvent):
    """One iteration finished, whatever the outcome."""

    kind: ClassVar[str] = "autonomy.iteration"
    iteration_id: str
    outcome: str
    elapsed_seconds: float


class AutonomyThoughtEvent(ReverieEvent):
    """A harvested thought, emitted whether or not it was broadcast."""

    kind: ClassVar[str] = "autonomy.thought"
    iteration_id: str
    thought_id: str
    text: str
    published: bool


class EventBus:
    """Queue-backed fan-out of autonomy events to pattern subscribers."""

    def __init__(self, max_queue_size: int = 1000) -> None:
        self._max_queue_size = max_queue_size
        self._queue: Optional[asyncio.Queue[Any]] = None
        self._subscribers: list[tuple[str, EventHandler]] = []
        self._worker: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def subscribe(self, pattern: str, handler: EventHandler) -> None:
        self._subscribers.append((pattern, handler))

    def emit(self, event: ReverieEvent) -> None:
        """Queue an event for delivery; dropped when the bus is stopped or full."""
        if self._queue is None:
            logger.debug("event_bus.not_running", event_type=event.event_type)
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("event_bus.queue_full", event_type=event.event_type)

    async def start(self) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._worker = asyncio.create_task(self._deliver_forever(), name="reverie-events")
        logger.debug("event_bus.started", subscribers=len(self._subscribers))

    async def stop(self, timeout: float = 5.0) -> None:
        """Deliver whatever is already queued, then stop accepting events."""
        worker, queue = self._worker, self._queue
        if worker is None or queue is None:
            return
        self._queue = None
        self._worker = None
        # The worker drains everything queued ahead of the stop marker.
        await queue.put(_STOP)
        try:
            await asyncio.wait_for(worker, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("event_bus.stop_timeout", pending=queue.qsize())
        logger.debug("event_bus.stopped")

    async def _deliver_forever(self) -> None:
        queue = self._queue
        assert queue is not None
        while True:
            event = await queue.get()
            if event is _STOP:
                return
            await self._deliver(event)

    async def _deliver(self, event: ReverieEvent) -> None:
        for pattern, handler in list(self._subscribers):
            if not fnmatch.fnmatchcase(event.event_type, pattern):
                continue
            try:
                result = handler(event)
                if result is not None:
                    await result
            except Exception:
                logger.error(
                    "event_bus.handler_error",
                    pattern=pattern,
                    event_type=event.event_type,
                    exc_info=True,
                )
