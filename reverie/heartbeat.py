"""
Heartbeat — the self-driving autonomy loop.

Each iteration is one step of the agent's internal monologue:

    RESOLVE  → find the last autonomous thought (or none)
    COMPOSE  → build a fresh-start or continuation prompt
    SUBMIT   → hand the prompt to the agent's own pipeline
    HARVEST  → after the settle delay, collect what the pipeline stored
    PUBLISH  → broadcast the thought to observers
    SCHEDULE → arm the timer for the next iteration

Scheduling is self-chaining: the next timer is armed only from the completion
of the current iteration, so at most one iteration is ever in flight. There
is no fixed-rate timer that could fire on top of a slow cycle.

Desired state lives outside the process (the ``AUTONOMY_ENABLED`` setting).
An independent reconciliation task compares it with the actual state every
few seconds and starts or stops the loop to match, so a toggle from any
source converges without anyone calling start()/stop() directly.

No iteration failure is allowed to escape: every error path ends in "log and
schedule the next one".
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import TYPE_CHECKING, Optional

import structlog

from reverie.config import clamp_interval_ms
from reverie.errors import ConfigDriftError, PipelineSubmissionError
from reverie.events import (
    AutonomyIterationEvent,
    AutonomyStartedEvent,
    AutonomyStoppedEvent,
    AutonomyThoughtEvent,
    ReverieEvent,
)
from reverie.metrics import MetricsRegistry
from reverie.metrics import metrics as default_metrics
from reverie.prompts import compose_monologue_prompt
from reverie.runtime import AUTONOMY_ENABLED_KEY
from reverie.settings import coerce_flag
from reverie.types import IterationOutcome, LoopState

if TYPE_CHECKING:
    from reverie.config import AutonomyConfig
    from reverie.continuity import ContinuityResolver
    from reverie.events import EventBus
    from reverie.harvest import ResponseHarvester
    from reverie.pipeline import PipelineGateway
    from reverie.publisher import Publisher
    from reverie.runtime import SettingsStore
    from reverie.types import ThoughtRecord

logger = structlog.get_logger(__name__)


class AutonomyLoop:
    """
    Owns desired/actual run state and drives iterations.

    States are Stopped and Running. start() and stop() are idempotent and only
    ever affect *future* scheduling: an iteration already past submission runs
    to completion (harvest + publish) even if stop() lands mid-flight.
    """

    def __init__(
        self,
        config: "AutonomyConfig",
        *,
        settings: "SettingsStore",
        resolver: "ContinuityResolver",
        gateway: "PipelineGateway",
        harvester: "ResponseHarvester",
        publisher: "Publisher",
        event_bus: Optional["EventBus"] = None,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self._config = config
        self._settings = settings
        self._resolver = resolver
        self._gateway = gateway
        self._harvester = harvester
        self._publisher = publisher
        self._event_bus = event_bus
        self._metrics = metrics or default_metrics

        self._interval_ms = clamp_interval_ms(config.interval_ms)
        self._metrics.set_interval(self._interval_ms)
        self._running = False
        self._last_known_enabled = False
        self._timer: Optional[asyncio.TimerHandle] = None
        self._iteration_task: Optional[asyncio.Task[IterationOutcome]] = None
        self._reconcile_task: Optional[asyncio.Task[None]] = None
        self._iteration_count = 0
        self._last_iteration_at: Optional[float] = None
        self._last_outcome: Optional[IterationOutcome] = None

    # -------------------------------------------------------------------------
    # Read-only accessors
    # -------------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    @property
    def in_flight(self) -> bool:
        return self._iteration_task is not None and not self._iteration_task.done()

    @property
    def last_outcome(self) -> Optional[IterationOutcome]:
        return self._last_outcome

    @property
    def status(self) -> LoopState:
        return LoopState(
            enabled=self._last_known_enabled,
            running=self._running,
            interval_ms=self._interval_ms,
            last_iteration_at=self._last_iteration_at,
            iteration_count=self._iteration_count,
            in_flight=self.in_flight,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Stopped → Running. No-op when already running."""
        if self._running:
            logger.debug("autonomy.already_running")
            return
        self._running = True
        self._persist_enabled(True)
        self._schedule_next()
        logger.info("autonomy.started", interval_ms=self._interval_ms)
        self._emit(AutonomyStartedEvent(interval_ms=self._interval_ms))

    async def stop(self) -> None:
        """Running → Stopped. Cancels the pending timer; in-flight work finishes."""
        if not self._running:
            logger.debug("autonomy.not_running")
            return
        self._halt()
        self._persist_enabled(False)
        logger.info(
            "autonomy.stopped",
            iterations=self._iteration_count,
            in_flight=self.in_flight,
        )
        self._emit(AutonomyStoppedEvent(iteration_count=self._iteration_count))

    def set_interval(self, ms: int | float) -> int:
        """Clamp and store the interval; the pending timer is left untouched."""
        effective = clamp_interval_ms(ms)
        if effective != ms:
            logger.warning("autonomy.interval_clamped", requested=ms, effective=effective)
        self._interval_ms = effective
        self._metrics.set_interval(effective)
        logger.info("autonomy.interval_set", interval_ms=effective)
        return effective

    async def reconcile(self) -> None:
        """Converge actual state onto the persisted ``enabled`` flag."""
        try:
            desired = self._read_desired()
        except ConfigDriftError as e:
            logger.warning(
                "autonomy.config_drift",
                error=str(e),
                keeping_running=self._running,
            )
            return

        self._last_known_enabled = desired
        if desired and not self._running:
            logger.info("autonomy.reconcile_starting")
            await self.start()
        elif not desired and self._running:
            logger.info("autonomy.reconcile_stopping")
            await self.stop()

    def start_reconciler(self) -> None:
        """Launch the periodic reconciliation task (idempotent)."""
        if self._reconcile_task is not None and not self._reconcile_task.done():
            return
        self._reconcile_task = asyncio.create_task(
            self._reconcile_loop(), name="reverie-reconciler"
        )

    async def shutdown(self, grace_seconds: float = 5.0) -> None:
        """Stop everything without touching the persisted flag.

        The in-flight iteration gets ``grace_seconds`` to finish before it is
        cancelled.
        """
        if self._reconcile_task is not None:
            self._reconcile_task.cancel()
            try:
                await self._reconcile_task
            except asyncio.CancelledError:
                pass
            self._reconcile_task = None

        self._halt()
        task = self._iteration_task
        if task is not None and not task.done():
            done, _ = await asyncio.wait({task}, timeout=grace_seconds)
            if not done:
                logger.warning("autonomy.shutdown_cancelling_iteration")
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        logger.info("autonomy.shutdown", iterations=self._iteration_count)

    async def run_once(self) -> IterationOutcome:
        """Run one iteration now, outside the timer.

        Returns SKIPPED when another iteration is already in flight.
        """
        if self.in_flight:
            logger.debug("autonomy.run_once_skipped")
            return IterationOutcome.SKIPPED
        self._launch_iteration()
        assert self._iteration_task is not None
        return await asyncio.shield(self._iteration_task)

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------

    def _halt(self) -> None:
        self._running = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule_next(self) -> None:
        if not self._running or self._timer is not None:
            return
        if self.in_flight:
            # The in-flight iteration arms the timer when it settles.
            return
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._interval_ms / 1000.0, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        if not self._running or self.in_flight:
            return
        self._launch_iteration()

    def _launch_iteration(self) -> None:
        task = asyncio.create_task(self._run_iteration(), name="reverie-iteration")
        task.add_done_callback(self._on_iteration_done)
        self._iteration_task = task

    def _on_iteration_done(self, task: "asyncio.Task[IterationOutcome]") -> None:
        if task.cancelled():
            return
        if task.exception() is not None:
            logger.error("autonomy.iteration_crashed", error=str(task.exception()))
        self._schedule_next()

    async def _reconcile_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.reconcile_interval)
            try:
                await self.reconcile()
            except Exception:
                logger.error("autonomy.reconcile_failed", exc_info=True)

    # -------------------------------------------------------------------------
    # One iteration
    # -------------------------------------------------------------------------

    async def _run_iteration(self) -> IterationOutcome:
        iteration_id = str(uuid.uuid4())
        started = time.monotonic()
        self._iteration_count += 1
        self._last_iteration_at = time.time()
        logger.debug(
            "autonomy.iteration_start",
            iteration_id=iteration_id,
            iteration=self._iteration_count,
        )

        try:
            outcome = await self._iterate(iteration_id)
        except Exception:
            logger.error("autonomy.iteration_failed", iteration_id=iteration_id, exc_info=True)
            outcome = IterationOutcome.FAILED

        elapsed = time.monotonic() - started
        self._last_outcome = outcome
        self._metrics.record_iteration(outcome, elapsed)
        self._emit(AutonomyIterationEvent(
            iteration_id=iteration_id,
            outcome=outcome.value,
            elapsed_seconds=round(elapsed, 3),
        ))
        logger.debug(
            "autonomy.iteration_complete",
            iteration_id=iteration_id,
            outcome=outcome.value,
            elapsed_seconds=round(elapsed, 2),
            next_interval_ms=self._interval_ms if self._running else None,
        )
        return outcome

    async def _iterate(self, iteration_id: str) -> IterationOutcome:
        last_thought = await self._resolver.resolve()
        prompt = compose_monologue_prompt(last_thought)

        try:
            message = await self._gateway.submit(
                prompt, iteration_id, is_continuation=last_thought is not None
            )
        except PipelineSubmissionError as e:
            logger.error(
                "autonomy.submission_failed",
                iteration_id=iteration_id,
                error=str(e.cause),
            )
            return IterationOutcome.SUBMISSION_FAILED

        thought = await self._harvester.harvest(message)
        if thought is None:
            return IterationOutcome.HARVEST_MISS

        if not self._publisher.enabled:
            # Observers still get the thought through the event bus.
            self._emit_thought(iteration_id, thought, published=False)
            return IterationOutcome.BROADCAST_DISABLED

        published = await self._publisher.publish(thought, iteration_id)
        self._emit_thought(iteration_id, thought, published=published)
        return IterationOutcome.PUBLISHED if published else IterationOutcome.PUBLISH_FAILED

    # -------------------------------------------------------------------------
    # Settings + events
    # -------------------------------------------------------------------------

    def _read_desired(self) -> bool:
        try:
            raw = self._settings.get(AUTONOMY_ENABLED_KEY)
        except ConfigDriftError:
            raise
        except Exception as e:
            raise ConfigDriftError(f"settings store read failed: {e}") from e
        return coerce_flag(raw)

    def _persist_enabled(self, value: bool) -> None:
        self._last_known_enabled = value
        try:
            self._settings.set(AUTONOMY_ENABLED_KEY, value)
        except Exception as e:
            logger.error("autonomy.persist_failed", enabled=value, error=str(e))

    def _emit(self, event: ReverieEvent) -> None:
        if self._event_bus is None:
            return
        try:
            self._event_bus.emit(event)
        except Exception:
            logger.debug("autonomy.event_emit_failed", event_type=event.event_type, exc_info=True)

    def _emit_thought(self, iteration_id: str, thought: "ThoughtRecord", *, published: bool) -> None:
        self._emit(AutonomyThoughtEvent(
            iteration_id=iteration_id,
            thought_id=thought.id,
            text=thought.text,
            published=published,
        ))
