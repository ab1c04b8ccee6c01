"""
Autonomy service — wires the loop to a host agent runtime.

    service = AutonomyService(runtime, settings)
    await service.initialize()     # provision room, reconcile, maybe start
    await service.enable_autonomy()
    ...
    await service.shutdown()

Startup provisions the dedicated context once, builds every component
against it, launches the reconciliation task, and starts the loop when the
persisted flag (or the auto-start setting) says so.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

import httpx
import structlog

from reverie.config import ReverieConfig
from reverie.context import ContextProvisioner
from reverie.continuity import ContinuityResolver
from reverie.events import EventBus
from reverie.harvest import ResponseHarvester
from reverie.heartbeat import AutonomyLoop
from reverie.pipeline import PipelineGateway
from reverie.publisher import Publisher
from reverie.runtime import AUTONOMY_AUTO_START_KEY, AUTONOMY_ENABLED_KEY
from reverie.settings import coerce_flag

if TYPE_CHECKING:
    from reverie.metrics import MetricsRegistry
    from reverie.runtime import AgentRuntime, SettingsStore
    from reverie.types import ConversationContext

logger = structlog.get_logger(__name__)


class AutonomyService:
    """Owns the autonomy loop for one agent."""

    service_type = "AUTONOMY"

    def __init__(
        self,
        runtime: "AgentRuntime",
        settings: "SettingsStore",
        config: Optional[ReverieConfig] = None,
        *,
        event_bus: Optional[EventBus] = None,
        metrics: Optional["MetricsRegistry"] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._runtime = runtime
        self._settings = settings
        self._config = config or ReverieConfig()
        # A bus passed in belongs to the caller, who starts and stops it.
        self._owns_bus = event_bus is None
        self._event_bus = event_bus if event_bus is not None else EventBus()
        self._metrics = metrics
        self._http_client = http_client
        self._context: Optional["ConversationContext"] = None
        self._publisher: Optional[Publisher] = None
        self._loop: Optional[AutonomyLoop] = None

    @property
    def loop(self) -> AutonomyLoop:
        if self._loop is None:
            raise RuntimeError("AutonomyService.initialize() has not been called")
        return self._loop

    @property
    def events(self) -> EventBus:
        return self._event_bus

    @property
    def context(self) -> "ConversationContext":
        if self._context is None:
            raise RuntimeError("AutonomyService.initialize() has not been called")
        return self._context

    @property
    def capability_description(self) -> str:
        return "Autonomous loop service for continuous agent thinking"

    async def initialize(self) -> None:
        if self._loop is not None:
            return
        cfg = self._config.autonomy
        if self._owns_bus:
            await self._event_bus.start()
        self._context = await ContextProvisioner(self._runtime, self._settings, cfg).provision()
        self._publisher = Publisher(
            self._config.broadcast,
            self._context,
            agent_name=getattr(self._runtime, "character_name", None) or "Agent",
            client=self._http_client,
        )
        self._loop = AutonomyLoop(
            cfg,
            settings=self._settings,
            resolver=ContinuityResolver(
                self._runtime,
                self._context,
                count=cfg.continuity_count,
                table_name=cfg.memory_table,
            ),
            gateway=PipelineGateway(self._runtime, self._context),
            harvester=ResponseHarvester(
                self._runtime,
                self._context,
                settle_delay=cfg.settle_delay,
                count=cfg.harvest_count,
                table_name=cfg.memory_table,
            ),
            publisher=self._publisher,
            event_bus=self._event_bus,
            metrics=self._metrics,
        )

        enabled = self._read_flag(AUTONOMY_ENABLED_KEY, default=False)
        auto_start = cfg.auto_start or self._read_flag(AUTONOMY_AUTO_START_KEY, default=False)
        logger.info(
            "autonomy_service.initialized",
            room_id=self._context.room_id,
            enabled=enabled,
            auto_start=auto_start,
        )
        if enabled or auto_start:
            await self._loop.start()
        else:
            logger.info("autonomy_service.waiting_for_enable")
        self._loop.start_reconciler()

    def _read_flag(self, key: str, *, default: bool) -> bool:
        try:
            return coerce_flag(self._settings.get(key))
        except Exception as e:
            logger.warning("autonomy_service.flag_unreadable", key=key, error=str(e))
            return default

    def _write_flag(self, value: bool) -> None:
        try:
            self._settings.set(AUTONOMY_ENABLED_KEY, value)
        except Exception as e:
            logger.error("autonomy_service.flag_persist_failed", enabled=value, error=str(e))

    async def enable_autonomy(self) -> None:
        """Persist enabled=True and start the loop if needed."""
        self._write_flag(True)
        await self.loop.start()

    async def disable_autonomy(self) -> None:
        """Persist enabled=False and stop the loop if needed.

        The flag is written even when the loop is already stopped, so a
        pending external enable is overridden rather than picked up by the
        next reconciliation.
        """
        self._write_flag(False)
        await self.loop.stop()

    async def toggle(self) -> bool:
        """Flip the desired state; returns the new enabled value."""
        if self.status()["enabled"]:
            await self.disable_autonomy()
            return False
        await self.enable_autonomy()
        return True

    def set_interval(self, ms: int | float) -> int:
        return self.loop.set_interval(ms)

    def status(self) -> dict[str, Any]:
        state = self.loop.status
        # Report what the store says; fall back to the loop's last known value.
        enabled = self._read_flag(AUTONOMY_ENABLED_KEY, default=state.enabled)
        return {
            "enabled": enabled,
            "running": state.running,
            "interval": state.interval_ms,
            "interval_seconds": round(state.interval_ms / 1000),
            "autonomous_room_id": self.context.room_id,
            "agent_id": self.context.agent_id,
            "character_name": getattr(self._runtime, "character_name", None) or "Agent",
            "iteration_count": state.iteration_count,
            "last_iteration_at": state.last_iteration_at,
        }

    async def shutdown(self) -> None:
        """Stop the loop, reconciler and event bus; the persisted flag is left as is."""
        if self._loop is not None:
            await self._loop.shutdown()
        if self._publisher is not None:
            await self._publisher.close()
        if self._owns_bus:
            await self._event_bus.stop()
        logger.info("autonomy_service.shutdown")
