"""
Dedicated context — the isolated world and room that hold autonomous thoughts.

Autonomous records must never leak into user-facing conversations, so the
loop gets its own room inside a fixed "Autonomy World". All three runtime
calls are idempotent "ensure" operations and are safe to repeat.

The room id is persisted through the settings store and reused on restart so
that the monologue can continue where it left off. With ``persist_room_id``
disabled a fresh room is generated on every start.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog

from reverie.config import DEFAULT_SERVER_ID
from reverie.errors import ConfigDriftError
from reverie.runtime import AUTONOMY_ROOM_ID_KEY
from reverie.types import ConversationContext

if TYPE_CHECKING:
    from reverie.config import AutonomyConfig
    from reverie.runtime import AgentRuntime, SettingsStore

logger = structlog.get_logger(__name__)

WORLD_NAME = "Autonomy World"
ROOM_NAME = "Autonomous Thoughts"
ROOM_TYPE = "AUTONOMOUS"
ROOM_SOURCE = "autonomy-plugin"


def _valid_uuid(value: object) -> bool:
    if not isinstance(value, str):
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


class ContextProvisioner:
    """Ensures the dedicated world, room, and participation exist."""

    def __init__(
        self,
        runtime: "AgentRuntime",
        settings: "SettingsStore",
        config: "AutonomyConfig",
    ) -> None:
        self._runtime = runtime
        self._settings = settings
        self._config = config

    def _resolve_room_id(self) -> tuple[str, bool]:
        """Return (room_id, reused)."""
        if self._config.persist_room_id:
            try:
                stored = self._settings.get(AUTONOMY_ROOM_ID_KEY)
            except ConfigDriftError as e:
                logger.warning("context.room_id_unreadable", error=str(e))
                stored = None
            if _valid_uuid(stored):
                return stored, True
            if stored is not None:
                logger.warning("context.room_id_invalid", stored=str(stored)[:64])

        room_id = str(uuid.uuid4())
        if self._config.persist_room_id:
            try:
                self._settings.set(AUTONOMY_ROOM_ID_KEY, room_id)
            except Exception as e:
                logger.warning("context.room_id_persist_failed", error=str(e))
        return room_id, False

    async def provision(self) -> ConversationContext:
        """Create-if-absent the world, room, and participant. Never raises."""
        agent_id = str(self._runtime.agent_id)
        world_id = self._config.world_id
        room_id, reused = self._resolve_room_id()
        context = ConversationContext(
            world_id=world_id, room_id=room_id, agent_id=agent_id, room_reused=reused
        )

        try:
            await self._runtime.ensure_world_exists({
                "id": world_id,
                "name": WORLD_NAME,
                "agentId": agent_id,
                "serverId": DEFAULT_SERVER_ID,
                "metadata": {
                    "type": "autonomy",
                    "description": "World for autonomous agent thinking",
                },
            })
            await self._runtime.ensure_room_exists({
                "id": room_id,
                "name": ROOM_NAME,
                "worldId": world_id,
                "agentId": agent_id,
                "source": ROOM_SOURCE,
                "type": ROOM_TYPE,
                "metadata": {
                    "source": ROOM_SOURCE,
                    "description": "Room for autonomous agent thinking",
                },
            })
            await self._runtime.add_participant(agent_id, room_id)
        except Exception as e:
            # The room may still be created later by the host; keep going.
            logger.warning(
                "context.provision_failed",
                room_id=room_id,
                error=str(e),
            )
        else:
            logger.info(
                "context.provisioned",
                world_id=world_id,
                room_id=room_id,
                reused=reused,
            )
        return context
