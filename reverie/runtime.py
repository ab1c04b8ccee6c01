"""
Runtime boundary — everything the autonomy loop borrows from its host agent.

The loop never owns storage, generation, or transport. It talks to:
  - a settings store holding the persisted ``AUTONOMY_ENABLED`` flag
  - the agent runtime, which exposes the memory log, the message pipeline,
    and the idempotent world/room/participant "ensure" calls

Hosts implement these abstract classes (or any duck-typed equivalent).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Sequence

# Settings keys shared with external toggles.
AUTONOMY_ENABLED_KEY = "AUTONOMY_ENABLED"
AUTONOMY_AUTO_START_KEY = "AUTONOMY_AUTO_START"
AUTONOMY_ROOM_ID_KEY = "AUTONOMY_ROOM_ID"


class SettingsStore(ABC):
    """Externally owned key/value settings."""

    @abstractmethod
    def get(self, key: str) -> Any:
        """Return the stored value, or None when unset."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Persist a value."""


class AgentRuntime(ABC):
    """The host agent as seen by the autonomy loop."""

    agent_id: str
    character_name: str = "Agent"

    @abstractmethod
    async def get_memories(
        self, *, room_id: str, count: int, table_name: str = "memories"
    ) -> Sequence[Mapping[str, Any] | Any]:
        """Return the most recent records of a room."""

    @abstractmethod
    def process_message(self, message: dict[str, Any]) -> Any:
        """Hand a message to the generation pipeline (sync or async)."""

    @abstractmethod
    async def ensure_world_exists(self, world: dict[str, Any]) -> None:
        """Create the world if absent."""

    @abstractmethod
    async def ensure_room_exists(self, room: dict[str, Any]) -> None:
        """Create the room if absent."""

    @abstractmethod
    async def add_participant(self, agent_id: str, room_id: str) -> None:
        """Add the agent to the room if not already a participant."""
