"""
Core data types shared across the autonomy loop.

Records coming back from the memory store arrive in the runtime's wire shape
(camelCase keys, epoch-millisecond timestamps, nested ``content``). They are
normalized into ``ThoughtRecord`` at the boundary so that the resolver and
harvester never touch raw dicts.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional

# Content source tag carried by the prompt we inject into the pipeline.
TRIGGER_SOURCE = "autonomous-trigger"
# Frontend filter value used to route thoughts into the monologue view.
AUTONOMOUS_CHANNEL = "autonomous"


def _ms_to_seconds(value: Any) -> float:
    try:
        raw = float(value)
    except (TypeError, ValueError):
        return 0.0
    # Stores report epoch milliseconds; anything below 1e11 is already seconds.
    return raw / 1000.0 if raw > 1e11 else raw


@dataclass
class ThoughtRecord:
    """A single record in the dedicated room, as read back from the store."""

    id: str
    author_id: str
    text: str
    created_at: float = 0.0  # epoch seconds
    is_autonomous: bool = False
    is_continuation: bool = False
    source_iteration_id: Optional[str] = None
    source: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_trigger(self) -> bool:
        return self.source == TRIGGER_SOURCE

    @classmethod
    def from_memory(cls, obj: "ThoughtRecord | Mapping[str, Any]") -> "ThoughtRecord":
        """Normalize a store record (wire mapping or ThoughtRecord)."""
        if isinstance(obj, ThoughtRecord):
            return obj
        content = obj.get("content") or {}
        metadata = dict(content.get("metadata") or {})
        return cls(
            id=str(obj.get("id") or ""),
            author_id=str(obj.get("entityId") or obj.get("entity_id") or ""),
            text=content.get("text") or "",
            created_at=_ms_to_seconds(obj.get("createdAt", obj.get("created_at"))),
            is_autonomous=metadata.get("isAutonomous") is True,
            is_continuation=metadata.get("isContinuation") is True,
            source_iteration_id=metadata.get("iterationId"),
            source=content.get("source"),
            metadata=metadata,
        )


@dataclass
class ConversationContext:
    """The isolated world + room that holds every autonomous thought."""

    world_id: str
    room_id: str
    agent_id: str
    room_reused: bool = False


@dataclass
class LoopState:
    """Snapshot of desired vs. actual loop state."""

    enabled: bool = False
    running: bool = False
    interval_ms: int = 1000
    last_iteration_at: Optional[float] = None
    iteration_count: int = 0
    in_flight: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "running": self.running,
            "interval": self.interval_ms,
            "last_iteration_at": self.last_iteration_at,
            "iteration_count": self.iteration_count,
            "in_flight": self.in_flight,
        }


@dataclass
class AutonomousMessage:
    """The synthetic self-message that kicks off one monologue step."""

    agent_id: str
    room_id: str
    text: str
    iteration_id: str
    is_continuation: bool = False
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: float = field(default_factory=time.time)

    def to_memory(self) -> dict[str, Any]:
        """Render in the runtime's message shape."""
        created_ms = int(self.created_at * 1000)
        return {
            "id": self.id,
            "entityId": self.agent_id,
            "agentId": self.agent_id,
            "roomId": self.room_id,
            "createdAt": created_ms,
            "content": {
                "text": self.text,
                "source": TRIGGER_SOURCE,
                "metadata": {
                    "type": "autonomous-prompt",
                    "isAutonomous": True,
                    "isInternalThought": True,
                    "channelId": AUTONOMOUS_CHANNEL,
                    "iterationId": self.iteration_id,
                    "isContinuation": self.is_continuation,
                    "timestamp": created_ms,
                },
            },
        }


class IterationOutcome(str, Enum):
    """How a single iteration ended."""

    PUBLISHED = "published"
    PUBLISH_FAILED = "publish_failed"
    BROADCAST_DISABLED = "broadcast_disabled"
    HARVEST_MISS = "harvest_miss"
    SUBMISSION_FAILED = "submission_failed"
    SKIPPED = "skipped"
    FAILED = "failed"
