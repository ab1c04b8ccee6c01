"""
Continuity — find the last thing the agent thought so the next thought follows it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import structlog

from reverie.errors import TransientStoreError
from reverie.types import ThoughtRecord

if TYPE_CHECKING:
    from reverie.runtime import AgentRuntime
    from reverie.types import ConversationContext

logger = structlog.get_logger(__name__)


async def read_room(
    runtime: "AgentRuntime",
    room_id: str,
    count: int,
    table_name: str = "memories",
) -> list[ThoughtRecord]:
    """Read the newest ``count`` records of a room as ThoughtRecords.

    Any store failure (including malformed records) surfaces as
    TransientStoreError.
    """
    try:
        raw = await runtime.get_memories(room_id=room_id, count=count, table_name=table_name)
        return [ThoughtRecord.from_memory(r) for r in (raw or [])]
    except Exception as e:
        raise TransientStoreError(f"memory read failed for room {room_id}: {e}") from e


class ContinuityResolver:
    """Returns the latest autonomous thought authored by the agent, or None."""

    def __init__(
        self,
        runtime: "AgentRuntime",
        context: "ConversationContext",
        *,
        count: int = 3,
        table_name: str = "memories",
    ) -> None:
        self._runtime = runtime
        self._context = context
        self._count = count
        self._table_name = table_name

    async def resolve(self) -> Optional[str]:
        try:
            records = await read_room(
                self._runtime, self._context.room_id, self._count, self._table_name
            )
        except TransientStoreError as e:
            logger.warning("continuity.store_failed", error=str(e))
            return None

        candidates = [
            r
            for r in records
            if r.author_id == self._context.agent_id
            and r.text
            and r.is_autonomous
            and not r.is_trigger
        ]
        if not candidates:
            logger.info("continuity.first_thought", room_id=self._context.room_id)
            return None

        latest = max(candidates, key=lambda r: r.created_at)
        logger.debug(
            "continuity.resume",
            thought_id=latest.id,
            preview=latest.text[:50],
        )
        return latest.text
