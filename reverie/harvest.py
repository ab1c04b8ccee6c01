"""
Response harvester — poll for what the pipeline produced.

The pipeline offers no callback or return channel, so after a bounded settle
delay the harvester re-reads the dedicated room and picks the newest record
the agent wrote in response. Coming back empty-handed (a HarvestMiss) is a
normal outcome: the pipeline may simply not have produced a standalone thought
this cycle, or may be slower than the settle delay.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Optional

import structlog

from reverie.continuity import read_room
from reverie.errors import TransientStoreError
from reverie.types import ThoughtRecord

if TYPE_CHECKING:
    from reverie.runtime import AgentRuntime
    from reverie.types import AutonomousMessage, ConversationContext

logger = structlog.get_logger(__name__)

# Tolerated difference between our clock and the store's createdAt stamps.
_CLOCK_SKEW_SECONDS = 1.0
# Legacy autonomy prompt text that must never be mistaken for a thought.
_LEGACY_PROMPT_MARKER = "What should I do next?"


class ResponseHarvester:
    def __init__(
        self,
        runtime: "AgentRuntime",
        context: "ConversationContext",
        *,
        settle_delay: float = 2.0,
        count: int = 5,
        table_name: str = "memories",
        max_seen: int = 500,
    ) -> None:
        self._runtime = runtime
        self._context = context
        self.settle_delay = settle_delay
        self._count = count
        self._table_name = table_name
        # Ids already harvested, so a slow cycle never republishes an old thought.
        # Bounded to prevent unbounded growth over long runtimes.
        self._seen_ids: dict[str, None] = {}
        self._max_seen = max_seen

    def _qualifies(self, record: ThoughtRecord, message: "AutonomousMessage") -> bool:
        if record.author_id != self._context.agent_id or not record.text:
            return False
        if record.is_trigger or record.id == message.id:
            return False
        if record.text == message.text or _LEGACY_PROMPT_MARKER in record.text:
            return False
        if record.id and record.id in self._seen_ids:
            return False
        if record.created_at and record.created_at < message.created_at - _CLOCK_SKEW_SECONDS:
            return False
        return True

    def _remember(self, record_id: str) -> None:
        if not record_id:
            return
        self._seen_ids[record_id] = None
        while len(self._seen_ids) > self._max_seen:
            self._seen_ids.pop(next(iter(self._seen_ids)))

    async def harvest(self, message: "AutonomousMessage") -> Optional[ThoughtRecord]:
        """Wait the settle delay, then return the cycle's thought or None (HarvestMiss)."""
        if self.settle_delay > 0:
            await asyncio.sleep(self.settle_delay)

        try:
            records = await read_room(
                self._runtime, self._context.room_id, self._count, self._table_name
            )
        except TransientStoreError as e:
            logger.warning(
                "harvest.store_failed",
                iteration_id=message.iteration_id,
                error=str(e),
            )
            return None

        candidates = [r for r in records if self._qualifies(r, message)]
        if not candidates:
            logger.info(
                "harvest.miss",
                iteration_id=message.iteration_id,
                records_seen=len(records),
            )
            return None

        latest = max(candidates, key=lambda r: r.created_at)
        self._remember(latest.id)
        logger.debug(
            "harvest.found",
            iteration_id=message.iteration_id,
            thought_id=latest.id,
            candidates=len(candidates),
        )
        return latest
