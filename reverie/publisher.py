"""
Publisher — ship harvested thoughts to the broadcast endpoint.

The endpoint relays thoughts to connected WebSocket clients for live
monologue display. Delivery is best-effort: a failed publish is logged and
dropped, never retried, because the next cycle's thought supersedes it.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Optional

import httpx
import structlog

from reverie.errors import PublishError
from reverie.types import AUTONOMOUS_CHANNEL

if TYPE_CHECKING:
    from reverie.config import BroadcastConfig
    from reverie.types import ConversationContext, ThoughtRecord

logger = structlog.get_logger(__name__)


class Publisher:
    def __init__(
        self,
        config: "BroadcastConfig",
        context: "ConversationContext",
        *,
        agent_name: str = "Agent",
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._config = config
        self._context = context
        self._agent_name = agent_name
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.timeout_seconds)
        self._headers: dict[str, str] = {"Content-Type": "application/json"}

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    def build_payload(self, thought: "ThoughtRecord", iteration_id: str) -> dict[str, Any]:
        return {
            "channel_id": self._context.room_id,
            "server_id": self._config.server_id,
            "author_id": self._context.agent_id,
            "content": thought.text,
            "raw_message": {"thought": thought.text, "actions": []},
            "metadata": {
                "agentName": self._agent_name,
                "channelId": AUTONOMOUS_CHANNEL,
                "isAutonomous": True,
                "isInternalThought": True,
                "messageId": thought.id or "unknown",
                "iterationId": iteration_id,
                "roomId": self._context.room_id,
                "timestamp": int(time.time() * 1000),
            },
        }

    async def _post(self, payload: dict[str, Any]) -> None:
        try:
            response = await self._client.post(
                self._config.url, json=payload, headers=self._headers
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise PublishError(f"transport error: {e}") from e

        if not response.is_success:
            raise PublishError(
                f"broadcast rejected: {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except ValueError:
            return
        if isinstance(body, dict) and body.get("success") is False:
            raise PublishError(
                f"broadcast reported failure: {body.get('error', 'unknown')}",
                status_code=response.status_code,
            )

    async def publish(self, thought: "ThoughtRecord", iteration_id: str) -> bool:
        """Broadcast one thought. Returns False on any failure; never raises."""
        if not self._config.enabled:
            logger.debug("publisher.disabled", iteration_id=iteration_id)
            return False
        try:
            await self._post(self.build_payload(thought, iteration_id))
        except PublishError as e:
            logger.warning(
                "publisher.failed",
                iteration_id=iteration_id,
                status_code=e.status_code,
                error=str(e),
            )
            return False
        logger.info(
            "publisher.published",
            iteration_id=iteration_id,
            thought_id=thought.id,
            preview=thought.text[:100],
        )
        return True

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
