"""
Pipeline gateway — inject the monologue prompt into the agent's own pipeline.

Submission is fire-and-forget: the pipeline decides on its own whether and
when to store a response, so nothing it returns is used. The response is
collected later by the harvester.
"""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING

import structlog

from reverie.errors import PipelineSubmissionError
from reverie.types import AutonomousMessage

if TYPE_CHECKING:
    from reverie.runtime import AgentRuntime
    from reverie.types import ConversationContext

logger = structlog.get_logger(__name__)


class PipelineGateway:
    def __init__(self, runtime: "AgentRuntime", context: "ConversationContext") -> None:
        self._runtime = runtime
        self._context = context

    async def submit(
        self,
        prompt: str,
        iteration_id: str,
        *,
        is_continuation: bool = False,
    ) -> AutonomousMessage:
        """Submit the prompt as a self-authored message.

        Returns the message that was sent so the harvester can exclude it.
        Raises PipelineSubmissionError when the pipeline raises.
        """
        message = AutonomousMessage(
            agent_id=self._context.agent_id,
            room_id=self._context.room_id,
            text=prompt,
            iteration_id=iteration_id,
            is_continuation=is_continuation,
        )
        try:
            result = self._runtime.process_message(message.to_memory())
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            raise PipelineSubmissionError(iteration_id, e) from e

        logger.debug(
            "pipeline.submitted",
            iteration_id=iteration_id,
            message_id=message.id,
            continuation=is_continuation,
        )
        return message
