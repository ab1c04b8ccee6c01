"""Tests for reverie.pipeline — submitting the monologue prompt."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from reverie.errors import PipelineSubmissionError
from reverie.pipeline import PipelineGateway
from reverie.types import AUTONOMOUS_CHANNEL, TRIGGER_SOURCE

from tests.conftest import AGENT_ID, ROOM_ID, FakeRuntime


class TestPipelineGateway:
    @pytest.mark.asyncio
    async def test_submits_self_authored_message(self, context) -> None:
        runtime = FakeRuntime()
        message = await PipelineGateway(runtime, context).submit(
            "think", "it-1", is_continuation=True
        )

        assert len(runtime.submitted) == 1
        wire = runtime.submitted[0]
        assert wire["id"] == message.id
        assert wire["entityId"] == AGENT_ID
        assert wire["roomId"] == ROOM_ID
        assert wire["content"]["text"] == "think"
        assert wire["content"]["source"] == TRIGGER_SOURCE
        meta = wire["content"]["metadata"]
        assert meta["isAutonomous"] is True
        assert meta["isInternalThought"] is True
        assert meta["channelId"] == AUTONOMOUS_CHANNEL
        assert meta["iterationId"] == "it-1"
        assert meta["isContinuation"] is True

    @pytest.mark.asyncio
    async def test_sync_pipeline_accepted(self, context) -> None:
        runtime = MagicMock()
        runtime.process_message = MagicMock(return_value=None)
        message = await PipelineGateway(runtime, context).submit("think", "it-2")
        runtime.process_message.assert_called_once()
        assert message.text == "think"
        assert message.is_continuation is False

    @pytest.mark.asyncio
    async def test_pipeline_error_wrapped(self, context) -> None:
        runtime = FakeRuntime()
        runtime.fail_submit = True
        with pytest.raises(PipelineSubmissionError) as excinfo:
            await PipelineGateway(runtime, context).submit("think", "it-3")
        assert excinfo.value.iteration_id == "it-3"
        assert isinstance(excinfo.value.cause, RuntimeError)
