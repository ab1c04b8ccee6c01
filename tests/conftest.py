"""
Shared fixtures for the reverie test suite.

Provides an in-memory agent runtime, a broadcast endpoint recorder, and fast
loop configs so individual test modules can focus on behavior rather than
setup.
"""

from __future__ import annotations

import asyncio
import json
import time
import uuid
from typing import Any, Callable, Optional

import httpx
import pytest

from reverie.config import AutonomyConfig, BroadcastConfig
from reverie.runtime import AgentRuntime
from reverie.types import ConversationContext

AGENT_ID = "11111111-1111-1111-1111-111111111111"
ROOM_ID = "22222222-2222-2222-2222-222222222222"
BROADCAST_URL = "http://broadcast.test/api/messaging/submit"


# ---------------------------------------------------------------------------
# Record helpers
# ---------------------------------------------------------------------------


def make_record(
    text: str,
    *,
    author_id: str = AGENT_ID,
    room_id: str = ROOM_ID,
    created_at: Optional[float] = None,
    autonomous: bool = True,
    source: Optional[str] = None,
    record_id: Optional[str] = None,
) -> dict[str, Any]:
    """Build a store record in the runtime's wire shape (createdAt in ms)."""
    metadata: dict[str, Any] = {}
    if autonomous:
        metadata["isAutonomous"] = True
    content: dict[str, Any] = {"text": text, "metadata": metadata}
    if source is not None:
        content["source"] = source
    return {
        "id": record_id or str(uuid.uuid4()),
        "entityId": author_id,
        "roomId": room_id,
        "createdAt": int((created_at if created_at is not None else time.time()) * 1000),
        "content": content,
    }


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll ``predicate`` until true; fail the test on timeout."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeRuntime(AgentRuntime):
    """In-memory agent runtime.

    ``process_message`` stores the incoming prompt like a real pipeline would,
    then stores whatever ``responder`` returns as an agent-authored autonomous
    record.
    """

    def __init__(
        self,
        agent_id: str = AGENT_ID,
        responder: Optional[Callable[[dict[str, Any]], Optional[str]]] = None,
    ) -> None:
        self.agent_id = agent_id
        self.character_name = "Reverie"
        self.responder = responder
        self.records: list[dict[str, Any]] = []
        self.submitted: list[dict[str, Any]] = []
        self.memory_queries: list[dict[str, Any]] = []
        self.worlds: list[dict[str, Any]] = []
        self.rooms: list[dict[str, Any]] = []
        self.participants: list[tuple[str, str]] = []
        self.fail_reads = False
        self.fail_submit = False
        self.fail_context = False
        self.trace: list[str] = []

    async def get_memories(self, *, room_id: str, count: int, table_name: str = "memories"):
        self.memory_queries.append({"room_id": room_id, "count": count, "table_name": table_name})
        if self.fail_reads:
            raise RuntimeError("database offline")
        rows = [r for r in self.records if r["roomId"] == room_id]
        return list(reversed(rows))[:count]

    async def process_message(self, message: dict[str, Any]) -> None:
        self.trace.append("submit")
        if self.fail_submit:
            raise RuntimeError("model provider unavailable")
        self.submitted.append(message)
        self.records.append(message)
        if self.responder is not None:
            text = self.responder(message)
            if text:
                self.records.append(
                    make_record(text, author_id=self.agent_id, room_id=message["roomId"])
                )

    async def ensure_world_exists(self, world: dict[str, Any]) -> None:
        if self.fail_context:
            raise RuntimeError("world table missing")
        self.worlds.append(world)

    async def ensure_room_exists(self, room: dict[str, Any]) -> None:
        self.rooms.append(room)

    async def add_participant(self, agent_id: str, room_id: str) -> None:
        self.participants.append((agent_id, room_id))


class BroadcastRecorder:
    """httpx MockTransport handler that records broadcast payloads."""

    def __init__(self, status: int = 200, body: Optional[dict[str, Any]] = None) -> None:
        self.status = status
        self.body = body if body is not None else {"success": True}
        self.payloads: list[dict[str, Any]] = []
        self.raise_error: Optional[Exception] = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if self.raise_error is not None:
            raise self.raise_error
        self.payloads.append(json.loads(request.content))
        return httpx.Response(self.status, json=self.body)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def numbered_responder(prefix: str = "Thought") -> Callable[[dict[str, Any]], str]:
    counter = {"n": 0}

    def respond(message: dict[str, Any]) -> str:
        counter["n"] += 1
        return f"{prefix} {counter['n']}"

    return respond


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def context() -> ConversationContext:
    return ConversationContext(
        world_id="00000000-0000-0000-0000-000000000001",
        room_id=ROOM_ID,
        agent_id=AGENT_ID,
    )


@pytest.fixture()
def fast_config() -> AutonomyConfig:
    return AutonomyConfig(interval_ms=100, settle_delay=0.01, reconcile_interval=0.05)


@pytest.fixture()
def broadcast_config() -> BroadcastConfig:
    return BroadcastConfig(url=BROADCAST_URL)


@pytest.fixture()
def recorder() -> BroadcastRecorder:
    return BroadcastRecorder()
