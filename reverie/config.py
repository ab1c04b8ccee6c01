# reverie/config.py
"""
Configuration for the autonomy loop.

Values are loaded from environment variables (via .env file) and validated
with Pydantic. Every limit is normalized in a model validator rather than
rejected, so a bad env var degrades to the nearest sane value.
"""

from __future__ import annotations

import math
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"

MIN_INTERVAL_MS = 100
MAX_INTERVAL_MS = 60_000

DEFAULT_WORLD_ID = "00000000-0000-0000-0000-000000000001"
DEFAULT_SERVER_ID = "00000000-0000-0000-0000-000000000000"


def clamp_interval_ms(value: object) -> int:
    """Clamp a requested loop interval into [MIN_INTERVAL_MS, MAX_INTERVAL_MS]."""
    try:
        ms = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return MIN_INTERVAL_MS
    if math.isnan(ms):
        return MIN_INTERVAL_MS
    # Clamp before int(): infinities have no integer form.
    return int(max(MIN_INTERVAL_MS, min(MAX_INTERVAL_MS, ms)))


class AutonomyConfig(BaseSettings):
    """Configuration for the autonomous monologue loop."""

    interval_ms: int = Field(1000, alias="REVERIE_INTERVAL_MS")
    # Wait between submitting a prompt and looking for the pipeline's answer.
    settle_delay: float = Field(2.0, alias="REVERIE_SETTLE_DELAY")
    # Period of the desired-state reconciliation task.
    reconcile_interval: float = Field(10.0, alias="REVERIE_RECONCILE_INTERVAL")
    continuity_count: int = Field(3, alias="REVERIE_CONTINUITY_COUNT")
    harvest_count: int = Field(5, alias="REVERIE_HARVEST_COUNT")
    memory_table: str = Field("memories", alias="REVERIE_MEMORY_TABLE")
    auto_start: bool = Field(False, alias="AUTONOMY_AUTO_START")
    # Reuse the dedicated room across restarts instead of orphaning history.
    persist_room_id: bool = Field(True, alias="REVERIE_PERSIST_ROOM_ID")
    world_id: str = Field(DEFAULT_WORLD_ID, alias="REVERIE_WORLD_ID")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}

    @model_validator(mode="after")
    def normalize_limits(self) -> "AutonomyConfig":
        self.interval_ms = clamp_interval_ms(self.interval_ms)
        self.settle_delay = max(0.0, float(self.settle_delay))
        self.reconcile_interval = max(0.01, float(self.reconcile_interval))
        self.continuity_count = max(1, int(self.continuity_count))
        self.harvest_count = max(1, int(self.harvest_count))
        return self


class BroadcastConfig(BaseSettings):
    """Where harvested thoughts are shipped for display."""

    enabled: bool = Field(True, alias="REVERIE_BROADCAST_ENABLED")
    url: str = Field(
        "http://localhost:7777/api/messaging/submit", alias="REVERIE_BROADCAST_URL"
    )
    server_id: str = Field(DEFAULT_SERVER_ID, alias="REVERIE_BROADCAST_SERVER_ID")
    timeout_seconds: float = Field(10.0, alias="REVERIE_BROADCAST_TIMEOUT_SECONDS")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}

    @model_validator(mode="after")
    def normalize_limits(self) -> "BroadcastConfig":
        self.url = self.url.strip()
        self.timeout_seconds = max(0.1, float(self.timeout_seconds))
        return self


class ControlApiConfig(BaseSettings):
    """Bind address for the autonomy control routes."""

    host: str = Field("127.0.0.1", alias="REVERIE_API_HOST")
    port: int = Field(18910, alias="REVERIE_API_PORT")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}


class ReverieConfig:
    """Master configuration composing every subsystem config."""

    def __init__(
        self,
        autonomy: AutonomyConfig | None = None,
        broadcast: BroadcastConfig | None = None,
        api: ControlApiConfig | None = None,
    ):
        self.autonomy = autonomy or AutonomyConfig()
        self.broadcast = broadcast or BroadcastConfig()
        self.api = api or ControlApiConfig()

    def __repr__(self) -> str:
        return (
            f"ReverieConfig(interval={self.autonomy.interval_ms}ms, "
            f"settle={self.autonomy.settle_delay}s, "
            f"broadcast={'on' if self.broadcast.enabled else 'off'})"
        )
