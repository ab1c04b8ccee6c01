"""
Settings stores and the boolean coercion rule for the desired-state flag.

External toggles (an HTTP route, a database edit, another process) write the
``AUTONOMY_ENABLED`` flag as either a real boolean or a string. ``coerce_flag``
is the single place that decides what counts as on or off.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any

import structlog

from reverie.errors import ConfigDriftError
from reverie.runtime import SettingsStore

logger = structlog.get_logger(__name__)

_TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "off", ""})


def coerce_flag(value: Any) -> bool:
    """Interpret a persisted flag.

    ``None`` means never set, which is off. Raises ConfigDriftError for values
    that are neither booleans nor boolean-like strings/ints.
    """
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in _TRUE_STRINGS:
            return True
        if normalized in _FALSE_STRINGS:
            return False
    raise ConfigDriftError(f"unrecognized flag value: {value!r}")


class InMemorySettingsStore(SettingsStore):
    """Process-local settings, for embedding and tests."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Any:
        return self._values.get(key)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value


class FileSettingsStore(SettingsStore):
    """
    JSON-file backed settings.

    The file is re-read on every ``get`` so that edits made by other
    processes are seen by the next reconciliation pass. Writes are atomic
    (temp file + replace).
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> Any:
        return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
            tmp.replace(self._path)
        logger.debug("settings.saved", key=key, path=str(self._path))

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("settings.unreadable", path=str(self._path), error=str(e))
            raise ConfigDriftError(f"settings file unreadable: {self._path}") from e
        if not isinstance(data, dict):
            raise ConfigDriftError(f"settings file is not a JSON object: {self._path}")
        return data
