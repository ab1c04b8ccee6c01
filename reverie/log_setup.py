"""
Logging setup for hosts embedding the autonomy loop.

Modules only ever call ``structlog.get_logger(__name__)``; the host process
calls ``configure_logging()`` once at startup.
"""

from __future__ import annotations

import logging
from typing import Any

import structlog

# Thoughts and prompts can run long; keep console lines readable.
_TRUNCATE_FIELDS = ("preview", "text", "error", "prompt")
_MAX_FIELD_LEN = 200

_logging_configured = False


def _truncate_long_fields(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    for key in _TRUNCATE_FIELDS:
        val = event_dict.get(key)
        if isinstance(val, str) and len(val) > _MAX_FIELD_LEN:
            event_dict[key] = val[:_MAX_FIELD_LEN] + "... [truncated]"
    return event_dict


def configure_logging(level: int = logging.INFO, *, colors: bool = True) -> None:
    """Configure structlog over stdlib logging. Later calls are no-ops."""
    global _logging_configured  # noqa: PLW0603
    if _logging_configured:
        return
    _logging_configured = True

    logging.basicConfig(format="%(message)s", level=level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _truncate_long_fields,
            structlog.dev.ConsoleRenderer(colors=colors),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )
