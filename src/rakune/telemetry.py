"""Structured JSON telemetry emitted on the ``rakune.telemetry`` logger."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

TELEMETRY_LOGGER = logging.getLogger("rakune.telemetry")


def serialise_value(value: Any) -> Any:
    """Convert telemetry payload values into JSON-friendly representations."""
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, (list, tuple, set)):
        return [serialise_value(item) for item in value]
    if isinstance(value, Mapping):
        return {str(key): serialise_value(child) for key, child in value.items()}
    return str(value)


def emit_event(event: str, **fields: Any) -> None:
    """Log a single-line JSON event when telemetry logging is enabled."""
    if not TELEMETRY_LOGGER.isEnabledFor(logging.INFO):
        return
    payload: dict[str, Any] = {"event": event, "timestamp": datetime.now(timezone.utc).isoformat()}
    for key, value in fields.items():
        payload[key] = serialise_value(value)
    TELEMETRY_LOGGER.info(json.dumps(payload, separators=(",", ":"), ensure_ascii=True))


__all__ = ["TELEMETRY_LOGGER", "emit_event", "serialise_value"]
