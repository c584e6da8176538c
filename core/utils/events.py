"""Structured one-line JSON log events."""

from __future__ import annotations

import json
import logging
from typing import Any


def log_event(logger: logging.Logger, level: int, event: str, **fields: Any) -> None:
    """Log ``event`` and its fields as one compact JSON object."""

    if not logger.isEnabledFor(level):
        return
    payload = {"event": event, **fields}
    logger.log(level, dump_json(payload))


def dump_json(payload: dict[str, Any]) -> str:
    return json.dumps(
        payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"), default=str
    )
