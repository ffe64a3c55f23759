"""Structured JSON log event helper."""

from __future__ import annotations

import json
import logging
from typing import Any


def log_event(logger: logging.Logger, level: int, event: str, **fields: Any) -> None:
    """Emit one compact JSON log record with sorted keys."""

    if not logger.isEnabledFor(level):
        return
    payload = {"event": event, **fields}
    logger.log(
        level,
        json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"), default=str),
    )
