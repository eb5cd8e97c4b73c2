"""
Structured log lines for acquisition and scraping events.
"""

from __future__ import annotations

import json
import logging
from typing import Any


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Log ``event`` plus keyword fields as one sorted, compact JSON object.

    Values that are not JSON-native (UUIDs, datetimes, enums) are rendered
    with ``str``. Nothing is serialized when the level is disabled.
    """

    if not logger.isEnabledFor(level):
        return
    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, default=str, sort_keys=True, separators=(",", ":")))
