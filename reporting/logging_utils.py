"""
reporting/logging_utils.py

Structured logging helpers for report batches.
"""

from __future__ import annotations

import json
import logging
from typing import Any

_REDACTED_FIELDS = frozenset({"credential", "token", "authorization"})


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one structured log line as compact JSON.

    Fields named like credentials are replaced with ``"***"``.
    """

    if not logger.isEnabledFor(level):
        return
    safe_fields = {
        key: ("***" if key.lower() in _REDACTED_FIELDS else value)
        for key, value in fields.items()
    }
    payload = {"event": event, **safe_fields}
    logger.log(level, json.dumps(payload, default=str, sort_keys=True))
