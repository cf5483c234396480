"""Structured logging helper shared by the harvesting services."""

from __future__ import annotations

import logging
from typing import Any


def structured_log(
    logger: logging.Logger,
    level: str,
    event: str,
    /,
    **fields: Any,
) -> None:
    """Emit a structured log entry.

    The event name becomes the log message; the formatters in
    logging_config.py read it back through record.getMessage(), so it is
    not repeated inside ``extra``.

    Usage:
        structured_log(logger, "info", "replay.batch_completed", pages=6, failed=0)
    """
    log_method = getattr(logger, level.lower())
    log_method(event, extra=fields)
