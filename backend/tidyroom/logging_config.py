from __future__ import annotations

import logging
from typing import Optional

from pythonjsonlogger.json import JsonFormatter

from .config import settings


def configure_logging(
        level: Optional[int] = None,
        force_format: Optional[str] = None,
) -> None:
    """
    Configure the root logger for the app

    Modes:
    - JSON (default)
    - plain text (local development)

    Selection Order:
        1) force_format argument ("json" or "plain") if provided
        2) settings.LOG_FORMAT (env var TIDYROOM_LOG_FORMAT)
    """

    format_mode = (force_format or settings.LOG_FORMAT).lower()
    if level is None:
        level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    logger = logging.getLogger()
    logger.setLevel(level)

    handler = logging.StreamHandler()

    if format_mode == "plain":
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
        )
    else:
        formatter = JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s"
        )

    handler.setFormatter(formatter)

    # Replace any existing handlers to avoid duplicate logs
    logger.handlers.clear()
    logger.addHandler(handler)
