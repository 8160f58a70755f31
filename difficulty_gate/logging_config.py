"""Loguru sinks for the API server and the CLI."""
from __future__ import annotations

import sys

from loguru import logger

from config import Settings, get_settings


def setup_logging(settings: Settings | None = None, level: str | None = None) -> None:
    """Replace the default sink with a stderr sink and an optional rotating file."""
    settings = settings or get_settings()
    level = level or settings.log_level

    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )
    if settings.log_file:
        logger.add(settings.log_file, level=level, rotation="10 MB", retention=5)
