"""Loguru sink setup shared by the API and the CLI."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

from config import Settings, get_settings

CONSOLE_FORMAT = "<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"


def configure_logging(
    settings: Settings | None = None,
    level: str | None = None,
    console_format: str = CONSOLE_FORMAT,
) -> None:
    """
    Replace loguru's default handler with the configured sinks.

    Args:
        settings: Settings to read log_level/log_file from
        level: Console level override (the CLI runs quieter than the API)
        console_format: Format for the stderr sink
    """
    settings = settings or get_settings()
    logger.remove()
    logger.add(sys.stderr, level=level or settings.log_level, format=console_format)

    if settings.log_file:
        Path(settings.log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            settings.log_file,
            level=settings.log_level,
            format=FILE_FORMAT,
            rotation="10 MB",
            retention="14 days",
            enqueue=True,
        )
