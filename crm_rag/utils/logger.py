"""Loguru sinks for the CLI and the API server."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def setup_logger(
    log_level: str = "INFO",
    log_file: Optional[str] = "logs/crm_rag.log",
    json_file: bool = False,
) -> None:
    """
    Replace loguru's default sink with the application's sinks.

    Console output stays short (messages already carry a "[Component]" tag).
    The optional file sink rotates at 10 MB and is written from a background
    queue. With `json_file` each record is one JSON object per line.
    """
    logger.remove()
    logger.add(sys.stderr, level=log_level, format=CONSOLE_FORMAT, colorize=True)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level=log_level,
            format=FILE_FORMAT,
            serialize=json_file,
            rotation="10 MB",
            retention="7 days",
            compression="zip",
            enqueue=True,
        )

    logger.debug(f"[Logger] level={log_level} file={log_file or '-'} json={json_file}")
