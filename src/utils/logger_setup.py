"""
Logging setup for the heat sink search.

Console output always; a rotating log file when a directory is given.
"""

import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from loguru import logger


_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"
_COLOR_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<blue>{function}</blue> | "
    "<level>{message}</level>"
)


def setup_logger(
    level: str = "INFO",
    log_dir: Optional[Path] = None,
    rotation: str = "50 MB",
    retention: str = "30 days",
) -> Optional[Path]:
    """
    Replace loguru's default handler with the search's console (and file) sinks.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ...)
        log_dir: Directory for a timestamped log file (console only if None)
        rotation: Log rotation policy
        retention: Log retention policy

    Returns:
        Path to the log file, or None
    """
    logger.remove()

    colorize = sys.stderr.isatty()
    logger.add(
        sys.stderr,
        level=level,
        format=_COLOR_FORMAT if colorize else _FORMAT,
        colorize=colorize,
    )

    if log_dir is None:
        return None

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"search_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    logger.add(
        log_file,
        level=level,
        format=_FORMAT,
        rotation=rotation,
        retention=retention,
        encoding="utf-8",
    )
    logger.debug("Logging to {}", log_file)
    return log_file
