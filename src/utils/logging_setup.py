"""Logging configuration shared by the CLI and scripts."""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


def setup_logging(
    log_dir: Optional[Path] = None,
    verbose: bool = False,
    log_file_name: Optional[str] = None,
    console_level: str = "INFO",
) -> Path:
    """Setup logging to both console and file.

    Args:
        log_dir: Directory for log files (default: logs/)
        verbose: If True, console shows DEBUG regardless of console_level
        log_file_name: Custom log file name (default: auto-generated with timestamp)
        console_level: Console level name, e.g. "WARNING"

    Returns:
        Path to the log file
    """
    if log_dir is None:
        log_dir = Path("logs")
    log_dir.mkdir(parents=True, exist_ok=True)

    if log_file_name is None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file_name = f"resilient_{timestamp}.log"
    log_file = log_dir / log_file_name

    log_level = logging.DEBUG if verbose else logging.getLevelName(console_level.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    file_formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    console_formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt="%H:%M:%S",
    )

    # Root logger passes everything; handlers filter
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    # File handler (always DEBUG to capture everything)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(file_formatter)
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    # Reduce noise from third-party libraries
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logging.info(f"Logging initialized. Log file: {log_file}")
    return log_file


__all__ = ["setup_logging"]
