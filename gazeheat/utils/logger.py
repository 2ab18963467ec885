"""
Logging setup for the gazeheat package.

Every module logs through a child of the "gazeheat" logger, so one call to
setup_logger() at the entry point configures the whole pipeline. The
per-frame paths (estimation, recording) log at DEBUG only.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

PACKAGE_LOGGER = "gazeheat"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logger(
    name: str = PACKAGE_LOGGER,
    level: str = "WARNING",
    log_file: Optional[Path] = None,
    enable_file_logging: bool = False,
) -> logging.Logger:
    """
    Configure the package logger: stdout always, a log file on request.

    Calling it again updates the level of the existing handlers instead of
    adding new ones, so the CLI and tests can both call it.

    Args:
        name: Logger to configure (default: the package logger)
        level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Log file path, used when enable_file_logging is set
        enable_file_logging: Also append records to log_file

    Returns:
        The configured logger
    """
    logger = logging.getLogger(name)
    numeric_level = getattr(logging, level.upper(), logging.WARNING)
    logger.setLevel(numeric_level)

    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(numeric_level)
        return logger

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if enable_file_logging and log_file:
        try:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        except OSError as e:
            logger.warning(f"Cannot write log file {log_file}: {e}")
        else:
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
            logger.info(f"Logging to {log_file}")

    # Records stop at the package logger
    logger.propagate = False

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Logger for a module, always under the package logger.

    get_logger(__name__) inside the package returns it unchanged; other
    names (tests, scripts) are nested under "gazeheat".
    """
    if not name or name == PACKAGE_LOGGER:
        return logging.getLogger(PACKAGE_LOGGER)
    if name.startswith(PACKAGE_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")
