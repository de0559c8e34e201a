"""Logging setup for the users admin.

Modules log through children of the ``useradmin`` logger, e.g.
``useradmin.authorizer``. Security relevant outcomes (refused edits,
rollbacks) are also written to the audit log; this is the operational log.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEBUG_LOG_FORMAT = "%(asctime)s - %(name)s:%(lineno)d - %(levelname)s - %(message)s"

logger = logging.getLogger("useradmin")


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[Path] = None,
    debug: bool = False,
) -> logging.Logger:
    """Configure the ``useradmin`` logger.

    Console output goes to stderr. When ``log_file`` is given, records are
    also written to a rotating file next to the database.

    Args:
        log_level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path of the log file.
        debug: Include line numbers and force DEBUG level.

    Returns:
        The configured logger.
    """
    level = logging.DEBUG if debug else getattr(logging, log_level.upper(), logging.INFO)
    formatter = logging.Formatter(DEBUG_LOG_FORMAT if debug else LOG_FORMAT)

    # Called again on every app startup; replace rather than stack handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.setLevel(level)
    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    """Child logger of ``useradmin``, e.g. ``get_logger("storage")``."""
    return logging.getLogger(f"{logger.name}.{name}")


authorizer_logger = get_logger("authorizer")
storage_logger = get_logger("storage")
plugins_logger = get_logger("plugins")
hooks_logger = get_logger("hooks")
admin_logger = get_logger("admin")
