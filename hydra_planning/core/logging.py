"""
Logging setup for applications embedding the planning system.

Library modules only create loggers with logging.getLogger(__name__); the
wiring layer calls setup_logging() once to attach handlers.
"""

import logging
from pathlib import Path
from typing import Optional, Union

LOGGER_NAME = "hydra_planning"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Union[str, Path]] = None
) -> logging.Logger:
    """
    Configure the hydra_planning logger.

    Replaces handlers from a previous call, so it is safe to call twice.

    Args:
        level: Logging level name or number
        log_file: Also write to this file

    Returns:
        The package logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper() if isinstance(level, str) else level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger
