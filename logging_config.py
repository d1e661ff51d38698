"""Logging setup shared by the analysis modules, the session layer and the CLI."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Tuple, Union


LOGGER_NAME = "flow_cyto_explorer"
LOG_FILE_NAME = "analysis.log"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Marks handlers installed here so reconfiguration replaces only those.
_HANDLER_TAG = "_flow_cyto_handler"


def get_logger(component: str) -> logging.Logger:
    """Return the ``flow_cyto_explorer.<component>`` logger."""

    return logging.getLogger(f"{LOGGER_NAME}.{component}")


def _tagged(handler: logging.Handler) -> logging.Handler:
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    setattr(handler, _HANDLER_TAG, True)
    return handler


def configure_logging(
    log_dir: Path,
    *,
    level: Union[int, str] = logging.INFO,
    console: bool = True,
    max_bytes: int = 1_048_576,
    backup_count: int = 5,
) -> Tuple[logging.Logger, Path]:
    """Route analysis logs to a rotating file under ``log_dir``.

    Parameters
    ----------
    log_dir:
        Directory for ``analysis.log`` and its rotated backups.
    level:
        Threshold for the application logger.
    console:
        Also echo records to stderr.
    max_bytes:
        Maximum size of each log file before rotation.
    backup_count:
        Number of rotated files to keep.

    Returns
    -------
    tuple
        The application logger and the path of the active log file.
    """

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / LOG_FILE_NAME

    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_TAG, False):
            logger.removeHandler(handler)
            handler.close()

    logger.addHandler(
        _tagged(
            RotatingFileHandler(
                log_path,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
        )
    )
    if console:
        logger.addHandler(_tagged(logging.StreamHandler()))
    logger.setLevel(level)
    logger.propagate = False

    return logger, log_path


__all__ = ["LOGGER_NAME", "LOG_FILE_NAME", "configure_logging", "get_logger"]
