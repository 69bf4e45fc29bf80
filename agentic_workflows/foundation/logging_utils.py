"""Logging helpers for the compiler CLI."""

from __future__ import annotations

import logging
import os

LOGGER_NAME = "agentic_workflows"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"


def setup_compiler_logger(
    *,
    verbose: bool = False,
    log_file: str | None = None,
    logger_name: str = LOGGER_NAME,
) -> logging.Logger:
    """
    Configure the package logger used by every compiler module.
    Logs go to stderr and, when ``log_file`` is set, to a UTF-8 file at DEBUG.
    """

    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if log_file:
        directory = os.path.dirname(os.path.abspath(log_file))
        os.makedirs(directory, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False

    logger.debug("Compiler logging initialized (verbose=%s, log_file=%s)", verbose, log_file)
    return logger
