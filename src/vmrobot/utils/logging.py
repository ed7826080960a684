"""Logging setup for the vmrobot server and CLI.

Everything under the ``vmrobot`` logger (session lifecycle, per-action
``/vm/<id> execute`` lines, HTTP handlers) goes to stderr, and to a file
when ``logging.file`` is configured.
"""

from __future__ import annotations

import logging
import sys

from vmrobot.config.settings import LoggingConfig


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Configure the ``vmrobot`` logger.

    Sets the level and format, logs to stderr and, when ``config.file``
    is set, to that file as well.

    Args:
        config: Logging configuration. If None, uses defaults
                (INFO level, stderr output).
    """
    if config is None:
        config = LoggingConfig()

    root_logger = logging.getLogger("vmrobot")
    root_logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    formatter = logging.Formatter(config.format)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if config.file:
        file_handler = logging.FileHandler(config.file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    root_logger.info("Logging initialized at %s level", config.level)
