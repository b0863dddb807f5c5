from __future__ import annotations

import logging
import os
from typing import Optional

_DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_DEFAULT_DATEFMT = "%Y-%m-%dT%H:%M:%S"


def setup_logging(level: Optional[str] = None, fmt: str = _DEFAULT_FORMAT, datefmt: str = _DEFAULT_DATEFMT) -> None:
    """Configure the root logger for the CLI.

    Falls back to the `LOG_LEVEL` env var, then INFO. Calling it again replaces
    the previous configuration so `--log-level` wins over an earlier auto-setup.
    """

    log_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format=fmt,
        datefmt=datefmt,
        force=True,
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a module logger, configuring logging on first use."""

    if not logging.getLogger().handlers:
        setup_logging()
    return logging.getLogger(name)
