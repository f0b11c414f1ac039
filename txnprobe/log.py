"""Logging configuration for the command line."""

from __future__ import annotations

import logging
import logging.config
from typing import Any

_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def configure_logging(level: str = "WARNING") -> None:
    """Send txnprobe log records to stderr at ``level``."""
    resolved = getattr(logging, level.upper(), logging.WARNING)
    config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": _LOG_FORMAT,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            }
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "level": resolved,
                "stream": "ext://sys.stderr",
            }
        },
        "loggers": {
            "txnprobe": {"handlers": ["default"], "level": resolved, "propagate": False},
        },
    }
    logging.config.dictConfig(config)
