"""
Logging Configuration

Structured logging setup for containerized environments.
Outputs to stdout for Docker log aggregation compatibility.
"""

from __future__ import annotations

import sys
from logging.config import dictConfig

from docvault.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str | None = None) -> None:
    """
    Initialize application logging with consistent formatting.

    Configuration:
        - Output: stdout (Docker/K8s friendly)
        - Format: Timestamp | Level | Module | Message
        - Level: ``level`` argument, else the LOG_LEVEL env var

    Note:
        Call once at application startup (main module or script entry).
    """
    log_level = (level or settings.LOG_LEVEL).upper()

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": LOG_FORMAT,
                "datefmt": DATE_FORMAT,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "stream": sys.stdout,
                "formatter": "default",
            },
        },
        "root": {
            "level": log_level,
            "handlers": ["console"],
        },
        "loggers": {
            "docvault": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
            "uvicorn": {"handlers": ["console"], "level": "INFO", "propagate": False},
            "uvicorn.access": {
                "handlers": ["console"],
                "level": "INFO",
                "propagate": False,
            },
            "sqlalchemy.engine": {
                "level": "WARNING",
                "handlers": ["console"],
                "propagate": False,
            },
            "httpx": {
                "level": "WARNING",
                "handlers": ["console"],
                "propagate": False,
            },
        },
    }

    dictConfig(logging_config)
