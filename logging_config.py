"""
logging_config.py - Centralized logging configuration.

Every module asks for its logger through `get_logger(__name__)`; the CLI and
the API call `setup_logging()` (or `setup_logging_from_env()`) once at startup.
"""

from __future__ import annotations

import logging
import os
import sys

# Third-party loggers that are too chatty at INFO for validation runs.
QUIET_LOGGERS = ("httpx", "httpcore", "multipart")


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: int | str = logging.INFO, json_format: bool = False) -> None:
    """Configure root logger with consistent formatting.

    Args:
        level: Logging level, as a number or a name such as "DEBUG".
        json_format: If True, emit JSON-like log lines.
    """
    root = logging.getLogger()
    root.setLevel(_resolve_level(level))
    root.handlers.clear()

    if json_format:
        formatter = logging.Formatter(
            '{"timestamp":"%(asctime)s","level":"%(levelname)s",'
            '"module":"%(name)s","message":"%(message)s"}',
            datefmt="%H:%M:%S",
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(name)-18s] %(levelname)-7s %(message)s",
            datefmt="%H:%M:%S",
        )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_logging_from_env() -> None:
    """Configure logging from LOG_LEVEL / LOG_JSON environment variables."""
    level = os.getenv("LOG_LEVEL", "INFO")
    json_format = os.getenv("LOG_JSON", "").strip().lower() in {"1", "true", "yes", "on"}
    setup_logging(level, json_format=json_format)


def get_logger(name: str) -> logging.Logger:
    """Get a named logger."""
    return logging.getLogger(name)
