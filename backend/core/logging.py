# backend/core/logging.py

import logging
import os
import sys


DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Library loggers held above the app level
QUIET_LOGGERS = {
    # Frame-level protocol logs are only useful when debugging the transport
    "websockets": logging.WARNING,
    # One line per HTTP request; WebSocket open/close is already logged by the chat fabric
    "uvicorn.access": logging.WARNING,
    # Startup banner and server errors
    "uvicorn": logging.INFO,
    "uvicorn.error": logging.INFO,
}


def setup_logging() -> None:
    """
    Configure application-wide logging for the chat server.

    - Sets root logger level (default: INFO, override with LOG_LEVEL env var)
    - Adds a stdout handler unless one is already installed (e.g. by Uvicorn)
    - Applies QUIET_LOGGERS either way, so running under Uvicorn gets the same levels
    """
    log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, log_level_name, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if not root_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
        root_logger.addHandler(handler)

    for name, library_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(library_level)


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Usage:
        logger = get_logger(__name__)
        logger.info("✓ Created room %s", key)
    """
    return logging.getLogger(name)
