"""
Logging Configuration

Applies LOG_LEVEL to the root logger once per process.
"""

import logging
import os
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def resolve_level(name: Optional[str]) -> int:
    """Map a LOG_LEVEL name to a logging level, defaulting to INFO."""
    return _LEVELS.get((name or "info").strip().lower(), logging.INFO)


def configure_logging(level: Optional[str] = None) -> int:
    """
    Configure root logging.

    Args:
        level: Level name; falls back to the LOG_LEVEL environment variable

    Returns:
        The numeric level applied
    """
    numeric_level = resolve_level(level or os.getenv("LOG_LEVEL"))
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=numeric_level, format=LOG_FORMAT)
    root.setLevel(numeric_level)
    # Werkzeug access logs are noisy at debug level
    logging.getLogger("werkzeug").setLevel(max(numeric_level, logging.INFO))
    return numeric_level
