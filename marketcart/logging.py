"""
Logging setup for the cart engine.

Every module logs through ``get_logger(__name__)``; records propagate to the
``marketcart`` package logger, which gets a stdout handler on first import
unless the host application already attached one.

Environment:
    LOG_LEVEL       level name for the package logger (default INFO)
    MARKETCART_ENV  "production" drops the timestamp from the format
"""

import logging
import os
import sys
from functools import cache

PACKAGE_LOGGER = "marketcart"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FORMAT_SIMPLE = "%(levelname)s - %(name)s - %(message)s"

# Control characters that could forge extra log lines (CWE-117)
_LOG_ESCAPES = str.maketrans({"\n": "\\n", "\r": "\\r", "\t": "\\t", "\x00": None})


def _configure_package_logger() -> None:
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if package_logger.handlers:
        return

    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    package_logger.setLevel(getattr(logging, level_name, logging.INFO))

    production = os.environ.get("MARKETCART_ENV") == "production"
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT_SIMPLE if production else LOG_FORMAT))
    package_logger.addHandler(handler)
    package_logger.propagate = False

    # The Upstash client issues one httpx request per Redis command
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


_configure_package_logger()


@cache
def get_logger(name: str) -> logging.Logger:
    """Logger for a marketcart module (typically ``__name__``)."""
    return logging.getLogger(name)


def _clip(value: object, max_length: int) -> str:
    text = str(value).translate(_LOG_ESCAPES)
    return text if len(text) <= max_length else text[:max_length] + "..."


def sanitize_id_for_logging(id_value: object, max_length: int = 32) -> str:
    """
    Escape and truncate a cart item id before logging it.

    Ids arrive from the UI layer, so they are treated as untrusted text.
    Returns "N/A" for None or an empty string.
    """
    if id_value is None or id_value == "":
        return "N/A"
    return _clip(id_value, max_length)


def sanitize_string_for_logging(value: str | None, max_length: int = 50) -> str:
    """Escape and truncate free text (names, addresses, summary lines)."""
    if not value:
        return "N/A"
    return _clip(value, max_length)


__all__ = [
    "get_logger",
    "sanitize_id_for_logging",
    "sanitize_string_for_logging",
]
