"""Logging and terminal styling utilities for pack-image-fetch.

Warnings and errors go to stderr through the ``pack_fetch`` logger so they
never interleave with the pull progress stream on stdout.
"""

from __future__ import annotations

import logging
import os
import sys


# Color codes - respect TERM and NO_COLOR environment variables
def _should_use_colors() -> bool:
    """Check if colors should be used based on TERM and NO_COLOR."""
    if os.environ.get("NO_COLOR"):
        return False
    term = os.environ.get("TERM", "")
    if not term or term == "dumb":
        return False
    return True


_USE_COLORS = _should_use_colors()

# ANSI color codes
BOLD = "\033[1m" if _USE_COLORS else ""
RESET = "\033[0m" if _USE_COLORS else ""
RED = "\033[91m" if _USE_COLORS else ""
YELLOW = "\033[93m" if _USE_COLORS else ""
BLUE = "\033[94m" if _USE_COLORS else ""
GREEN = "\033[92m" if _USE_COLORS else ""
CYAN = "\033[96m" if _USE_COLORS else ""


class FetchFormatter(logging.Formatter):
    """Formatter that prefixes non-info levels the way the CLI prints them."""

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()

        if record.levelno == logging.DEBUG:
            return f"DEBUG: {msg}"
        elif record.levelno >= logging.ERROR:
            return f"{RED}Error:{RESET} {msg}"
        elif record.levelno == logging.WARNING:
            return f"{YELLOW}Warning:{RESET} {msg}"

        # Info level has no prefix
        return msg


class _StdStreamHandler(logging.StreamHandler):
    """StreamHandler that writes to whatever sys.stdout/sys.stderr is at emit time."""

    def __init__(self, stream_name: str) -> None:
        self._stream_name = stream_name
        super().__init__()

    @property
    def stream(self):  # type: ignore[override]
        return getattr(sys, self._stream_name)

    @stream.setter
    def stream(self, value) -> None:
        pass


class _BelowWarning(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < logging.WARNING


# Configure module-level logger
_logger = logging.getLogger("pack_fetch")
_logger.setLevel(logging.DEBUG)

# Only add handlers if none exist
if not _logger.handlers:
    _formatter = FetchFormatter()

    _handler = _StdStreamHandler("stdout")
    _handler.setLevel(logging.DEBUG)
    _handler.addFilter(_BelowWarning())
    _handler.setFormatter(_formatter)
    _logger.addHandler(_handler)

    # Warnings and errors go to stderr only
    _stderr_handler = _StdStreamHandler("stderr")
    _stderr_handler.setLevel(logging.WARNING)
    _stderr_handler.setFormatter(_formatter)
    _logger.addHandler(_stderr_handler)


def debug_enabled() -> bool:
    """Return True when PACK_FETCH_DEBUG=1."""
    return os.environ.get("PACK_FETCH_DEBUG") == "1"


def log_debug(msg: str) -> None:
    """Log a debug message (only if PACK_FETCH_DEBUG=1).

    Args:
        msg: The message to log.
    """
    if debug_enabled():
        _logger.debug(msg)


def log_info(msg: str) -> None:
    """Log an info message to stdout.

    Args:
        msg: The message to log.
    """
    _logger.info(msg)


def log_warn(msg: str) -> None:
    """Log a warning message to stderr.

    Args:
        msg: The message to log.
    """
    _logger.warning(msg)


def log_error(msg: str) -> None:
    """Log an error message to stderr.

    Args:
        msg: The message to log.
    """
    _logger.error(msg)


# Styling helpers (pure functions, not logging)


def symbol(value: str) -> str:
    """Highlight an image name or path inside a message."""
    return f"{BLUE}{value}{RESET}" if _USE_COLORS else f"'{value}'"


def style_waiting(text: str) -> str:
    return f"{YELLOW}{text}{RESET}"


def style_working(text: str) -> str:
    return f"{BLUE}{text}{RESET}"


def style_complete(text: str) -> str:
    return f"{GREEN}{text}{RESET}"


def style_progress_bar(text: str) -> str:
    return f"{CYAN}{text}{RESET}"
